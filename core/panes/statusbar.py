# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/panes/statusbar.py — Context-Aware Status Bar
# ============================================================

import time
from enum import Enum
from typing import Callable, Optional

from rich.text import Text

from core.panes import styles
from utils.helpers import format_duration

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

_PANE_HINTS = {
    "sidebar": "j/k Navigate | Enter Select | / Search | D Databases | Tab Switch pane",
    "editor": "Ctrl+E Run all | Ctrl+J Run statement | Ctrl+F Format | Tab Switch pane",
    "results": "Arrows Navigate | e Edit | d Delete | a Add row | v Preview | / Search | Tab Switch pane",
}
_EDIT_HINTS = "Type to edit | Tab/Enter Next col | Shift+Tab Prev col | Esc Cancel"
_SEARCH_HINTS = "Type to filter | Enter Keep | Esc Clear"
_DEFAULT_HINTS = "Tab Switch pane | Ctrl+C Quit"


class MessageType(Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class StatusBar:
    """
    Bottom line: key hints on the left (replaced by the latest message),
    pending-change count and last query stats on the right.
    """

    def __init__(self, ttl_seconds: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock

        self.message = ""
        self.message_type = MessageType.INFO
        self.message_time = 0.0

        self.pending_changes = 0
        self.active_pane = "editor"
        self.edit_mode = False
        self.search_mode = False
        self.query_ms: Optional[int] = None
        self.row_count = 0

        self.copying_target = ""
        self.spinner_frame = 0

    def set_message(self, message: str, message_type: MessageType = MessageType.INFO) -> None:
        self.message = message
        self.message_type = message_type
        self.message_time = self._clock()

    def info(self, message: str) -> None:
        self.set_message(message, MessageType.INFO)

    def success(self, message: str) -> None:
        self.set_message(message, MessageType.SUCCESS)

    def error(self, message: str) -> None:
        self.set_message(message, MessageType.ERROR)

    def clear_expired_message(self) -> None:
        """Success messages disappear after ttl_seconds; others stay."""
        if (self.message_type == MessageType.SUCCESS
                and self._clock() - self.message_time > self.ttl_seconds):
            self.message = ""

    def set_query_info(self, elapsed_ms: int, row_count: int) -> None:
        self.query_ms = elapsed_ms
        self.row_count = row_count

    def set_copying(self, target: str) -> None:
        self.copying_target = target
        self.spinner_frame = 0

    def is_copying(self) -> bool:
        return bool(self.copying_target)

    def advance_spinner(self) -> None:
        self.spinner_frame = (self.spinner_frame + 1) % len(SPINNER_FRAMES)

    def context_hints(self) -> str:
        if self.edit_mode:
            return _EDIT_HINTS
        if self.search_mode:
            return _SEARCH_HINTS
        return _PANE_HINTS.get(self.active_pane, _DEFAULT_HINTS)

    def render(self, width: int, height: int = 1) -> Text:
        if self.message:
            style = {
                MessageType.ERROR: styles.STATUS_ERROR,
                MessageType.SUCCESS: styles.STATUS_SUCCESS,
            }.get(self.message_type, styles.STATUS_BAR)
            left = Text(self.message, style=style)
        else:
            left = Text(self.context_hints(), style=styles.STATUS_BAR)

        right_parts = []
        if self.copying_target:
            right_parts.append(f"{SPINNER_FRAMES[self.spinner_frame]} Copying → {self.copying_target}")
        if self.pending_changes > 0:
            right_parts.append(f"Pending: {self.pending_changes} | Ctrl+S commit | Ctrl+X discard")
        if self.query_ms is not None:
            right_parts.append(f"{self.row_count} rows in {format_duration(self.query_ms)}")
        right = Text(" | ".join(right_parts), style=styles.STATUS_BAR)

        gap = max(1, width - left.cell_len - right.cell_len - 2)
        line = Text(" ", style=styles.STATUS_BAR, no_wrap=True, overflow="ellipsis")
        line.append_text(left)
        line.append(" " * gap, style=styles.STATUS_BAR)
        line.append_text(right)
        line.append(" ", style=styles.STATUS_BAR)
        return line
