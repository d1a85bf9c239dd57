# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/panes/editor.py — SQL Editor Pane
# ============================================================

from typing import Optional, Tuple

from rich.style import Style
from rich.text import Text

from core.highlight import GHOST_STYLE, Completion, apply_completion, render_highlighted, suggest_completion
from core.intents import Intent, QueryExecuted
from core.panes import keys, styles
from core.sql_lexer import format_sql
from utils.helpers import statement_at_cursor

PLACEHOLDER = "Write SQL here... (Ctrl+J run statement, Ctrl+E run all)"
CURSOR_STYLE = Style(reverse=True)
LINE_NUMBER_WIDTH = 4

# Terminals deliver ctrl+j as a bare line feed
_RUN_STATEMENT_KEYS = ("ctrl+j", "newline")


class EditorPane:
    """Multi-line SQL buffer with highlighting and ghost-text completion."""

    def __init__(self, text: str = ""):
        self.text = text
        self.cursor = len(text)
        self.focused = False
        self.completion: Optional[Completion] = None

    @property
    def value(self) -> str:
        return self.text

    def set_value(self, text: str) -> None:
        self.text = text
        self.cursor = len(text)
        self._update_ghost()

    def has_ghost(self) -> bool:
        return self.completion is not None

    def is_busy(self) -> bool:
        return self.has_ghost()

    # ── Key Handling ──────────────────────────────────────────

    def handle_key(self, key: str, character: Optional[str] = None) -> Optional[Intent]:
        if key in _RUN_STATEMENT_KEYS:
            sql = statement_at_cursor(self.text, self.cursor)
            self.completion = None
            return QueryExecuted(sql) if sql else None

        if key == "ctrl+e":
            sql = self.text.strip()
            if not sql:
                return None
            self.set_value(format_sql(sql))
            self.completion = None
            return QueryExecuted(sql)

        if key == "ctrl+f":
            if self.text.strip():
                self.set_value(format_sql(self.text))
            return None

        if key == keys.TAB:
            if self.completion is not None:
                self.text, self.cursor = apply_completion(self.text, self.completion)
            else:
                self._insert("  ")
        elif key == keys.ENTER:
            self._insert("\n")
        elif key == keys.BACKSPACE:
            if self.cursor > 0:
                self.text = self.text[:self.cursor - 1] + self.text[self.cursor:]
                self.cursor -= 1
        elif key == keys.DELETE:
            self.text = self.text[:self.cursor] + self.text[self.cursor + 1:]
        elif key == keys.LEFT:
            self.cursor = max(0, self.cursor - 1)
        elif key == keys.RIGHT:
            self.cursor = min(len(self.text), self.cursor + 1)
        elif key == keys.UP:
            self._move_line(-1)
        elif key == keys.DOWN:
            self._move_line(1)
        elif key == keys.HOME:
            line, _ = self.cursor_position()
            self.cursor = self._line_start(line)
        elif key == keys.END:
            line, _ = self.cursor_position()
            self.cursor = self._line_start(line) + len(self.text.split("\n")[line])
        else:
            char = keys.typed_char(character)
            if char:
                self._insert(char)
        self._update_ghost()
        return None

    def _insert(self, s: str) -> None:
        self.text = self.text[:self.cursor] + s + self.text[self.cursor:]
        self.cursor += len(s)

    def _update_ghost(self) -> None:
        self.completion = suggest_completion(self.text, self.cursor)

    # ── Cursor Geometry ───────────────────────────────────────

    def cursor_position(self) -> Tuple[int, int]:
        """(line, column) of the cursor, both zero-based."""
        before = self.text[:self.cursor]
        line = before.count("\n")
        return line, len(before) - (before.rfind("\n") + 1)

    def _line_start(self, line: int) -> int:
        lines = self.text.split("\n")
        return sum(len(lines[i]) + 1 for i in range(line))

    def _move_line(self, delta: int) -> None:
        lines = self.text.split("\n")
        line, col = self.cursor_position()
        target = line + delta
        if target < 0 or target >= len(lines):
            return
        self.cursor = self._line_start(target) + min(col, len(lines[target]))

    # ── Rendering ─────────────────────────────────────────────

    def render(self, width: int, height: int) -> Text:
        out = Text(no_wrap=True, overflow="crop")
        title = "SQL Editor"
        hint = "Ctrl+J line | Ctrl+E all | Ctrl+F format"
        gap = max(1, width - len(title) - len(hint))
        out.append(title, style=styles.HEADER)
        out.append(" " * gap)
        out.append(hint, style=styles.DIM_TEXT)
        out.append("\n")

        if not self.text.strip() and not self.focused:
            out.append(PLACEHOLDER, style=styles.DIM_TEXT)
            return out

        lines = self.text.split("\n")
        cursor_line, cursor_col = self.cursor_position()
        display = max(1, height - 1)
        start = 0
        if len(lines) > display and cursor_line >= display:
            start = cursor_line - display + 1
        end = min(len(lines), start + display)

        for i in range(start, end):
            out.append(f"{i + 1:>{LINE_NUMBER_WIDTH}}  ", style=styles.DIM_TEXT)
            line = lines[i]
            if i == cursor_line and self.focused:
                out.append_text(self._render_cursor_line(line, cursor_col))
            else:
                out.append_text(render_highlighted(line))
            if i < end - 1:
                out.append("\n")
        return out

    def _render_cursor_line(self, line: str, cursor_col: int) -> Text:
        # Highlight the whole line first so strings and comments keep their
        # style across the cursor; cursor and ghost are overlaid afterwards.
        text = render_highlighted(line)
        if cursor_col >= len(line):
            text.append(" ")
        text.stylize(CURSOR_STYLE, cursor_col, cursor_col + 1)
        if self.completion is None:
            return text
        before, after = text.divide([cursor_col])
        before.append(self.completion.ghost, style=GHOST_STYLE)
        before.append_text(after)
        return before
