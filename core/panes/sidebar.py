# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/panes/sidebar.py — Table / Database Browser Pane
# ============================================================

from enum import Enum
from typing import List, Optional

from rich.text import Text

from core.fuzzy import fuzzy_match
from core.intents import (
    CopyDatabaseRequested,
    DatabaseSelected,
    DropDatabaseRequested,
    Intent,
    TableSelected,
)
from core.panes import keys, styles
from utils.helpers import truncate_string


class SidebarMode(Enum):
    TABLES = "tables"
    DATABASES = "databases"


class SidebarPane:
    """
    Filterable list of tables, toggled with 'D' to a list of databases.

    Database mode adds copy ('c', prompts for the target name) and
    drop ('x', asks for y confirmation).
    """

    def __init__(self, tables: Optional[List[str]] = None):
        self.tables: List[str] = list(tables or [])
        self.databases: List[str] = []
        self.active_database = ""
        self.selected = ""
        self.mode = SidebarMode.TABLES
        self.focused = False

        self.cursor = 0
        self.scroll_offset = 0
        self.searching = False
        self.search_query = ""

        self.copying = False
        self.copy_source = ""
        self.copy_input = ""
        self.confirming_drop = False
        self.drop_target = ""

        self._visible_lines = 10

    # ── State Setters ─────────────────────────────────────────

    def set_tables(self, tables: List[str]) -> None:
        self.tables = list(tables)
        self._clamp_cursor()

    def set_databases(self, databases: List[str]) -> None:
        self.databases = list(databases)
        self._clamp_cursor()

    def set_active_database(self, name: str) -> None:
        self.active_database = name

    def is_busy(self) -> bool:
        """True while search, copy-name input or drop confirmation owns the keyboard."""
        return self.searching or self.copying or self.confirming_drop

    def visible_items(self) -> List[str]:
        items = self.tables if self.mode == SidebarMode.TABLES else self.databases
        if not self.search_query:
            return list(items)
        return [item for item in items if fuzzy_match(item, self.search_query)]

    # ── Key Handling ──────────────────────────────────────────

    def handle_key(self, key: str, character: Optional[str] = None) -> Optional[Intent]:
        if self.confirming_drop:
            return self._handle_drop_confirm(key, character)
        if self.copying:
            return self._handle_copy_input(key, character)
        if self.searching:
            return self._handle_search(key, character)

        items = self.visible_items()
        if key in (keys.UP, "k"):
            self._move(-1)
        elif key in (keys.DOWN, "j"):
            self._move(1)
        elif key == keys.ENTER:
            return self._select_current(items)
        elif key == "c":
            if self.mode == SidebarMode.DATABASES and items:
                self.copying = True
                self.copy_source = items[self.cursor]
                self.copy_input = f"{self.copy_source}_copy"
        elif key == "x":
            if self.mode == SidebarMode.DATABASES and items:
                self.confirming_drop = True
                self.drop_target = items[self.cursor]
        elif key == "D":
            self.mode = (
                SidebarMode.TABLES if self.mode == SidebarMode.DATABASES
                else SidebarMode.DATABASES
            )
            self.cursor = 0
            self.scroll_offset = 0
            self.searching = False
            self.search_query = ""
        elif key == "/":
            self.searching = True
            self.search_query = ""
        return None

    def _select_current(self, items: List[str]) -> Optional[Intent]:
        if not items:
            return None
        name = items[self.cursor]
        if self.mode == SidebarMode.DATABASES:
            return DatabaseSelected(name)
        self.selected = name
        return TableSelected(name)

    def _handle_search(self, key: str, character: Optional[str]) -> Optional[Intent]:
        if key == keys.ESCAPE:
            self.searching = False
            self.search_query = ""
            self._clamp_cursor()
        elif key == keys.ENTER:
            self.searching = False
            return self._select_current(self.visible_items())
        elif key == keys.BACKSPACE:
            if self.search_query:
                self.search_query = self.search_query[:-1]
                self._clamp_cursor()
        elif key == keys.UP:
            self._move(-1)
        elif key == keys.DOWN:
            self._move(1)
        else:
            char = keys.typed_char(character)
            if char:
                self.search_query += char
                self._clamp_cursor()
        return None

    def _handle_copy_input(self, key: str, character: Optional[str]) -> Optional[Intent]:
        if key == keys.ESCAPE:
            self._reset_copy()
        elif key == keys.ENTER:
            target = self.copy_input.strip()
            if not target:
                return None
            source = self.copy_source
            self._reset_copy()
            return CopyDatabaseRequested(source=source, target=target)
        elif key == keys.BACKSPACE:
            self.copy_input = self.copy_input[:-1]
        elif key == keys.CTRL_U:
            self.copy_input = ""
        else:
            char = keys.typed_char(character)
            if char:
                self.copy_input += char
        return None

    def _handle_drop_confirm(self, key: str, character: Optional[str]) -> Optional[Intent]:
        name = self.drop_target
        self.confirming_drop = False
        self.drop_target = ""
        if key in ("y", "Y"):
            return DropDatabaseRequested(name)
        return None

    def _reset_copy(self) -> None:
        self.copying = False
        self.copy_source = ""
        self.copy_input = ""

    # ── Cursor ────────────────────────────────────────────────

    def _move(self, delta: int) -> None:
        count = len(self.visible_items())
        if count == 0:
            return
        self.cursor = max(0, min(count - 1, self.cursor + delta))
        self._ensure_visible()

    def _clamp_cursor(self) -> None:
        count = len(self.visible_items())
        if self.cursor >= count:
            self.cursor = max(0, count - 1)
        self._ensure_visible()

    def _ensure_visible(self) -> None:
        lines = max(1, self._visible_lines)
        if self.cursor < self.scroll_offset:
            self.scroll_offset = self.cursor
        elif self.cursor >= self.scroll_offset + lines:
            self.scroll_offset = self.cursor - lines + 1
        self.scroll_offset = max(0, self.scroll_offset)

    # ── Rendering ─────────────────────────────────────────────

    def render(self, width: int, height: int) -> Text:
        out = Text(no_wrap=True, overflow="ellipsis")
        width = max(width, 8)

        if self.mode == SidebarMode.TABLES:
            out.append("Tables", style=styles.HEADER)
            out.append(f"  ({len(self.tables)})", style=styles.DIM_TEXT)
        else:
            out.append("Databases", style=styles.HEADER)
            out.append("  c copy | x drop", style=styles.DIM_TEXT)
        out.append("\n")
        header_lines = 1

        if self.searching or self.search_query:
            out.append("/", style=styles.SEARCH_LABEL)
            out.append(self.search_query, style=styles.SEARCH_INPUT)
            if self.searching:
                out.append("█", style=styles.SEARCH_INPUT)
            out.append("\n")
            header_lines += 1
        if self.copying:
            out.append(f"Copy {self.copy_source} as:\n", style=styles.ACCENT_TEXT)
            out.append(self.copy_input + "█\n")
            header_lines += 2
        if self.confirming_drop:
            out.append(f"Drop {self.drop_target}? (y/n)\n", style=styles.ERROR_TEXT)
            header_lines += 1

        items = self.visible_items()
        self._visible_lines = max(1, height - header_lines - 1)
        self._ensure_visible()

        if not items:
            out.append("(no matches)" if self.search_query else "(empty)", style=styles.DIM_TEXT)
            return out

        active = self.selected if self.mode == SidebarMode.TABLES else self.active_database
        end = min(len(items), self.scroll_offset + self._visible_lines)
        for index in range(self.scroll_offset, end):
            name = items[index]
            label = " " + truncate_string(name, width - 2)
            if index == self.cursor and self.focused:
                style = styles.ITEM_CURSOR
            elif name == active:
                style = styles.ITEM_ACTIVE
            else:
                style = None
            out.append(label, style=style)
            if index < end - 1:
                out.append("\n")

        if len(items) > self._visible_lines:
            out.append(f"\n [{self.scroll_offset + 1}-{end} of {len(items)}]", style=styles.DIM_TEXT)
        return out
