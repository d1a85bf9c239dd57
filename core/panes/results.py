# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/panes/results.py — Spreadsheet-Style Results Grid
# ============================================================
#
# The grid never writes to the mutation ledger. It reads staged
# state through a LedgerView for display, and returns intents
# (CellEditStaged, RowDeleteToggled, UndoRequested) that the
# coordinator applies. Rows added with 'a' live here until the
# coordinator folds them into the ledger at commit time.
# ============================================================

from enum import Enum
from typing import List, Optional

from rich.style import Style
from rich.text import Text

from core.errors import EditBlockedError
from core.fuzzy import fuzzy_match
from core.intents import CellEditStaged, EditBlocked, Intent, RowDeleteToggled, UndoRequested
from core.ledger import NULL_SENTINEL, LedgerView, PendingEdit, PendingInsert, RowKey
from core.panes import keys, styles
from utils.helpers import sanitize_cell, truncate_string, word_wrap

MIN_COL_WIDTH = 10
MAX_COL_WIDTH = 40
COLUMN_SEPARATOR = " │ "

FREE_FORM_REASON = "Cannot edit free-form query results"
NO_PK_REASON = "Cannot edit: table has no primary key"
PK_NOT_SELECTED_REASON = "Cannot edit: primary key columns are not in the result"
ADD_ROW_REASON = "Cannot add rows to free-form query results"


class ResultsMode(Enum):
    NAVIGATE = "navigate"
    EDIT = "edit"
    SEARCH = "search"
    PREVIEW = "preview"
    PREVIEW_EDIT = "preview_edit"


class ResultsPane:
    def __init__(self, ledger: LedgerView):
        self._ledger = ledger
        self.focused = False
        self.mode = ResultsMode.NAVIGATE

        self.columns: List[str] = []
        self.column_types: List[str] = []
        self.rows: List[List[str]] = []
        self.inserted_count = 0
        self.col_widths: List[int] = []

        self.table_name = ""
        self.primary_keys: List[str] = []

        self.cursor_row = 0
        self.cursor_col = 0
        self.scroll_offset = 0
        self.col_offset = 0
        self.edit_value = ""

        self.search_query = ""
        self.matches: List[int] = []
        self.match_cursor = 0

        self.preview_scroll = 0
        self.preview_buffer = ""

        self.error = ""
        self.info = ""
        self.banner = ""

        self._visible_rows = 20
        self._width = 80

    # ── Data ──────────────────────────────────────────────────

    def set_data(self, columns: List[str], column_types: List[str], rows: List[List[str]]) -> None:
        """Replace the grid contents; resets cursor, mode and messages."""
        self.columns = list(columns)
        self.column_types = list(column_types)
        self.rows = [list(row) for row in rows]
        self.inserted_count = 0
        self.cursor_row = 0
        self.cursor_col = 0
        self.scroll_offset = 0
        self.col_offset = 0
        self.mode = ResultsMode.NAVIGATE
        self.edit_value = ""
        self.error = ""
        self.info = ""
        self.banner = ""
        self._reset_search()
        self._calc_col_widths()

    def set_table_context(self, table_name: str, primary_keys: List[str]) -> None:
        self.table_name = table_name
        self.primary_keys = list(primary_keys)

    def set_error(self, message: str) -> None:
        self.error = message
        self.info = ""
        self.columns = []
        self.rows = []
        self.inserted_count = 0
        self.mode = ResultsMode.NAVIGATE

    def set_info(self, message: str) -> None:
        self.info = message
        self.error = ""

    def set_banner(self, message: str) -> None:
        self.banner = message

    def clear(self) -> None:
        self.set_data([], [], [])
        self.set_table_context("", [])

    def clear_inserted_rows(self) -> None:
        if self.inserted_count == 0:
            return
        del self.rows[len(self.rows) - self.inserted_count:]
        self.inserted_count = 0
        if self.mode in (ResultsMode.EDIT, ResultsMode.PREVIEW, ResultsMode.PREVIEW_EDIT):
            self.mode = ResultsMode.NAVIGATE
        self.cursor_row = max(0, min(self.cursor_row, len(self.rows) - 1))
        self._ensure_row_visible()

    def is_busy(self) -> bool:
        return self.mode != ResultsMode.NAVIGATE

    def is_editing(self) -> bool:
        return self.mode == ResultsMode.EDIT

    def is_previewing(self) -> bool:
        return self.mode in (ResultsMode.PREVIEW, ResultsMode.PREVIEW_EDIT)

    def has_inserted_rows(self) -> bool:
        return self.inserted_count > 0

    def inserted_row_values(self) -> List[PendingInsert]:
        """Locally added rows as inserts; empty cells become NULL."""
        inserts: List[PendingInsert] = []
        if not self.table_name or not self.inserted_count:
            return inserts
        for row in self.rows[len(self.rows) - self.inserted_count:]:
            values = {
                column: (row[i] if row[i] != "" else NULL_SENTINEL)
                for i, column in enumerate(self.columns)
                if i < len(row)
            }
            if values:
                inserts.append(PendingInsert(table=self.table_name, values=values))
        return inserts

    # ── Row Identity ──────────────────────────────────────────

    def is_inserted_row(self, row: int) -> bool:
        return self.inserted_count > 0 and row >= len(self.rows) - self.inserted_count

    def has_row_identity(self) -> bool:
        return bool(self.primary_keys) and all(pk in self.columns for pk in self.primary_keys)

    def row_key(self, row: int) -> RowKey:
        values = self.rows[row]
        return RowKey(
            (pk, values[self.columns.index(pk)]) for pk in self.primary_keys
        )

    def display_value(self, row: int, col: int) -> str:
        """Cell text with any staged edit applied."""
        if row >= len(self.rows) or col >= len(self.rows[row]):
            return ""
        if not self.is_inserted_row(row) and self.has_row_identity():
            value, found = self._ledger.get_edited_value(
                self.table_name, self.row_key(row), self.columns[col]
            )
            if found:
                return value
        return self.rows[row][col]

    def check_editable(self, row: int) -> None:
        """Raise EditBlockedError when `row` cannot be addressed by primary key."""
        if self.is_inserted_row(row) or self.has_row_identity():
            return
        if not self.table_name:
            raise EditBlockedError(FREE_FORM_REASON)
        if not self.primary_keys:
            raise EditBlockedError(NO_PK_REASON)
        raise EditBlockedError(PK_NOT_SELECTED_REASON)

    # ── Key Handling ──────────────────────────────────────────

    def handle_key(self, key: str, character: Optional[str] = None) -> Optional[Intent]:
        try:
            if self.mode in (ResultsMode.PREVIEW, ResultsMode.PREVIEW_EDIT):
                return self._handle_preview(key, character)
            if self.mode == ResultsMode.SEARCH:
                return self._handle_search(key, character)
            if self.mode == ResultsMode.EDIT:
                return self._handle_edit(key, character)
            return self._handle_navigate(key)
        except EditBlockedError as e:
            return EditBlocked(str(e))

    def _handle_navigate(self, key: str) -> Optional[Intent]:
        if key == "ctrl+z":
            return UndoRequested()
        if key == "a":
            return self._add_row()
        if not self.rows:
            return None

        if key in (keys.UP, "k"):
            self._set_row(self.cursor_row - 1)
        elif key in (keys.DOWN, "j"):
            self._set_row(self.cursor_row + 1)
        elif key in (keys.LEFT, "h"):
            self._set_col(self.cursor_col - 1)
        elif key in (keys.RIGHT, "l"):
            self._set_col(self.cursor_col + 1)
        elif key == "g":
            self._set_row(0)
        elif key == "G":
            self._set_row(len(self.rows) - 1)
        elif key == keys.PAGE_UP:
            self._set_row(self.cursor_row - self._visible_rows)
        elif key == keys.PAGE_DOWN:
            self._set_row(self.cursor_row + self._visible_rows)
        elif key == "e":
            self.check_editable(self.cursor_row)
            self.mode = ResultsMode.EDIT
            self.edit_value = self._editable_value(self.cursor_row, self.cursor_col)
        elif key == "d":
            return self._toggle_delete()
        elif key == "/":
            self.mode = ResultsMode.SEARCH
            self._reset_search()
        elif key == "n":
            self._step_match(1)
        elif key == "N":
            self._step_match(-1)
        elif key == "v":
            if self.columns:
                self.mode = ResultsMode.PREVIEW
                self.preview_scroll = 0
                self.preview_buffer = self._editable_value(self.cursor_row, self.cursor_col)
        return None

    def _add_row(self) -> Optional[Intent]:
        if not self.table_name:
            raise EditBlockedError(ADD_ROW_REASON)
        if not self.columns:
            return None
        self.rows.append([""] * len(self.columns))
        self.inserted_count += 1
        self._set_row(len(self.rows) - 1)
        self._set_col(0)
        self.mode = ResultsMode.EDIT
        self.edit_value = ""
        return None

    def _toggle_delete(self) -> Optional[Intent]:
        row = self.cursor_row
        if self.is_inserted_row(row):
            del self.rows[row]
            self.inserted_count -= 1
            self._set_row(min(row, len(self.rows) - 1))
            return None
        self.check_editable(row)
        return RowDeleteToggled(table=self.table_name, row_key=self.row_key(row))

    def _handle_edit(self, key: str, character: Optional[str]) -> Optional[Intent]:
        intent = None
        if key in (keys.ENTER, keys.TAB):
            intent = self._commit_cell()
            if self.cursor_col < len(self.columns) - 1:
                self._move_edit_cell(self.cursor_col + 1)
            else:
                self.mode = ResultsMode.NAVIGATE
        elif key == keys.SHIFT_TAB:
            intent = self._commit_cell()
            if self.cursor_col > 0:
                self._move_edit_cell(self.cursor_col - 1)
        elif key == keys.ESCAPE:
            self.mode = ResultsMode.NAVIGATE
            self.edit_value = ""
        elif key == keys.BACKSPACE:
            self.edit_value = self.edit_value[:-1]
        else:
            char = keys.typed_char(character)
            if char:
                self.edit_value += char
        return intent

    def _commit_cell(self) -> Optional[Intent]:
        """Write the edit buffer to the current cell. Empty means NULL."""
        row, col = self.cursor_row, self.cursor_col
        new_value = self.edit_value if self.edit_value != "" else NULL_SENTINEL
        if self.is_inserted_row(row):
            self.rows[row][col] = new_value
            return None
        if new_value == self.display_value(row, col):
            return None
        return CellEditStaged(PendingEdit(
            table=self.table_name,
            row_key=self.row_key(row),
            column=self.columns[col],
            old_value=self.rows[row][col],
            new_value=new_value,
        ))

    def _move_edit_cell(self, col: int) -> None:
        self._set_col(col)
        self.edit_value = self._editable_value(self.cursor_row, self.cursor_col)

    def _editable_value(self, row: int, col: int) -> str:
        value = self.display_value(row, col)
        return "" if value == NULL_SENTINEL else value

    # ── Search ────────────────────────────────────────────────

    def _reset_search(self) -> None:
        self.search_query = ""
        self.matches = []
        self.match_cursor = 0

    def _apply_row_filter(self) -> None:
        self.match_cursor = 0
        if not self.search_query:
            self.matches = []
            return
        self.matches = [
            index for index, row in enumerate(self.rows)
            if any(fuzzy_match(cell, self.search_query) for cell in row)
        ]
        if self.matches:
            self._set_row(self.matches[0])

    def _step_match(self, delta: int) -> None:
        if not self.matches:
            return
        self.match_cursor = (self.match_cursor + delta) % len(self.matches)
        self._set_row(self.matches[self.match_cursor])

    def _handle_search(self, key: str, character: Optional[str]) -> Optional[Intent]:
        if key == keys.ESCAPE:
            self.mode = ResultsMode.NAVIGATE
            self._reset_search()
        elif key == keys.ENTER:
            self.mode = ResultsMode.NAVIGATE
            if self.matches:
                self._set_row(self.matches[self.match_cursor])
        elif key == keys.BACKSPACE:
            if self.search_query:
                self.search_query = self.search_query[:-1]
                self._apply_row_filter()
        else:
            char = keys.typed_char(character)
            if char:
                self.search_query += char
                self._apply_row_filter()
        return None

    # ── Cell Preview ──────────────────────────────────────────

    def _handle_preview(self, key: str, character: Optional[str]) -> Optional[Intent]:
        if self.mode == ResultsMode.PREVIEW_EDIT:
            if key == keys.ESCAPE:
                self.mode = ResultsMode.PREVIEW
                self.preview_buffer = self._editable_value(self.cursor_row, self.cursor_col)
            elif key == "ctrl+s":
                self.edit_value = self.preview_buffer
                intent = self._commit_cell()
                self.mode = ResultsMode.NAVIGATE
                return intent
            elif key == keys.ENTER:
                self.preview_buffer += "\n"
            elif key == keys.BACKSPACE:
                self.preview_buffer = self.preview_buffer[:-1]
            else:
                char = keys.typed_char(character)
                if char:
                    self.preview_buffer += char
            return None

        if key in (keys.ESCAPE, "v"):
            self.mode = ResultsMode.NAVIGATE
            self.preview_scroll = 0
        elif key == "e":
            self.check_editable(self.cursor_row)
            self.mode = ResultsMode.PREVIEW_EDIT
        elif key in ("j", keys.DOWN):
            self.preview_scroll += 1
        elif key in ("k", keys.UP):
            self.preview_scroll = max(0, self.preview_scroll - 1)
        elif key == "g":
            self.preview_scroll = 0
        elif key == "G":
            self.preview_scroll = 1 << 30
        return None

    # ── Cursor ────────────────────────────────────────────────

    def _set_row(self, row: int) -> None:
        self.cursor_row = max(0, min(row, len(self.rows) - 1))
        self._ensure_row_visible()

    def _set_col(self, col: int) -> None:
        self.cursor_col = max(0, min(col, len(self.columns) - 1))
        self._ensure_col_visible()

    def _ensure_row_visible(self) -> None:
        if self.cursor_row < self.scroll_offset:
            self.scroll_offset = self.cursor_row
        elif self.cursor_row >= self.scroll_offset + self._visible_rows:
            self.scroll_offset = self.cursor_row - self._visible_rows + 1

    def _ensure_col_visible(self) -> None:
        if self.cursor_col < self.col_offset:
            self.col_offset = self.cursor_col
        used = sum(
            self.col_widths[i] + len(COLUMN_SEPARATOR)
            for i in range(self.col_offset, min(self.cursor_col + 1, len(self.col_widths)))
        )
        while used > self._width and self.col_offset < self.cursor_col:
            used -= self.col_widths[self.col_offset] + len(COLUMN_SEPARATOR)
            self.col_offset += 1

    def _calc_col_widths(self) -> None:
        self.col_widths = []
        for i, column in enumerate(self.columns):
            width = max(len(column), MIN_COL_WIDTH)
            for row in self.rows:
                if i < len(row):
                    width = max(width, len(row[i]))
            self.col_widths.append(min(width, MAX_COL_WIDTH))

    def _visible_columns(self, width: int) -> List[int]:
        cols: List[int] = []
        used = 0
        for i in range(self.col_offset, len(self.col_widths)):
            needed = self.col_widths[i] + (len(COLUMN_SEPARATOR) if cols else 0)
            if cols and used + needed > width:
                break
            cols.append(i)
            used += needed
        return cols

    # ── Rendering ─────────────────────────────────────────────

    def render(self, width: int, height: int) -> Text:
        self._width = max(width, MIN_COL_WIDTH)
        if self.is_previewing():
            return self._render_preview(self._width, height)
        if self.error:
            return Text(self.error, style=styles.ERROR_TEXT)
        if not self.columns:
            return Text(self.info or "No rows returned", style=styles.DIM_TEXT)
        return self._render_table(self._width, height)

    def _render_table(self, width: int, height: int) -> Text:
        out = Text(no_wrap=True, overflow="crop")
        chrome = 2

        if self.mode == ResultsMode.SEARCH or self.search_query:
            out.append("/", style=styles.SEARCH_LABEL)
            out.append(self.search_query, style=styles.SEARCH_INPUT)
            if self.mode == ResultsMode.SEARCH:
                out.append("█", style=styles.SEARCH_INPUT)
            if self.matches:
                out.append(f" [{self.match_cursor + 1}/{len(self.matches)}]", style=styles.DIM_TEXT)
            elif self.search_query:
                out.append(" [no matches]", style=styles.DIM_TEXT)
            out.append("\n")
            chrome += 1

        if self.banner:
            out.append(self.banner, style=styles.BANNER_TEXT)
            out.append("\n")
            chrome += 1

        visible_cols = self._visible_columns(width)
        for n, ci in enumerate(visible_cols):
            if n:
                out.append(COLUMN_SEPARATOR, style=styles.DIM_TEXT)
            out.append(self._fit(self.columns[ci], self.col_widths[ci]), style=styles.HEADER)
        out.append("\n")
        out.append(
            "─┼─".join("─" * self.col_widths[ci] for ci in visible_cols),
            style=styles.DIM_TEXT,
        )

        self._visible_rows = max(1, height - chrome - 1)
        self._ensure_row_visible()
        start = self.scroll_offset
        end = min(len(self.rows), start + self._visible_rows)
        matched = set(self.matches)

        for ri in range(start, end):
            out.append("\n")
            inserted = self.is_inserted_row(ri)
            identity = not inserted and self.has_row_identity()
            key = self.row_key(ri) if identity else None
            deleted = identity and self._ledger.is_deleted(self.table_name, key)

            for n, ci in enumerate(visible_cols):
                if n:
                    out.append(COLUMN_SEPARATOR, style=styles.DIM_TEXT)
                col_width = self.col_widths[ci]
                is_cursor = ri == self.cursor_row and ci == self.cursor_col and self.focused

                if is_cursor and self.mode == ResultsMode.EDIT:
                    shown = self.edit_value + "█"
                    if len(shown) > col_width:
                        shown = shown[len(shown) - col_width:]
                    out.append(shown.ljust(col_width), style=styles.CELL_EDITING)
                    continue

                value = self.display_value(ri, ci)
                modified = identity and self._ledger.get_edited_value(
                    self.table_name, key, self.columns[ci]
                )[1]
                out.append(
                    self._fit(sanitize_cell(value), col_width),
                    style=self._cell_style(is_cursor, deleted, inserted, modified, ri in matched, value),
                )

        if len(self.rows) > self._visible_rows:
            out.append(f"\n [{start + 1}-{end} of {len(self.rows)}]", style=styles.DIM_TEXT)
        return out

    @staticmethod
    def _cell_style(
            is_cursor: bool,
            deleted: bool,
            inserted: bool,
            modified: bool,
            matched: bool,
            value: str,
    ) -> Optional[Style]:
        if is_cursor:
            return styles.CELL_SELECTED
        if deleted:
            return styles.DELETED_TEXT
        if inserted:
            return styles.NEW_ROW_TEXT
        if modified:
            return styles.MODIFIED_TEXT
        if matched:
            return styles.SEARCH_INPUT
        if value == NULL_SENTINEL:
            return styles.NULL_TEXT
        return None

    @staticmethod
    def _fit(value: str, width: int) -> str:
        return truncate_string(value, width).ljust(width)

    def _render_preview(self, width: int, height: int) -> Text:
        out = Text()
        column = self.columns[self.cursor_col] if self.cursor_col < len(self.columns) else ""

        if self.mode == ResultsMode.PREVIEW_EDIT:
            out.append(f"Edit: {column}", style=styles.HEADER)
            out.append("  Ctrl+S save | Esc cancel\n", style=styles.DIM_TEXT)
            out.append(self.preview_buffer)
            out.append("█", style=styles.ACCENT_TEXT)
            return out

        out.append(f"Preview: {column} [row {self.cursor_row + 1}]", style=styles.HEADER)
        out.append("  e edit | j/k scroll | Esc close\n", style=styles.DIM_TEXT)
        out.append("─" * width + "\n", style=styles.DIM_TEXT)

        lines = word_wrap(self.display_value(self.cursor_row, self.cursor_col), width).split("\n")
        view_height = max(1, height - 3)
        self.preview_scroll = min(self.preview_scroll, max(0, len(lines) - view_height))
        end = min(len(lines), self.preview_scroll + view_height)
        out.append("\n".join(lines[self.preview_scroll:end]))
        if len(lines) > view_height:
            out.append(
                f"\n[lines {self.preview_scroll + 1}-{end} of {len(lines)}]",
                style=styles.DIM_TEXT,
            )
        return out
