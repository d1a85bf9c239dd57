# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# ui/tui.py — Main Textual TUI Application (Three-Pane Shell)
# ============================================================
#
# Layout:
#   header       connection string, current script
#   sidebar │ editor
#           │ results
#   status bar
#
# The App owns no session state. Keys go to the SessionCoordinator;
# every Operation it returns runs in a thread worker and its result
# comes back through call_from_thread → coordinator.apply().
# ============================================================

from pathlib import Path
from typing import Any, Callable, List, Optional

from rich.text import Text
from textual import events, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.css.query import NoMatches
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widget import Widget
from textual.widgets import Label, Static
from loguru import logger

from config import app_config
from core.errors import PgSheetError
from core.panes import keys, styles
from core.pg_manager import PostgresManager
from core.session import Operation, Pane, SessionCoordinator
from core.storage import LocalStore


# ── Scripts Modal ─────────────────────────────────────────────
class ScriptsModal(ModalScreen):
    """
    Saved .sql scripts.
    List: Enter load | n new | s save as | d delete | Esc close.
    Name prompt: Enter confirm | Esc back.
    """

    def __init__(self, coordinator: SessionCoordinator, store: LocalStore):
        super().__init__()
        self._coordinator = coordinator
        self._store = store
        self._scripts: List[str] = []
        self._cursor = 0
        self._prompt = ""          # "", "new" or "save"
        self._input = ""
        self._error = ""
        self._confirm_delete = False

    def compose(self) -> ComposeResult:
        with Container(id="scripts-modal-container"):
            yield Static("", id="scripts-modal-body")

    def on_mount(self) -> None:
        self._reload()

    def _reload(self) -> None:
        try:
            self._scripts = self._store.list_scripts()
        except PgSheetError as e:
            self._scripts = []
            self._error = str(e)
        self._cursor = min(self._cursor, max(0, len(self._scripts) - 1))
        self._redraw()

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        if self._confirm_delete:
            self._confirm_delete = False
            if event.key in ("y", "Y") and self._scripts:
                try:
                    self._store.delete_script(self._scripts[self._cursor])
                except PgSheetError as e:
                    self._error = str(e)
                self._reload()
            self._redraw()
            return
        if self._prompt:
            self._handle_prompt(event.key, event.character)
        else:
            self._handle_list(event.key)
        self._redraw()

    def _handle_list(self, key: str) -> None:
        if key in (keys.ESCAPE, "ctrl+o"):
            self.dismiss()
        elif key in ("k", keys.UP):
            self._cursor = max(0, self._cursor - 1)
        elif key in ("j", keys.DOWN):
            self._cursor = min(max(0, len(self._scripts) - 1), self._cursor + 1)
        elif key == keys.ENTER and self._scripts:
            if self._coordinator.load_script(self._scripts[self._cursor]):
                self.dismiss()
            else:
                self._error = self._coordinator.statusbar.message
        elif key in ("n", "s"):
            self._prompt = "new" if key == "n" else "save"
            self._input = ""
            self._error = ""
        elif key in ("d", "x") and self._scripts:
            self._confirm_delete = True

    def _handle_prompt(self, key: str, character: Optional[str]) -> None:
        if key == keys.ESCAPE:
            self._prompt = ""
            self._input = ""
            self._error = ""
        elif key == keys.ENTER:
            name = self._input.strip()
            if not name:
                self._error = "Name cannot be empty"
                return
            if self._prompt == "new":
                try:
                    name = self._store.save_script(name, "")
                except PgSheetError as e:
                    self._error = str(e)
                    return
                self._coordinator.load_script(name)
                self.dismiss()
                return
            if not self._coordinator.save_script(name):
                self._error = self._coordinator.statusbar.message
                return
            self._prompt = ""
            self._input = ""
            self._error = ""
            self._reload()
        elif key == keys.BACKSPACE:
            self._input = self._input[:-1]
        elif key == keys.CTRL_U:
            self._input = ""
        else:
            char = keys.typed_char(character)
            if char:
                self._input += char

    def _redraw(self) -> None:
        out = Text(no_wrap=True, overflow="ellipsis")
        out.append("SQL Scripts\n", style=styles.HEADER)
        if self._confirm_delete and self._scripts:
            out.append(f"\n  Delete {self._scripts[self._cursor]}?\n", style=styles.ERROR_TEXT)
            out.append("  y confirm | any key cancel\n", style=styles.DIM_TEXT)
        elif self._prompt:
            label = "New script name" if self._prompt == "new" else "Save as"
            out.append(f"\n  {label}\n", style=styles.ACCENT_TEXT)
            out.append("  " + self._input + "█\n", style=styles.SEARCH_INPUT)
            out.append("  Enter confirm | Esc back\n", style=styles.DIM_TEXT)
        else:
            out.append("  Enter load | n new | s save as | d delete | Esc close\n\n",
                       style=styles.DIM_TEXT)
            if not self._scripts:
                out.append("  No saved scripts\n", style=styles.DIM_TEXT)
            for index, name in enumerate(self._scripts):
                style = styles.ITEM_CURSOR if index == self._cursor else None
                out.append(f"  {name}\n", style=style)
        if self._error:
            out.append(f"  {self._error}\n", style=styles.ERROR_TEXT)
        self.query_one("#scripts-modal-body", Static).update(out)


# ── Pane Views ────────────────────────────────────────────────
class PaneView(Widget):
    """Draws one pane model at the widget's current size."""

    def __init__(self, draw: Callable[[int, int], Text], **kwargs):
        super().__init__(**kwargs)
        self._draw = draw

    def render(self) -> Text:
        return self._draw(self.size.width, self.size.height)


class SessionView(Horizontal, can_focus=True):
    """
    The single focus target of the main screen. Tab and Shift+Tab are
    priority bindings so Textual's focus cycling never sees them.
    """

    BINDINGS = [
        Binding("tab", "session_key('tab')", show=False, priority=True),
        Binding("shift+tab", "session_key('shift+tab')", show=False, priority=True),
    ]

    def action_session_key(self, key: str) -> None:
        self.app.handle_session_key(key, None)

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.app.handle_session_key(event.key, event.character)


# ── Main pgsheet TUI Application ──────────────────────────────
class PgSheetApp(App):
    """
    Main Textual application for pgsheet.
    Sidebar (left) + SQL editor and results grid (right).
    """

    CSS_PATH = str(Path(__file__).parent / "pgsheet.tcss")
    TITLE = "pgsheet — PostgreSQL Spreadsheet Client"

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", priority=True),
    ]

    ENABLE_COMMAND_PALETTE = False

    # Reactive state
    conn_label     = reactive("connecting...")
    current_script = reactive("")

    def __init__(
            self,
            driver: Optional[PostgresManager] = None,
            store: Optional[LocalStore] = None,
            database: Optional[str] = None,
            uri: Optional[str] = None,
    ):
        super().__init__()
        self.driver = driver or PostgresManager()
        self.store = store or LocalStore()
        self._database = database
        self._uri = uri
        self.coordinator = SessionCoordinator(
            self.driver,
            row_limit=app_config.row_limit,
            store=self.store,
            status_ttl=app_config.status_ttl_seconds,
        )

    # ── App Lifecycle ─────────────────────────────────────────

    def compose(self) -> ComposeResult:
        """Build the UI layout."""
        c = self.coordinator
        yield Horizontal(
            Label(f"◆ pgsheet v{app_config.version}", id="header-title"),
            Label("", id="header-conn"),
            Label("", id="header-script"),
            id="header",
        )
        yield SessionView(
            PaneView(c.sidebar.render, id="sidebar"),
            Vertical(
                PaneView(c.editor.render, id="editor"),
                PaneView(c.results.render, id="results"),
                id="work-area",
            ),
            id="session",
        )
        yield PaneView(c.statusbar.render, id="status-bar")

    def on_mount(self) -> None:
        self.coordinator.restore_autosave()
        self.query_one(SessionView).focus()
        self.set_interval(0.1, self._tick)
        self._refresh_panes()
        self._initialize()

    @work(thread=True, exclusive=True)
    def _initialize(self) -> None:
        """Connect in a background thread; the UI stays responsive."""
        try:
            self.driver.connect(database=self._database, uri=self._uri)
        except PgSheetError as e:
            self.call_from_thread(self._connection_failed, str(e))
            return
        self.call_from_thread(self._connected)

    def _connected(self) -> None:
        self.conn_label = self.driver.conn_info()
        self._start(self.coordinator.initial_load())

    def _connection_failed(self, error: str) -> None:
        self.conn_label = "disconnected"
        self.coordinator.statusbar.error(f"Connection failed: {error} (Ctrl+R to retry)")
        self._refresh_panes()

    # ── Key Routing ───────────────────────────────────────────

    def handle_session_key(self, key: str, character: Optional[str]) -> None:
        if key == "ctrl+o" and not self.coordinator.pane_busy():
            self.push_screen(
                ScriptsModal(self.coordinator, self.store),
                callback=lambda _: self._after_scripts(),
            )
            return
        self._start(self.coordinator.handle_key(key, character))
        self._refresh_panes()

    def _after_scripts(self) -> None:
        self.current_script = self.coordinator.current_script
        self.coordinator.focus(Pane.EDITOR)
        self.query_one(SessionView).focus()
        self._refresh_panes()

    # ── Operations ────────────────────────────────────────────

    def _start(self, operation: Optional[Operation]) -> None:
        if operation is not None:
            self._run_operation(operation)

    @work(thread=True)
    def _run_operation(self, operation: Operation) -> None:
        """Blocking driver calls happen here, never on the event loop."""
        result = operation.execute()
        self.call_from_thread(self._apply_result, result)

    def _apply_result(self, result: Any) -> None:
        follow_up = self.coordinator.apply(result)
        if self.driver.database:
            self.conn_label = self.driver.conn_info()
        self._start(follow_up)
        self._refresh_panes()

    # ── UI Helpers ────────────────────────────────────────────

    def _tick(self) -> None:
        self.coordinator.tick()
        self.query_one("#status-bar", PaneView).refresh()

    def _refresh_panes(self) -> None:
        for pane in Pane:
            self.query_one(f"#{pane.value}", PaneView).set_class(
                pane == self.coordinator.active_pane, "active"
            )
        for pane_view in self.query(PaneView):
            pane_view.refresh()

    def watch_conn_label(self, value: str) -> None:
        try:
            self.query_one("#header-conn", Label).update(f" {value} ")
        except NoMatches:
            pass

    def watch_current_script(self, value: str) -> None:
        try:
            self.query_one("#header-script", Label).update(f" {value} " if value else "")
        except NoMatches:
            pass

    # ── Action Handlers (keyboard shortcuts) ─────────────────

    def action_quit(self) -> None:
        """Ctrl+C"""
        self.coordinator.autosave()
        self.driver.disconnect()
        logger.info("pgsheet exiting")
        self.exit()
