import pytest

from core.highlight import STRING_STYLE
from core.intents import (
    CellEditStaged,
    CopyDatabaseRequested,
    DatabaseSelected,
    DropDatabaseRequested,
    EditBlocked,
    QueryExecuted,
    RowDeleteToggled,
    TableSelected,
    UndoRequested,
)
from core.ledger import NULL_SENTINEL, MutationLedger, PendingEdit, RowKey
from core.panes.editor import CURSOR_STYLE, EditorPane
from core.panes.results import (
    ADD_ROW_REASON,
    FREE_FORM_REASON,
    NO_PK_REASON,
    PK_NOT_SELECTED_REASON,
    ResultsMode,
    ResultsPane,
)
from core.panes.sidebar import SidebarMode, SidebarPane
from core.panes.statusbar import StatusBar


def _type(pane, text):
    intent = None
    for ch in text:
        intent = pane.handle_key(ch, ch)
    return intent


# ── Sidebar ───────────────────────────────────────────────────

def test_sidebar_search_filters_and_selects():
    sidebar = SidebarPane(["users", "orders", "order_items"])
    sidebar.handle_key("/", "/")
    assert sidebar.is_busy()
    _type(sidebar, "ord")
    assert sidebar.visible_items() == ["orders", "order_items"]

    intent = sidebar.handle_key("enter")

    assert intent == TableSelected("orders")
    assert sidebar.selected == "orders"
    assert not sidebar.is_busy()


def test_sidebar_navigation_clamps():
    sidebar = SidebarPane(["a", "b"])
    sidebar.handle_key("k", "k")
    assert sidebar.cursor == 0
    sidebar.handle_key("j", "j")
    sidebar.handle_key("down")
    assert sidebar.cursor == 1
    assert sidebar.handle_key("enter") == TableSelected("b")


def test_sidebar_database_mode_copy_and_drop():
    sidebar = SidebarPane(["users"])
    sidebar.set_databases(["app", "postgres"])
    sidebar.handle_key("D", "D")
    assert sidebar.mode == SidebarMode.DATABASES

    sidebar.handle_key("c", "c")
    assert sidebar.copy_input == "app_copy"
    sidebar.handle_key("ctrl+u")
    _type(sidebar, "backup")
    assert sidebar.handle_key("enter") == CopyDatabaseRequested(source="app", target="backup")
    assert not sidebar.is_busy()

    sidebar.handle_key("x", "x")
    assert sidebar.handle_key("n", "n") is None
    sidebar.handle_key("x", "x")
    assert sidebar.handle_key("y", "y") == DropDatabaseRequested("app")

    sidebar.handle_key("j", "j")
    assert sidebar.handle_key("enter") == DatabaseSelected("postgres")


def test_sidebar_copy_needs_a_name():
    sidebar = SidebarPane()
    sidebar.set_databases(["app"])
    sidebar.handle_key("D", "D")
    sidebar.handle_key("c", "c")
    sidebar.handle_key("ctrl+u")
    assert sidebar.handle_key("enter") is None
    assert sidebar.copying


def test_sidebar_copy_and_drop_only_in_database_mode():
    sidebar = SidebarPane(["users"])
    sidebar.handle_key("c", "c")
    sidebar.handle_key("x", "x")
    assert not sidebar.is_busy()


def test_sidebar_render_marks_selected_table():
    sidebar = SidebarPane(["users", "orders"])
    sidebar.handle_key("enter")
    text = sidebar.render(30, 10).plain
    assert "Tables" in text
    assert "orders" in text


# ── Editor ────────────────────────────────────────────────────

def test_editor_runs_statement_at_cursor_without_touching_buffer():
    editor = EditorPane("select 1;\nselect 2")
    intent = editor.handle_key("ctrl+j")
    assert intent == QueryExecuted("select 2")
    assert editor.value == "select 1;\nselect 2"


def test_editor_run_all_formats_buffer():
    editor = EditorPane("select a from t")
    intent = editor.handle_key("ctrl+e")
    assert intent == QueryExecuted("select a from t")
    assert editor.value == "SELECT a\nFROM t"


def test_editor_tab_accepts_ghost_completion():
    editor = EditorPane()
    _type(editor, "sel")
    assert editor.has_ghost()
    assert editor.is_busy()

    editor.handle_key("tab")

    assert editor.value == "SELECT"
    assert not editor.has_ghost()


def test_editor_tab_without_ghost_indents():
    editor = EditorPane()
    editor.handle_key("tab")
    assert editor.value == "  "


def test_editor_cursor_movement():
    editor = EditorPane("ab\ncdef")
    editor.handle_key("up")
    assert editor.cursor_position() == (0, 2)
    editor.handle_key("home")
    editor.handle_key("delete")
    assert editor.value == "b\ncdef"
    editor.handle_key("down")
    editor.handle_key("end")
    assert editor.cursor_position() == (1, 4)


def test_editor_render_shows_line_numbers():
    editor = EditorPane("select 1\nfrom t")
    editor.focused = True
    text = editor.render(60, 10).plain
    assert "SQL Editor" in text
    assert "select 1" in text
    assert "2" in text


def test_editor_string_keeps_its_style_around_the_cursor():
    editor = EditorPane("x = 'ab cd'")
    editor.focused = True
    editor.cursor = 7

    text = editor.render(60, 5)

    start = text.plain.index("'ab cd'")
    assert any(
        span.style == STRING_STYLE and span.start == start and span.end == start + 7
        for span in text.spans
    )
    assert any(
        span.style == CURSOR_STYLE and span.start == start + 3 and span.end == start + 4
        for span in text.spans
    )


def test_editor_ghost_sits_before_the_cursor_block():
    editor = EditorPane()
    editor.focused = True
    _type(editor, "sel")
    assert "selECT " in editor.render(60, 5).plain


# ── Results ───────────────────────────────────────────────────

@pytest.fixture()
def ledger():
    return MutationLedger()


@pytest.fixture()
def grid(ledger):
    pane = ResultsPane(ledger)
    pane.set_data(["id", "name"], ["int4", "text"], [["1", "alice"], ["2", NULL_SENTINEL], ["3", "bob"]])
    pane.set_table_context("users", ["id"])
    pane.focused = True
    return pane


def test_results_edit_stages_changed_cell(grid):
    grid.handle_key("l", "l")
    grid.handle_key("e", "e")
    assert grid.is_editing()
    assert grid.edit_value == "alice"
    for _ in "alice":
        grid.handle_key("backspace")
    _type(grid, "ann")

    intent = grid.handle_key("enter")

    assert isinstance(intent, CellEditStaged)
    assert intent.edit.new_value == "ann"
    assert intent.edit.row_key == RowKey({"id": "1"})
    assert grid.mode == ResultsMode.NAVIGATE


def test_results_unchanged_cell_is_not_staged(grid):
    grid.handle_key("e", "e")
    assert grid.handle_key("tab") is None
    assert grid.cursor_col == 1
    assert grid.is_editing()


def test_results_empty_value_means_null(grid):
    grid.handle_key("l", "l")
    grid.handle_key("e", "e")
    for _ in "alice":
        grid.handle_key("backspace")
    intent = grid.handle_key("enter")
    assert intent.edit.new_value == NULL_SENTINEL


def test_results_null_cell_edits_as_empty(grid):
    grid.handle_key("j", "j")
    grid.handle_key("l", "l")
    grid.handle_key("e", "e")
    assert grid.edit_value == ""


def test_results_display_applies_staged_edits(grid, ledger):
    ledger.stage_edit(PendingEdit(
        table="users", row_key=RowKey({"id": "3"}), column="name",
        old_value="bob", new_value="robert",
    ))
    assert grid.display_value(2, 1) == "robert"
    assert "robert" in grid.render(80, 12).plain


def test_results_delete_toggle_and_undo_intents(grid):
    assert grid.handle_key("d", "d") == RowDeleteToggled(table="users", row_key=RowKey({"id": "1"}))
    assert grid.handle_key("ctrl+z") == UndoRequested()


@pytest.mark.parametrize("table, primary_keys, columns, reason", [
    ("", [], ["id", "name"], FREE_FORM_REASON),
    ("users", [], ["id", "name"], NO_PK_REASON),
    ("users", ["id"], ["name"], PK_NOT_SELECTED_REASON),
])
def test_results_edit_blocked_reasons(ledger, table, primary_keys, columns, reason):
    pane = ResultsPane(ledger)
    pane.set_data(columns, ["text"] * len(columns), [["x"] * len(columns)])
    pane.set_table_context(table, primary_keys)

    assert pane.handle_key("e", "e") == EditBlocked(reason)
    assert pane.handle_key("d", "d") == EditBlocked(reason)
    assert pane.mode == ResultsMode.NAVIGATE


def test_results_add_row_needs_a_table(ledger):
    pane = ResultsPane(ledger)
    pane.set_data(["x"], ["int4"], [["1"]])
    assert pane.handle_key("a", "a") == EditBlocked(ADD_ROW_REASON)


def test_results_inserted_rows_stay_local(grid):
    grid.handle_key("a", "a")
    assert grid.is_editing()
    _type(grid, "4")
    assert grid.handle_key("tab") is None
    _type(grid, "dave")
    assert grid.handle_key("enter") is None

    inserts = grid.inserted_row_values()
    assert len(inserts) == 1
    assert inserts[0].table == "users"
    assert inserts[0].values == {"id": "4", "name": "dave"}


def test_results_inserted_row_empty_cells_are_null(grid):
    grid.handle_key("a", "a")
    grid.handle_key("escape")
    assert grid.inserted_row_values()[0].values == {"id": NULL_SENTINEL, "name": NULL_SENTINEL}

    grid.handle_key("d", "d")
    assert not grid.has_inserted_rows()
    assert len(grid.rows) == 3


def test_results_search_moves_cursor(grid):
    grid.handle_key("/", "/")
    assert grid.is_busy()
    _type(grid, "bob")
    assert grid.cursor_row == 2
    grid.handle_key("enter")
    assert not grid.is_busy()
    assert grid.matches == [2]


def test_results_preview_edit_commits_with_ctrl_s(grid):
    grid.handle_key("l", "l")
    grid.handle_key("v", "v")
    assert grid.is_previewing()
    grid.handle_key("e", "e")
    grid.handle_key("enter")
    _type(grid, "x")

    intent = grid.handle_key("ctrl+s")

    assert intent.edit.new_value == "alice\nx"
    assert grid.mode == ResultsMode.NAVIGATE


def test_results_error_replaces_rows(grid):
    grid.set_error('relation "nope" does not exist')
    assert grid.rows == []
    assert "does not exist" in grid.render(80, 10).plain


# ── Status Bar ────────────────────────────────────────────────

def test_status_success_messages_expire():
    now = [0.0]
    bar = StatusBar(ttl_seconds=3.0, clock=lambda: now[0])
    bar.success("Committed 1 changes")
    now[0] = 2.0
    bar.clear_expired_message()
    assert bar.message == "Committed 1 changes"
    now[0] = 3.5
    bar.clear_expired_message()
    assert bar.message == ""

    bar.error("boom")
    now[0] = 100.0
    bar.clear_expired_message()
    assert bar.message == "boom"


def test_status_render_right_side():
    bar = StatusBar()
    bar.pending_changes = 2
    bar.set_query_info(1500, 10)
    text = bar.render(160).plain
    assert "Pending: 2" in text
    assert "10 rows in 1.50s" in text


def test_status_hints_follow_mode():
    bar = StatusBar()
    bar.active_pane = "results"
    assert "e Edit" in bar.context_hints()
    bar.edit_mode = True
    assert "Esc Cancel" in bar.context_hints()
