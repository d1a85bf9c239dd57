# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/session.py — Session Coordinator (State Machine)
# ============================================================
#
# The coordinator is the only component that talks to the
# database driver and the only one that mutates session state.
#
#   pane key → intent → handle_intent() → Operation
#   Operation.execute() runs off the event loop (thread worker)
#   → result message → apply() on the event loop
#
# Every Operation carries a request id. The latest id is kept
# per category; a result whose id is no longer the latest for
# its category is discarded instead of applied.
# ============================================================

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional, Protocol, Sequence

from loguru import logger

from config import app_config
from core.commit import CommitResult, TransactionalDriver, execute_statements
from core.errors import PgSheetError
from core.intents import (
    CellEditStaged,
    CopyDatabaseRequested,
    DatabaseSelected,
    DropDatabaseRequested,
    EditBlocked,
    Intent,
    QueryExecuted,
    RowDeleteToggled,
    TableSelected,
    UndoRequested,
)
from core.ledger import MutationLedger, PendingDelete, quote_ident
from core.panes.editor import EditorPane
from core.panes.results import ResultsMode, ResultsPane
from core.panes.sidebar import SidebarPane
from core.panes.statusbar import StatusBar
from core.pg_manager import QueryResult
from core.storage import LocalStore
from utils.helpers import extract_ddl_table_name, extract_table_name, is_create_table


class Pane(Enum):
    SIDEBAR = "sidebar"
    EDITOR = "editor"
    RESULTS = "results"


_FOCUS_ORDER = [Pane.SIDEBAR, Pane.EDITOR, Pane.RESULTS]


class Category(Enum):
    TABLE_DATA = "table_data"   # load table, run query, DDL refresh
    COMMIT = "commit"
    DATABASE = "database"       # switch, drop, reconnect
    COPY = "copy"


class SessionDriver(TransactionalDriver, Protocol):
    """The database operations the coordinator dispatches (PostgresManager)."""

    @property
    def database(self) -> Optional[str]: ...

    def execute_query(self, query: str, params: Optional[Sequence[Any]] = None) -> QueryResult: ...

    def list_tables(self) -> List[str]: ...

    def list_databases(self) -> List[str]: ...

    def get_primary_keys(self, table_name: str) -> List[str]: ...

    def switch_database(self, database_name: str) -> None: ...

    def copy_database(self, source: str, target: str) -> None: ...

    def drop_database(self, name: str) -> None: ...

    def reconnect(self) -> None: ...

    def conn_info(self) -> str: ...


# ════════════════════════════════════════════════════════════
# RESULT MESSAGES
# ════════════════════════════════════════════════════════════

@dataclass
class TableData:
    CATEGORY: ClassVar[Category] = Category.TABLE_DATA
    request_id: int
    table_name: str = ""
    primary_keys: List[str] = field(default_factory=list)
    result: Optional[QueryResult] = None
    error: Optional[str] = None


@dataclass
class QueryOutcome:
    CATEGORY: ClassVar[Category] = Category.TABLE_DATA
    request_id: int
    sql: str = ""
    result: Optional[QueryResult] = None
    table_name: str = ""
    primary_keys: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class DdlRefreshOutcome:
    CATEGORY: ClassVar[Category] = Category.TABLE_DATA
    request_id: int
    tables: List[str] = field(default_factory=list)
    table_name: str = ""
    table_data: Optional[TableData] = None
    error: Optional[str] = None


@dataclass
class CommitOutcome:
    CATEGORY: ClassVar[Category] = Category.COMMIT
    request_id: int
    statements_executed: int = 0
    failed_index: Optional[int] = None
    error: Optional[str] = None


@dataclass
class ReconnectOutcome:
    CATEGORY: ClassVar[Category] = Category.DATABASE
    request_id: int
    tables: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class SwitchOutcome:
    CATEGORY: ClassVar[Category] = Category.DATABASE
    request_id: int
    database: str = ""
    tables: List[str] = field(default_factory=list)
    databases: List[str] = field(default_factory=list)
    initial: bool = False
    error: Optional[str] = None


@dataclass
class DropOutcome:
    CATEGORY: ClassVar[Category] = Category.DATABASE
    request_id: int
    dropped: str = ""
    databases: List[str] = field(default_factory=list)
    switched_to: str = ""
    tables: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class CopyOutcome:
    CATEGORY: ClassVar[Category] = Category.COPY
    request_id: int
    target: str = ""
    databases: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class Operation:
    """One unit of blocking database work, run off the event loop."""
    request_id: int
    category: Category
    description: str
    result_type: type
    run: Callable[[int], Any]

    def execute(self) -> Any:
        """Run the work; driver failures become the result's error string."""
        try:
            return self.run(self.request_id)
        except PgSheetError as e:
            logger.warning(f"{self.description or 'operation'} failed: {e}")
            error = f"{self.description}: {e}" if self.description else str(e)
            return self.result_type(request_id=self.request_id, error=error)


# ════════════════════════════════════════════════════════════
# COORDINATOR
# ════════════════════════════════════════════════════════════

class SessionCoordinator:
    """
    Owns focus, the active table, the mutation ledger and the panes, and
    turns intents into Operations and Operation results into state.
    """

    def __init__(
            self,
            driver: SessionDriver,
            row_limit: int = app_config.row_limit,
            store: Optional[LocalStore] = None,
            status_ttl: float = app_config.status_ttl_seconds,
    ):
        self.driver = driver
        self.row_limit = row_limit
        self.store = store

        self.ledger = MutationLedger()
        self.sidebar = SidebarPane()
        self.editor = EditorPane()
        self.results = ResultsPane(self.ledger)
        self.statusbar = StatusBar(ttl_seconds=status_ttl)

        self.active_pane = Pane.EDITOR
        self.active_table = ""
        self.last_sql = ""
        self.current_script = ""
        self.pending_dml_message = ""
        self.confirming_discard = False
        self.commit_in_flight = False

        self._request_ids = itertools.count(1)
        self._latest: Dict[Category, int] = {}
        self._folded_inserts: List[int] = []
        self._sync_focus()

    # ── Request Tracking ──────────────────────────────────────

    def _dispatch(
            self,
            category: Category,
            result_type: type,
            run: Callable[[int], Any],
            description: str = "",
    ) -> Operation:
        request_id = next(self._request_ids)
        self._latest[category] = request_id
        logger.debug(f"Dispatch #{request_id} [{category.value}] {description}")
        return Operation(request_id, category, description, result_type, run)

    def _invalidate(self, category: Category) -> None:
        """Make every in-flight result of `category` stale."""
        self._latest[category] = next(self._request_ids)

    def is_current(self, result: Any) -> bool:
        return self._latest.get(type(result).CATEGORY) == result.request_id

    # ── Focus ─────────────────────────────────────────────────

    def pane_busy(self, forward: bool = True) -> bool:
        """True when the focused pane (or a confirmation) owns Tab."""
        if self.confirming_discard:
            return True
        if self.active_pane == Pane.RESULTS:
            return self.results.is_busy()
        if self.active_pane == Pane.SIDEBAR:
            return self.sidebar.is_busy()
        return forward and self.editor.has_ghost()

    def cycle_focus(self, forward: bool = True) -> bool:
        """Move focus to the next/previous pane. Returns False when suppressed."""
        if self.pane_busy(forward):
            return False
        index = _FOCUS_ORDER.index(self.active_pane)
        step = 1 if forward else -1
        self.active_pane = _FOCUS_ORDER[(index + step) % len(_FOCUS_ORDER)]
        self._sync_focus()
        return True

    def focus(self, pane: Pane) -> None:
        self.active_pane = pane
        self._sync_focus()

    def _sync_focus(self) -> None:
        self.sidebar.focused = self.active_pane == Pane.SIDEBAR
        self.editor.focused = self.active_pane == Pane.EDITOR
        self.results.focused = self.active_pane == Pane.RESULTS
        self.statusbar.active_pane = self.active_pane.value
        self._sync_status()

    def _sync_status(self) -> None:
        self.statusbar.pending_changes = self.ledger.pending_count()
        self.statusbar.edit_mode = self.active_pane == Pane.RESULTS and self.results.is_editing()
        self.statusbar.search_mode = (
            (self.active_pane == Pane.RESULTS and self.results.mode == ResultsMode.SEARCH)
            or (self.active_pane == Pane.SIDEBAR and self.sidebar.searching)
        )

    def tick(self) -> None:
        """Periodic housekeeping: expire messages, advance the copy spinner."""
        self.statusbar.clear_expired_message()
        if self.statusbar.is_copying():
            self.statusbar.advance_spinner()
        self._sync_status()

    # ── Keys ──────────────────────────────────────────────────

    def handle_key(self, key: str, character: Optional[str] = None) -> Optional[Operation]:
        """Global shortcuts first, then the focused pane."""
        try:
            return self._handle_key(key, character)
        finally:
            self._sync_status()

    def _handle_key(self, key: str, character: Optional[str]) -> Optional[Operation]:
        if self.confirming_discard:
            self.confirming_discard = False
            if key in ("y", "Y"):
                self.discard_all()
            else:
                self.statusbar.info("Cancelled")
            return None

        if key in ("tab", "shift+tab") and self.cycle_focus(forward=key == "tab"):
            return None

        if key == "ctrl+s" and not (self.active_pane == Pane.RESULTS and self.results.is_previewing()):
            return self.request_commit()
        if key == "ctrl+r":
            return self.request_reconnect()
        if key == "ctrl+x":
            if self.ledger.has_changes() or self.results.has_inserted_rows():
                self.confirming_discard = True
                self.statusbar.info("Clear all pending changes? (y/n)")
            return None

        if self.active_pane == Pane.SIDEBAR:
            intent = self.sidebar.handle_key(key, character)
        elif self.active_pane == Pane.EDITOR:
            intent = self.editor.handle_key(key, character)
        else:
            intent = self.results.handle_key(key, character)
        return self.handle_intent(intent)

    # ── Intents ───────────────────────────────────────────────

    def handle_intent(self, intent: Optional[Intent]) -> Optional[Operation]:
        if intent is None:
            return None
        if isinstance(intent, TableSelected):
            self.active_table = intent.name
            return self.load_table(intent.name)
        if isinstance(intent, QueryExecuted):
            self.last_sql = intent.sql
            return self.run_query(intent.sql)
        if isinstance(intent, DatabaseSelected):
            self.statusbar.info(f"Switching to {intent.name}...")
            return self.switch_database(intent.name)
        if isinstance(intent, CopyDatabaseRequested):
            self.statusbar.set_copying(intent.target)
            self.statusbar.info(f"Copying {intent.source} → {intent.target}…")
            return self.copy_database(intent.source, intent.target)
        if isinstance(intent, DropDatabaseRequested):
            self.statusbar.info(f"Dropping {intent.name}...")
            return self.drop_database(intent.name)
        if isinstance(intent, EditBlocked):
            self.statusbar.error(intent.reason)
            return None
        if isinstance(intent, CellEditStaged):
            self.ledger.stage_edit(intent.edit)
            return None
        if isinstance(intent, RowDeleteToggled):
            if self.ledger.is_deleted(intent.table, intent.row_key):
                self.ledger.unstage_delete(intent.table, intent.row_key)
            else:
                self.ledger.stage_delete(PendingDelete(table=intent.table, row_key=intent.row_key))
            return None
        if isinstance(intent, UndoRequested):
            entry = self.ledger.undo()
            if entry is not None:
                self.statusbar.info(f"Undid staged {entry.kind.value}")
            return None
        raise TypeError(f"unknown intent: {intent!r}")

    def discard_all(self) -> None:
        self.ledger.clear()
        self.results.clear_inserted_rows()
        self.statusbar.success("All changes cleared")

    # ── Operations ────────────────────────────────────────────

    def _fetch_table(self, request_id: int, table_name: str) -> TableData:
        try:
            primary_keys = self.driver.get_primary_keys(table_name)
            result = self.driver.execute_query(
                f"SELECT * FROM {quote_ident(table_name)} LIMIT {int(self.row_limit)}"
            ).raise_for_error()
        except PgSheetError as e:
            return TableData(request_id=request_id, table_name=table_name, error=str(e))
        return TableData(
            request_id=request_id,
            table_name=table_name,
            primary_keys=primary_keys,
            result=result,
        )

    def load_table(self, table_name: str) -> Operation:
        return self._dispatch(
            Category.TABLE_DATA,
            TableData,
            lambda rid: self._fetch_table(rid, table_name),
        )

    def run_query(self, sql: str) -> Operation:
        def run(rid: int) -> QueryOutcome:
            result = self.driver.execute_query(sql)
            if not result.success:
                return QueryOutcome(request_id=rid, sql=sql, error=result.error)
            table_name, primary_keys = "", []
            if result.returns_rows:
                table_name = extract_table_name(sql)
                if table_name:
                    try:
                        primary_keys = self.driver.get_primary_keys(table_name)
                    except PgSheetError as e:
                        logger.debug(f"No primary key lookup for {table_name}: {e}")
            return QueryOutcome(
                request_id=rid,
                sql=sql,
                result=result,
                table_name=table_name,
                primary_keys=primary_keys,
            )

        return self._dispatch(Category.TABLE_DATA, QueryOutcome, run)

    def refresh_after_ddl(self, table_name: str, load: bool) -> Operation:
        def run(rid: int) -> DdlRefreshOutcome:
            tables = self.driver.list_tables()
            data = self._fetch_table(rid, table_name) if load else None
            return DdlRefreshOutcome(
                request_id=rid, tables=tables, table_name=table_name, table_data=data
            )

        return self._dispatch(Category.TABLE_DATA, DdlRefreshOutcome, run, "list tables")

    def request_commit(self) -> Optional[Operation]:
        """
        Fold local insert rows into the ledger and dispatch the commit.
        Statements are generated here, on the event loop.
        """
        if self.commit_in_flight:
            self.statusbar.info("Commit already in progress")
            return None
        if not self.ledger.has_changes() and not self.results.has_inserted_rows():
            return None

        self._folded_inserts = [
            self.ledger.stage_insert(insert) for insert in self.results.inserted_row_values()
        ]
        statements, parameter_sets = self.ledger.generate_statements()
        if not statements:
            self._unfold_inserts()
            return None

        self.commit_in_flight = True
        self.statusbar.info(f"Committing {len(statements)} change(s)...")

        def run(rid: int) -> CommitOutcome:
            outcome: CommitResult = execute_statements(self.driver, statements, parameter_sets)
            return CommitOutcome(
                request_id=rid,
                statements_executed=outcome.statements_executed,
                failed_index=outcome.failed_index,
                error=outcome.error,
            )

        return self._dispatch(Category.COMMIT, CommitOutcome, run, "commit")

    def _unfold_inserts(self) -> None:
        for handle in self._folded_inserts:
            self.ledger.unstage_insert(handle)
        self._folded_inserts = []

    def request_reconnect(self) -> Operation:
        self.statusbar.info("Reconnecting...")

        def run(rid: int) -> ReconnectOutcome:
            self.driver.reconnect()
            return ReconnectOutcome(request_id=rid, tables=self.driver.list_tables())

        return self._dispatch(Category.DATABASE, ReconnectOutcome, run, "reconnect")

    def initial_load(self) -> Operation:
        def run(rid: int) -> SwitchOutcome:
            return SwitchOutcome(
                request_id=rid,
                database=self.driver.database or "",
                tables=self.driver.list_tables(),
                databases=self.driver.list_databases(),
                initial=True,
            )

        return self._dispatch(Category.DATABASE, SwitchOutcome, run, "load catalog")

    def switch_database(self, name: str) -> Operation:
        def run(rid: int) -> SwitchOutcome:
            self.driver.switch_database(name)
            return SwitchOutcome(
                request_id=rid,
                database=name,
                tables=self.driver.list_tables(),
                databases=self.driver.list_databases(),
            )

        return self._dispatch(Category.DATABASE, SwitchOutcome, run, "switch database")

    def copy_database(self, source: str, target: str) -> Operation:
        def run(rid: int) -> CopyOutcome:
            self.driver.copy_database(source, target)
            return CopyOutcome(request_id=rid, target=target, databases=self.driver.list_databases())

        return self._dispatch(Category.COPY, CopyOutcome, run, "copy database")

    def drop_database(self, name: str) -> Operation:
        was_active = self.driver.database == name

        def run(rid: int) -> DropOutcome:
            self.driver.drop_database(name)
            outcome = DropOutcome(request_id=rid, dropped=name, databases=self.driver.list_databases())
            if was_active:
                outcome.switched_to = self.driver.database or ""
                outcome.tables = self.driver.list_tables()
            return outcome

        return self._dispatch(Category.DATABASE, DropOutcome, run, "drop database")

    # ── Results ───────────────────────────────────────────────

    def apply(self, result: Any) -> Optional[Operation]:
        """
        Merge one operation result into session state. Returns a follow-up
        operation (e.g. reload after commit) or None. Stale results are
        dropped.
        """
        if not self.is_current(result):
            logger.debug(f"Discarding stale result #{result.request_id} ({type(result).__name__})")
            if isinstance(result, CopyOutcome):
                self.statusbar.set_copying("")
            return None
        handler = {
            TableData: self._apply_table_data,
            QueryOutcome: self._apply_query,
            DdlRefreshOutcome: self._apply_ddl_refresh,
            CommitOutcome: self._apply_commit,
            ReconnectOutcome: self._apply_reconnect,
            SwitchOutcome: self._apply_switch,
            DropOutcome: self._apply_drop,
            CopyOutcome: self._apply_copy,
        }[type(result)]
        try:
            return handler(result)
        finally:
            self._sync_status()

    def _show_table(self, data: TableData) -> None:
        result = data.result
        self.results.set_data(result.columns, result.column_types, result.rows)
        self.results.set_table_context(data.table_name, data.primary_keys)
        self.statusbar.set_query_info(result.execution_ms, result.row_count)

    def _apply_table_data(self, data: TableData) -> None:
        if data.error:
            self.pending_dml_message = ""
            self.results.set_error(data.error)
            self.results.set_table_context("", [])
            self.statusbar.error(f"Error: {data.error}")
            return None
        self._show_table(data)
        if self.pending_dml_message:
            self.results.set_banner(self.pending_dml_message)
            self.statusbar.success(self.pending_dml_message)
            self.pending_dml_message = ""
        elif not data.primary_keys:
            self.statusbar.info("Read-only: table has no primary key")
        else:
            self.statusbar.success(f"Loaded {data.result.row_count} rows from {data.table_name}")
        return None

    def _apply_query(self, outcome: QueryOutcome) -> Optional[Operation]:
        if outcome.error:
            self.results.set_error(outcome.error)
            self.results.set_table_context("", [])
            self.statusbar.error(f"Query error: {outcome.error}")
            return None

        result = outcome.result
        if result.returns_rows:
            self._show_table(TableData(
                request_id=outcome.request_id,
                table_name=outcome.table_name,
                primary_keys=outcome.primary_keys,
                result=result,
            ))
            if outcome.table_name:
                self.active_table = outcome.table_name
            self.statusbar.success(f"Query returned {result.row_count} rows")
            return None

        affected = result.affected_rows
        self.statusbar.set_query_info(result.execution_ms, affected)
        self.statusbar.success(f"{affected} rows affected")

        ddl_table = extract_ddl_table_name(outcome.sql)
        if ddl_table:
            return self.refresh_after_ddl(ddl_table, is_create_table(outcome.sql))

        table = self.active_table or extract_table_name(outcome.sql)
        if table:
            self.pending_dml_message = f"✓ {affected} rows affected"
            self.active_table = table
            return self.load_table(table)
        self.results.set_info(f"{affected} rows affected")
        return None

    def _apply_ddl_refresh(self, outcome: DdlRefreshOutcome) -> None:
        if outcome.error:
            self.statusbar.error(f"DDL refresh error: {outcome.error}")
            return None
        self.sidebar.set_tables(outcome.tables)

        data = outcome.table_data
        if data is not None and not data.error:
            self.active_table = data.table_name
            self._show_table(data)
            self.statusbar.success(f"Created table {outcome.table_name}")
            return None

        if self.active_table == outcome.table_name and outcome.table_name not in outcome.tables:
            self.active_table = ""
            self.results.clear()
        self.statusbar.success(f"Tables refreshed ({len(outcome.tables)} tables)")
        return None

    def _apply_commit(self, outcome: CommitOutcome) -> Optional[Operation]:
        self.commit_in_flight = False
        if outcome.error:
            self._unfold_inserts()
            self.statusbar.error(f"Commit failed: {outcome.error}")
            return None
        self._folded_inserts = []
        self.ledger.clear()
        self.results.clear_inserted_rows()
        self.statusbar.success(f"Committed {outcome.statements_executed} changes")
        if self.active_table:
            return self.load_table(self.active_table)
        return None

    def _apply_reconnect(self, outcome: ReconnectOutcome) -> Optional[Operation]:
        if outcome.error:
            self.statusbar.error(f"Reconnect failed: {outcome.error}")
            return None
        self.sidebar.set_tables(outcome.tables)
        self.ledger.clear()
        self.results.clear_inserted_rows()
        self.statusbar.success(f"Reconnected ({len(outcome.tables)} tables)")
        if self.active_table:
            return self.load_table(self.active_table)
        return None

    def _reset_database_context(self, database: str, tables: List[str]) -> None:
        self.sidebar.set_tables(tables)
        self.sidebar.set_active_database(database)
        self.ledger.clear()
        self.active_table = ""
        self.results.clear()
        self._invalidate(Category.TABLE_DATA)

    def _apply_switch(self, outcome: SwitchOutcome) -> None:
        if outcome.error:
            self.statusbar.error(f"Switch failed: {outcome.error}")
            return None
        self._reset_database_context(outcome.database, outcome.tables)
        self.sidebar.set_databases(outcome.databases)
        verb = "Connected to" if outcome.initial else "Switched to"
        self.statusbar.success(f"{verb} {outcome.database} ({len(outcome.tables)} tables)")
        return None

    def _apply_drop(self, outcome: DropOutcome) -> None:
        if outcome.error:
            self.statusbar.error(f"Drop failed: {outcome.error}")
            return None
        self.sidebar.set_databases(outcome.databases)
        if outcome.switched_to:
            self._reset_database_context(outcome.switched_to, outcome.tables)
        self.statusbar.success(f"Dropped database {outcome.dropped}")
        return None

    def _apply_copy(self, outcome: CopyOutcome) -> None:
        self.statusbar.set_copying("")
        if outcome.error:
            self.statusbar.error(f"Copy failed: {outcome.error}")
            return None
        self.sidebar.set_databases(outcome.databases)
        self.statusbar.success(f"Created database {outcome.target}")
        return None

    # ── Scripts & Autosave ────────────────────────────────────

    def save_script(self, name: str) -> bool:
        if self.store is None:
            return False
        try:
            self.current_script = self.store.save_script(name, self.editor.value)
        except PgSheetError as e:
            self.statusbar.error(f"Save failed: {e}")
            return False
        self.statusbar.success(f"Saved {self.current_script}")
        return True

    def load_script(self, name: str) -> bool:
        if self.store is None:
            return False
        try:
            content = self.store.load_script(name)
        except PgSheetError as e:
            self.statusbar.error(f"Load failed: {e}")
            return False
        self.editor.set_value(content)
        self.current_script = name
        self.statusbar.success(f"Loaded {name}")
        return True

    def restore_autosave(self) -> None:
        if self.store is None:
            return
        try:
            self.editor.set_value(self.store.load_autosave())
        except PgSheetError as e:
            logger.warning(f"Autosave not restored: {e}")

    def autosave(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save_autosave(self.editor.value)
        except PgSheetError as e:
            logger.warning(f"Autosave failed: {e}")
