# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/pg_manager.py — PostgreSQL Connection & Operations Manager
# ============================================================

import re
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import psycopg2
import psycopg2.extensions
from loguru import logger

from config import PostgresConfig, pg_config
from core.errors import ConnectionFailedError, StatementError
from core.ledger import NULL_SENTINEL, quote_ident
from utils.helpers import detect_query_type, is_row_returning

# Common PostgreSQL type OIDs → display names for column headers.
_OID_NAMES = {
    16: "bool",
    20: "int8",
    21: "int2",
    23: "int4",
    25: "text",
    114: "json",
    700: "float4",
    701: "float8",
    1042: "bpchar",
    1043: "varchar",
    1082: "date",
    1114: "timestamp",
    1184: "timestamptz",
    1700: "numeric",
    2950: "uuid",
    3802: "jsonb",
}

# Quoted identifiers, string literals, $n placeholders and stray percent signs.
_PARAM_SCAN_RE = re.compile(r"\"(?:[^\"]|\"\")*\"|'(?:[^']|'')*'|\$(\d+)|%")


def oid_to_type_name(oid: int) -> str:
    return _OID_NAMES.get(oid, f"oid:{oid}")


def to_pyformat(sql: str, params: Sequence[Any]) -> Tuple[str, List[Any]]:
    """
    Rewrite $1..$n placeholders into psycopg2's %s style.

    Literal percent signs are doubled so psycopg2 does not read them as
    placeholders. Returns the rewritten SQL and the arguments in the order
    the %s markers appear.
    """
    ordered: List[Any] = []

    def _sub(match: "re.Match") -> str:
        token = match.group(0)
        if match.group(1) is not None:
            ordered.append(params[int(match.group(1)) - 1])
            return "%s"
        return token.replace("%", "%%")

    return _PARAM_SCAN_RE.sub(_sub, sql), ordered


class QueryResult:
    """Structured result from one statement execution."""

    def __init__(
        self,
        success: bool,
        query: str,
        columns: Optional[List[str]] = None,
        column_types: Optional[List[str]] = None,
        rows: Optional[List[List[str]]] = None,
        affected_rows: int = 0,
        error: Optional[str] = None,
        execution_ms: int = 0,
        query_type: str = "UNKNOWN",
    ):
        self.success = success
        self.query = query
        self.columns = columns or []
        self.column_types = column_types or []
        self.rows = rows or []
        self.affected_rows = affected_rows
        self.error = error
        self.execution_ms = execution_ms
        self.query_type = query_type

    @property
    def returns_rows(self) -> bool:
        return is_row_returning(self.query)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def raise_for_error(self) -> "QueryResult":
        if not self.success:
            raise StatementError(self.error or "unknown error", sql=self.query)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "query": self.query,
            "columns": self.columns,
            "column_types": self.column_types,
            "rows": self.rows,
            "affected_rows": self.affected_rows,
            "error": self.error,
            "execution_ms": self.execution_ms,
            "query_type": self.query_type,
        }

    def __repr__(self):
        if self.success:
            return f"<QueryResult OK rows={len(self.rows)} time={self.execution_ms}ms>"
        return f"<QueryResult ERROR: {self.error}>"


@dataclass
class ColumnInfo:
    name: str
    data_type: str
    nullable: bool
    default: Optional[str]


def _cell_text(value: Any) -> str:
    if value is None:
        return NULL_SENTINEL
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _error_text(e: psycopg2.Error) -> str:
    message = (e.pgerror or str(e)).strip()
    return message.splitlines()[0] if message else e.__class__.__name__


class _TransactionCursor:
    """Executes statements inside an open transaction."""

    def __init__(self, cursor: psycopg2.extensions.cursor):
        self._cursor = cursor

    def execute(self, sql: str, params: Sequence[str] = ()) -> int:
        query, args = to_pyformat(sql, params) if params else (sql, [])
        try:
            self._cursor.execute(query, args or None)
        except psycopg2.Error as e:
            raise StatementError(_error_text(e), sql=sql) from e
        return self._cursor.rowcount


class PostgresManager:
    """
    Owns the single PostgreSQL connection of a session and provides
    statement execution, transactions, and catalog introspection.

    Every use of the connection holds `_lock`. Operations run in worker
    threads, so a statement issued while a transaction is open waits
    for it to commit or roll back instead of joining it.
    """

    def __init__(self, config: PostgresConfig = pg_config):
        self._config = config
        self._lock = threading.RLock()
        self._connection: Optional[psycopg2.extensions.connection] = None
        self._uri: Optional[str] = None
        self._database: Optional[str] = None
        self._user: str = config.user
        self._host: str = config.host
        self._port: str = str(config.port)

    # ── Connection Management ─────────────────────────────────

    def connect(self, database: Optional[str] = None, uri: Optional[str] = None) -> None:
        """Open the connection. Raises ConnectionFailedError."""
        with self._lock:
            self._uri = uri or self._config.uri
            self._connection = self._open(database or self._config.database)
            self._read_dsn_parameters()
        logger.info(f"Connected to {self.conn_info()}")

    def _open(self, database: Optional[str]) -> psycopg2.extensions.connection:
        try:
            if self._uri:
                params = self._config.get_session_params()
                if database:
                    params["dbname"] = database
                conn = psycopg2.connect(self._uri, **params)
            else:
                conn = psycopg2.connect(**self._config.get_connection_params(database))
            conn.autocommit = True
            return conn
        except psycopg2.Error as e:
            logger.error(f"PostgreSQL connection failed: {e}")
            raise ConnectionFailedError(_error_text(e)) from e

    def _read_dsn_parameters(self) -> None:
        dsn = self._connection.get_dsn_parameters()
        self._database = dsn.get("dbname", self._database)
        self._user = dsn.get("user", self._user)
        self._host = dsn.get("host", self._host)
        self._port = dsn.get("port", self._port)

    def disconnect(self) -> None:
        """Close the connection gracefully."""
        with self._lock:
            try:
                if self._connection is not None and not self._connection.closed:
                    self._connection.close()
                    logger.info("Disconnected from PostgreSQL")
            except psycopg2.Error as e:
                logger.warning(f"Error during disconnect: {e}")
            finally:
                self._connection = None

    def is_connected(self) -> bool:
        with self._lock:
            if self._connection is None or self._connection.closed:
                return False
            try:
                with self._connection.cursor() as cursor:
                    cursor.execute("SELECT 1")
                return True
            except psycopg2.Error:
                return False

    def reconnect(self) -> None:
        """Re-open with the original connection parameters and database."""
        with self._lock:
            database = self._database
            self.disconnect()
            self._connection = self._open(database)
            self._read_dsn_parameters()
        logger.info(f"Reconnected to {self.conn_info()}")

    def _require_connection(self) -> psycopg2.extensions.connection:
        if self._connection is None or self._connection.closed:
            raise ConnectionFailedError("Not connected to PostgreSQL. Press Ctrl+R to reconnect.")
        return self._connection

    # ── Database Selection ────────────────────────────────────

    @property
    def database(self) -> Optional[str]:
        return self._database

    @property
    def user(self) -> str:
        return self._user

    def switch_database(self, database_name: str) -> None:
        """Connect to another database; the old connection survives a failure."""
        with self._lock:
            new_connection = self._open(database_name)
            self.disconnect()
            self._connection = new_connection
            self._read_dsn_parameters()
        logger.info(f"Switched to database: {database_name}")

    def conn_info(self) -> str:
        """Display-safe connection string (no password)."""
        return f"postgres://{self._user}@{self._host}:{self._port}/{self._database}"

    # ── Query Execution ───────────────────────────────────────

    def execute_query(self, query: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """
        Execute one statement and return a structured QueryResult.
        Row-returning statements (SELECT / WITH / EXPLAIN) fetch all rows
        as text; anything else reports the affected row count.
        """
        with self._lock:
            return self._execute(query, params)

    def _execute(self, query: str, params: Optional[Sequence[Any]]) -> QueryResult:
        query = query.strip()
        if not query:
            return QueryResult(success=False, query=query, error="empty query")

        query_type = detect_query_type(query)
        start_time = time.time()
        try:
            conn = self._require_connection()
        except ConnectionFailedError as e:
            return QueryResult(success=False, query=query, error=str(e), query_type=query_type)

        sql, args = to_pyformat(query, params) if params else (query, None)
        try:
            with conn.cursor() as cursor:
                cursor.execute(sql, args)
                if is_row_returning(query) and cursor.description is not None:
                    columns = [desc.name for desc in cursor.description]
                    column_types = [oid_to_type_name(desc.type_code) for desc in cursor.description]
                    rows = [[_cell_text(v) for v in row] for row in cursor.fetchall()]
                    elapsed = int((time.time() - start_time) * 1000)
                    return QueryResult(
                        success=True,
                        query=query,
                        columns=columns,
                        column_types=column_types,
                        rows=rows,
                        execution_ms=elapsed,
                        query_type=query_type,
                    )
                elapsed = int((time.time() - start_time) * 1000)
                return QueryResult(
                    success=True,
                    query=query,
                    affected_rows=max(cursor.rowcount, 0),
                    execution_ms=elapsed,
                    query_type=query_type,
                )
        except psycopg2.Error as e:
            elapsed = int((time.time() - start_time) * 1000)
            logger.error(f"Query failed: {e}\nQuery: {query}")
            return QueryResult(
                success=False,
                query=query,
                error=_error_text(e),
                execution_ms=elapsed,
                query_type=query_type,
            )

    @contextmanager
    def transaction(self) -> Iterator[_TransactionCursor]:
        """
        BEGIN on entry, COMMIT on clean exit, ROLLBACK when the block
        raises. The connection returns to autocommit afterwards. The lock
        is held for the whole block, so other threads' statements run
        before BEGIN or after COMMIT/ROLLBACK, never inside.
        """
        with self._lock:
            conn = self._require_connection()
            conn.autocommit = False
            try:
                with conn.cursor() as cursor:
                    yield _TransactionCursor(cursor)
                conn.commit()
            except psycopg2.Error as e:
                self._rollback(conn)
                raise StatementError(_error_text(e)) from e
            except Exception:
                self._rollback(conn)
                raise
            finally:
                if not conn.closed:
                    conn.autocommit = True

    @staticmethod
    def _rollback(conn: psycopg2.extensions.connection) -> None:
        try:
            conn.rollback()
            logger.info("Transaction rolled back")
        except psycopg2.Error as e:
            logger.warning(f"Rollback failed: {e}")

    def _fetch_column(self, query: str, params: Optional[Sequence[Any]] = None) -> List[str]:
        result = self.execute_query(query, params).raise_for_error()
        return [row[0] for row in result.rows]

    # ── Catalog Introspection ─────────────────────────────────

    def list_databases(self) -> List[str]:
        """Non-template databases, sorted by name."""
        return self._fetch_column(
            "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname"
        )

    def list_tables(self) -> List[str]:
        """Base tables of the public schema, sorted by name."""
        return self._fetch_column(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """
        )

    def get_primary_keys(self, table_name: str) -> List[str]:
        """Primary-key columns of `table_name` in key order."""
        return self._fetch_column(
            """
            SELECT kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
            WHERE tc.constraint_type = 'PRIMARY KEY'
              AND tc.table_name = $1
              AND tc.table_schema = 'public'
            ORDER BY kcu.ordinal_position
            """,
            [table_name],
        )

    def get_columns(self, table_name: str) -> List[ColumnInfo]:
        result = self.execute_query(
            """
            SELECT column_name, data_type, is_nullable, column_default
            FROM information_schema.columns
            WHERE table_name = $1
              AND table_schema = 'public'
            ORDER BY ordinal_position
            """,
            [table_name],
        ).raise_for_error()
        return [
            ColumnInfo(
                name=row[0],
                data_type=row[1],
                nullable=row[2] == "YES",
                default=None if row[3] == NULL_SENTINEL else row[3],
            )
            for row in result.rows
        ]

    # ── Database Administration ───────────────────────────────

    def create_database(self, name: str, template_name: str, owner: str) -> None:
        self.execute_query(
            f"CREATE DATABASE {quote_ident(name)} "
            f"WITH TEMPLATE {quote_ident(template_name)} OWNER {quote_ident(owner)}"
        ).raise_for_error()
        logger.info(f"Created database {name} from template {template_name}")

    def copy_database(self, source: str, target: str) -> None:
        """
        Clone `source` into `target`. A template database must have no
        open connections, so when connected to `source` this hops to the
        administrative database for the duration of the copy.
        """
        with self._lock:
            previous = self._database
            on_source = previous == source
            if on_source:
                self.switch_database(self._config.admin_database)
            try:
                self.create_database(target, source, self._user)
            finally:
                if on_source:
                    self.switch_database(previous)

    def drop_database(self, name: str) -> None:
        """Drop `name`; when it is the active database, stay on the admin database."""
        with self._lock:
            if self._database == name:
                self.switch_database(self._config.admin_database)
            self.execute_query(f"DROP DATABASE {quote_ident(name)}").raise_for_error()
        logger.info(f"Dropped database {name}")
