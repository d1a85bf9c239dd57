import os
import re
import sys
from contextlib import contextmanager
from typing import Dict, List, Optional, Tuple

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import ConnectionFailedError, StatementError
from core.pg_manager import QueryResult
from core.session import SessionCoordinator
from core.storage import LocalStore
from utils.helpers import detect_query_type

_LOAD_RE = re.compile(r'^SELECT \* FROM "(\w+)" LIMIT \d+$')


class FakeTransaction:
    def __init__(self, driver: "FakeDriver"):
        self._driver = driver
        self.statements: List[Tuple[str, List[str]]] = []

    def execute(self, sql: str, params=()) -> int:
        index = len(self.statements)
        self.statements.append((sql, list(params)))
        if self._driver.fail_at == index:
            raise StatementError("duplicate key value violates unique constraint", sql=sql)
        return 1


class FakeDriver:
    """In-memory stand-in for PostgresManager."""

    def __init__(self, database: str = "app"):
        self.database = database
        self.tables: List[str] = []
        self.databases: List[str] = [database, "postgres"]
        self.primary_keys: Dict[str, List[str]] = {}
        self.data: Dict[str, Tuple[List[str], List[List[str]]]] = {}
        self.results: Dict[str, QueryResult] = {}
        self.queries: List[str] = []
        self.transactions: List[Tuple[List[Tuple[str, List[str]]], str]] = []
        self.fail_at: Optional[int] = None
        self.connected = True
        self.reconnects = 0

    def add_table(self, name: str, columns: List[str], rows: List[List[str]], primary_keys=()):
        self.tables.append(name)
        self.data[name] = (columns, rows)
        self.primary_keys[name] = list(primary_keys)

    @contextmanager
    def transaction(self):
        if not self.connected:
            raise ConnectionFailedError("Not connected to PostgreSQL.")
        tx = FakeTransaction(self)
        try:
            yield tx
        except Exception:
            self.transactions.append((tx.statements, "rolled_back"))
            raise
        self.transactions.append((tx.statements, "committed"))

    def execute_query(self, query: str, params=None) -> QueryResult:
        self.queries.append(query)
        if query in self.results:
            return self.results[query]
        match = _LOAD_RE.match(query)
        if match:
            table = match.group(1)
            if table not in self.data:
                return QueryResult(False, query, error=f'relation "{table}" does not exist')
            columns, rows = self.data[table]
            return QueryResult(
                True,
                query,
                columns=list(columns),
                column_types=["text"] * len(columns),
                rows=[list(row) for row in rows],
                query_type="SELECT",
            )
        return QueryResult(True, query, affected_rows=1, query_type=detect_query_type(query))

    def list_tables(self) -> List[str]:
        return sorted(self.tables)

    def list_databases(self) -> List[str]:
        return sorted(self.databases)

    def get_primary_keys(self, table_name: str) -> List[str]:
        return list(self.primary_keys.get(table_name, []))

    def switch_database(self, database_name: str) -> None:
        if database_name not in self.databases:
            raise ConnectionFailedError(f'database "{database_name}" does not exist')
        self.database = database_name

    def copy_database(self, source: str, target: str) -> None:
        self.databases.append(target)

    def drop_database(self, name: str) -> None:
        if self.database == name:
            self.database = "postgres"
        self.databases.remove(name)

    def reconnect(self) -> None:
        self.reconnects += 1
        self.connected = True

    def conn_info(self) -> str:
        return f"postgres://tester@localhost:5432/{self.database}"


@pytest.fixture()
def fake_driver() -> FakeDriver:
    driver = FakeDriver()
    driver.add_table(
        "users",
        ["id", "name"],
        [["1", "alice"], ["2", "bob"]],
        primary_keys=["id"],
    )
    driver.add_table("logs", ["message"], [["started"]])
    return driver


@pytest.fixture()
def store(tmp_path) -> LocalStore:
    return LocalStore(tmp_path / "pgsheet")


@pytest.fixture()
def coordinator(fake_driver, store) -> SessionCoordinator:
    return SessionCoordinator(fake_driver, row_limit=100, store=store, status_ttl=3.0)


@pytest.fixture()
def drain():
    """Run an operation and every follow-up it produces, applying each result."""

    def _drain(coordinator: SessionCoordinator, operation) -> None:
        while operation is not None:
            operation = coordinator.apply(operation.execute())

    return _drain
