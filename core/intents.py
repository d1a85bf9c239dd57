# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/intents.py — Pane → Coordinator Events
# ============================================================
#
# Panes never touch the database or the mutation ledger. Every
# user request leaves a pane as one of these intents and is
# acted on by the SessionCoordinator.
# ============================================================

from dataclasses import dataclass
from typing import Mapping, Union

from core.ledger import PendingEdit


@dataclass(frozen=True)
class TableSelected:
    name: str


@dataclass(frozen=True)
class DatabaseSelected:
    name: str


@dataclass(frozen=True)
class CopyDatabaseRequested:
    source: str
    target: str


@dataclass(frozen=True)
class DropDatabaseRequested:
    name: str


@dataclass(frozen=True)
class QueryExecuted:
    sql: str


@dataclass(frozen=True)
class EditBlocked:
    reason: str


@dataclass(frozen=True)
class CellEditStaged:
    edit: PendingEdit


@dataclass(frozen=True)
class RowDeleteToggled:
    table: str
    row_key: Mapping[str, str]


@dataclass(frozen=True)
class UndoRequested:
    pass


Intent = Union[
    TableSelected,
    DatabaseSelected,
    CopyDatabaseRequested,
    DropDatabaseRequested,
    QueryExecuted,
    EditBlocked,
    CellEditStaged,
    RowDeleteToggled,
    UndoRequested,
]
