# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/ledger.py — Staged Mutation Ledger & SQL Generation
# ============================================================
#
# Cell edits, row deletions and row inserts are staged here and
# only reach the database when the commit protocol runs them in
# one transaction. Values are text; NULL_SENTINEL stands for NULL.
# ============================================================

import itertools
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Tuple, Union

NULL_SENTINEL = "<NULL>"


def quote_ident(name: str) -> str:
    """Quote a table or column name as a PostgreSQL identifier."""
    return '"' + name.replace('"', '""') + '"'


# ════════════════════════════════════════════════════════════
# ROW IDENTITY
# ════════════════════════════════════════════════════════════

class RowKey(Mapping[str, str]):
    """
    Immutable primary-key column → value mapping identifying one row.

    Column order is kept for SQL generation; equality and hashing ignore
    it, so {"a": "1", "b": "2"} equals {"b": "2", "a": "1"}.
    """

    __slots__ = ("_items", "_lookup")

    def __init__(self, values: Union[Mapping[str, str], Iterable[Tuple[str, str]]] = ()):
        items = tuple(values.items()) if isinstance(values, Mapping) else tuple(values)
        self._items: Tuple[Tuple[str, str], ...] = items
        self._lookup: Dict[str, str] = dict(items)

    def __getitem__(self, column: str) -> str:
        return self._lookup[column]

    def __iter__(self) -> Iterator[str]:
        return (col for col, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return self._lookup == dict(other.items())
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._lookup.items()))

    def __repr__(self) -> str:
        inner = ", ".join(f"{col}={val!r}" for col, val in self._items)
        return f"RowKey({inner})"


# ════════════════════════════════════════════════════════════
# STAGED ENTRIES
# ════════════════════════════════════════════════════════════

@dataclass
class PendingEdit:
    """Set `column` to `new_value` for the row `row_key` of `table`."""
    table: str
    row_key: RowKey
    column: str
    old_value: str
    new_value: str
    handle: int = 0


@dataclass
class PendingDelete:
    """Remove the row `row_key` from `table`."""
    table: str
    row_key: RowKey
    handle: int = 0


@dataclass
class PendingInsert:
    """A new row; `values` is column → text in column order."""
    table: str
    values: Dict[str, str] = field(default_factory=dict)
    handle: int = 0


class OpKind(Enum):
    EDIT = "edit"
    DELETE = "delete"
    INSERT = "insert"


@dataclass(frozen=True)
class UndoEntry:
    kind: OpKind
    handle: int


# ════════════════════════════════════════════════════════════
# LEDGER
# ════════════════════════════════════════════════════════════

class LedgerView(Protocol):
    """The read-only slice of the ledger that panes render from."""

    def is_deleted(self, table: str, row_key: Mapping[str, str]) -> bool: ...

    def get_edited_value(
            self, table: str, row_key: Mapping[str, str], column: str
    ) -> Tuple[str, bool]: ...

    def pending_count(self) -> int: ...


class MutationLedger:
    """
    Ordered log of staged edits, deletes and inserts plus an undo stack.

    Undo entries reference the staged entry by a handle taken from a
    monotonic counter, so removing one entry never shifts what another
    undo entry points at.
    """

    def __init__(self):
        self._edits: List[PendingEdit] = []
        self._deletes: List[PendingDelete] = []
        self._inserts: List[PendingInsert] = []
        self._undo_stack: List[UndoEntry] = []
        self._handles = itertools.count(1)

    # ── Read Access ───────────────────────────────────────────

    @property
    def edits(self) -> Tuple[PendingEdit, ...]:
        return tuple(self._edits)

    @property
    def deletes(self) -> Tuple[PendingDelete, ...]:
        return tuple(self._deletes)

    @property
    def inserts(self) -> Tuple[PendingInsert, ...]:
        return tuple(self._inserts)

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    def has_changes(self) -> bool:
        return bool(self._edits or self._deletes or self._inserts)

    def pending_count(self) -> int:
        return len(self._edits) + len(self._deletes) + len(self._inserts)

    # ── Staging ───────────────────────────────────────────────

    def stage_edit(self, edit: PendingEdit) -> None:
        """Stage a cell edit; a second edit of the same cell overwrites the first."""
        key = RowKey(edit.row_key)
        for existing in self._edits:
            if (existing.table == edit.table
                    and existing.column == edit.column
                    and existing.row_key == key):
                existing.new_value = edit.new_value
                return
        staged = replace(edit, row_key=key, handle=next(self._handles))
        self._edits.append(staged)
        self._undo_stack.append(UndoEntry(OpKind.EDIT, staged.handle))

    def stage_delete(self, delete: PendingDelete) -> None:
        """Stage a row deletion. Callers check is_deleted() first."""
        staged = replace(delete, row_key=RowKey(delete.row_key), handle=next(self._handles))
        self._deletes.append(staged)
        self._undo_stack.append(UndoEntry(OpKind.DELETE, staged.handle))

    def unstage_delete(self, table: str, row_key: Mapping[str, str]) -> None:
        """Drop a staged deletion and its undo entry. No-op when absent."""
        key = RowKey(row_key)
        for i, staged in enumerate(self._deletes):
            if staged.table == table and staged.row_key == key:
                del self._deletes[i]
                self._forget(OpKind.DELETE, staged.handle)
                return

    def is_deleted(self, table: str, row_key: Mapping[str, str]) -> bool:
        key = RowKey(row_key)
        return any(d.table == table and d.row_key == key for d in self._deletes)

    def get_edited_value(
            self,
            table: str,
            row_key: Mapping[str, str],
            column: str,
    ) -> Tuple[str, bool]:
        """Staged new value for a cell, as (value, found)."""
        key = RowKey(row_key)
        for edit in self._edits:
            if edit.table == table and edit.column == column and edit.row_key == key:
                return edit.new_value, True
        return "", False

    def stage_insert(self, insert: PendingInsert) -> int:
        """Stage a new row. Returns the handle of the staged entry."""
        staged = replace(insert, values=dict(insert.values), handle=next(self._handles))
        self._inserts.append(staged)
        self._undo_stack.append(UndoEntry(OpKind.INSERT, staged.handle))
        return staged.handle

    def unstage_insert(self, handle: int) -> None:
        """Drop the staged insert with `handle` and its undo entry. No-op when absent."""
        for i, staged in enumerate(self._inserts):
            if staged.handle == handle:
                del self._inserts[i]
                self._forget(OpKind.INSERT, handle)
                return

    # ── Undo / Clear ──────────────────────────────────────────

    def undo(self) -> Optional[UndoEntry]:
        """Revert the most recent staging action. Returns what was undone."""
        if not self._undo_stack:
            return None
        entry = self._undo_stack.pop()
        entries = self._collection(entry.kind)
        for i, staged in enumerate(entries):
            if staged.handle == entry.handle:
                del entries[i]
                break
        return entry

    def clear(self) -> None:
        self._edits.clear()
        self._deletes.clear()
        self._inserts.clear()
        self._undo_stack.clear()

    def _collection(self, kind: OpKind) -> list:
        return {
            OpKind.EDIT: self._edits,
            OpKind.DELETE: self._deletes,
            OpKind.INSERT: self._inserts,
        }[kind]

    def _forget(self, kind: OpKind, handle: int) -> None:
        for j in range(len(self._undo_stack) - 1, -1, -1):
            entry = self._undo_stack[j]
            if entry.kind == kind and entry.handle == handle:
                del self._undo_stack[j]
                return

    # ── SQL Generation ────────────────────────────────────────

    def generate_statements(self) -> Tuple[List[str], List[List[str]]]:
        """
        Translate the ledger into parameterized statements.

        Order: every INSERT, then every UPDATE, then every DELETE, each
        phase in staging order. Placeholders are numbered $1..$n per
        statement; NULL_SENTINEL values are written as literal NULL (or
        IS NULL in WHERE clauses) and not bound.
        """
        statements: List[str] = []
        parameter_sets: List[List[str]] = []

        for insert in self._inserts:
            if not insert.values:
                continue
            sql, params = _insert_sql(insert)
            statements.append(sql)
            parameter_sets.append(params)

        for edit in self._edits:
            sql, params = _update_sql(edit)
            statements.append(sql)
            parameter_sets.append(params)

        for delete in self._deletes:
            sql, params = _delete_sql(delete)
            statements.append(sql)
            parameter_sets.append(params)

        return statements, parameter_sets

    def __repr__(self) -> str:
        return (
            f"<MutationLedger edits={len(self._edits)} deletes={len(self._deletes)} "
            f"inserts={len(self._inserts)}>"
        )


def _insert_sql(insert: PendingInsert) -> Tuple[str, List[str]]:
    columns: List[str] = []
    placeholders: List[str] = []
    params: List[str] = []
    for column, value in insert.values.items():
        columns.append(quote_ident(column))
        if value == NULL_SENTINEL:
            placeholders.append("NULL")
        else:
            params.append(value)
            placeholders.append(f"${len(params)}")
    sql = (
        f"INSERT INTO {quote_ident(insert.table)} ({', '.join(columns)}) "
        f"VALUES ({', '.join(placeholders)})"
    )
    return sql, params


def _where_clause(row_key: RowKey, params: List[str]) -> str:
    parts: List[str] = []
    for column, value in row_key.items():
        if value == NULL_SENTINEL:
            parts.append(f"{quote_ident(column)} IS NULL")
        else:
            params.append(value)
            parts.append(f"{quote_ident(column)} = ${len(params)}")
    return " AND ".join(parts)


def _update_sql(edit: PendingEdit) -> Tuple[str, List[str]]:
    params: List[str] = []
    if edit.new_value == NULL_SENTINEL:
        set_clause = f"{quote_ident(edit.column)} = NULL"
    else:
        params.append(edit.new_value)
        set_clause = f"{quote_ident(edit.column)} = $1"
    where = _where_clause(edit.row_key, params)
    return f"UPDATE {quote_ident(edit.table)} SET {set_clause} WHERE {where}", params


def _delete_sql(delete: PendingDelete) -> Tuple[str, List[str]]:
    params: List[str] = []
    where = _where_clause(delete.row_key, params)
    return f"DELETE FROM {quote_ident(delete.table)} WHERE {where}", params
