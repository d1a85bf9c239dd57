import pytest

from core.ledger import (
    NULL_SENTINEL,
    MutationLedger,
    OpKind,
    PendingDelete,
    PendingEdit,
    PendingInsert,
    RowKey,
    quote_ident,
)


def _edit(row_id="1", column="name", new="ann", table="users"):
    return PendingEdit(
        table=table,
        row_key=RowKey({"id": row_id}),
        column=column,
        old_value="alice",
        new_value=new,
    )


def test_row_key_equality_ignores_column_order():
    a = RowKey({"a": "1", "b": "2"})
    b = RowKey([("b", "2"), ("a", "1")])
    assert a == b
    assert hash(a) == hash(b)
    assert a == {"a": "1", "b": "2"}
    assert list(a) == ["a", "b"]


def test_row_key_is_immutable():
    key = RowKey({"id": "1"})
    with pytest.raises(TypeError):
        key["id"] = "2"


def test_quote_ident_doubles_embedded_quotes():
    assert quote_ident("users") == '"users"'
    assert quote_ident('we"ird') == '"we""ird"'


def test_second_edit_of_same_cell_overwrites():
    ledger = MutationLedger()
    ledger.stage_edit(_edit(new="ann"))
    ledger.stage_edit(_edit(new="anna"))

    assert ledger.pending_count() == 1
    assert ledger.undo_depth == 1
    assert ledger.get_edited_value("users", {"id": "1"}, "name") == ("anna", True)
    assert ledger.get_edited_value("users", {"id": "2"}, "name") == ("", False)


def test_unstage_delete_keeps_other_undo_entries_valid():
    ledger = MutationLedger()
    ledger.stage_edit(_edit(row_id="1"))
    ledger.stage_delete(PendingDelete(table="users", row_key=RowKey({"id": "2"})))
    ledger.stage_edit(_edit(row_id="3"))

    ledger.unstage_delete("users", {"id": "2"})
    assert not ledger.is_deleted("users", {"id": "2"})
    assert ledger.undo_depth == 2

    assert ledger.undo().kind == OpKind.EDIT
    assert [e.row_key["id"] for e in ledger.edits] == ["1"]
    assert ledger.undo().kind == OpKind.EDIT
    assert ledger.edits == ()
    assert ledger.undo() is None


def test_unstage_missing_delete_is_a_no_op():
    ledger = MutationLedger()
    ledger.unstage_delete("users", {"id": "9"})
    assert not ledger.has_changes()


def test_unstage_insert_by_handle():
    ledger = MutationLedger()
    first = ledger.stage_insert(PendingInsert(table="users", values={"id": "3"}))
    second = ledger.stage_insert(PendingInsert(table="users", values={"id": "4"}))
    assert first != second

    ledger.unstage_insert(first)
    assert [i.values["id"] for i in ledger.inserts] == ["4"]
    assert ledger.undo_depth == 1
    ledger.unstage_insert(first)
    assert ledger.pending_count() == 1


def test_generate_statements_orders_inserts_updates_deletes():
    ledger = MutationLedger()
    ledger.stage_delete(PendingDelete(table="users", row_key=RowKey({"id": "2"})))
    ledger.stage_edit(_edit(row_id="1", new="ann"))
    ledger.stage_insert(PendingInsert(table="users", values={"id": "3", "name": NULL_SENTINEL}))

    statements, params = ledger.generate_statements()

    assert statements == [
        'INSERT INTO "users" ("id", "name") VALUES ($1, NULL)',
        'UPDATE "users" SET "name" = $1 WHERE "id" = $2',
        'DELETE FROM "users" WHERE "id" = $1',
    ]
    assert params == [["3"], ["ann", "1"], ["2"]]


def test_null_values_are_never_bound():
    ledger = MutationLedger()
    ledger.stage_edit(PendingEdit(
        table="t",
        row_key=RowKey({"a": "1", "b": NULL_SENTINEL}),
        column="c",
        old_value="x",
        new_value=NULL_SENTINEL,
    ))

    statements, params = ledger.generate_statements()

    assert statements == ['UPDATE "t" SET "c" = NULL WHERE "a" = $1 AND "b" IS NULL']
    assert params == [["1"]]


def test_empty_insert_is_skipped():
    ledger = MutationLedger()
    ledger.stage_insert(PendingInsert(table="users", values={}))
    assert ledger.generate_statements() == ([], [])


def test_clear_drops_everything():
    ledger = MutationLedger()
    ledger.stage_edit(_edit())
    ledger.stage_delete(PendingDelete(table="users", row_key=RowKey({"id": "2"})))
    ledger.clear()
    assert not ledger.has_changes()
    assert ledger.undo() is None


@pytest.mark.parametrize("stage", [
    lambda ledger: ledger.stage_edit(_edit(row_id="5")),
    lambda ledger: ledger.stage_delete(PendingDelete(table="users", row_key=RowKey({"id": "5"}))),
    lambda ledger: ledger.stage_insert(PendingInsert(table="users", values={"id": "5"})),
], ids=["edit", "delete", "insert"])
def test_undo_reverts_exactly_one_staging_call(stage):
    ledger = MutationLedger()
    ledger.stage_edit(_edit(row_id="1"))
    ledger.stage_delete(PendingDelete(table="users", row_key=RowKey({"id": "2"})))
    before = (ledger.pending_count(), ledger.undo_depth)

    stage(ledger)
    assert ledger.pending_count() == before[0] + 1
    ledger.undo()

    assert (ledger.pending_count(), ledger.undo_depth) == before


def test_undo_after_overwritten_edit_removes_the_cell_edit():
    ledger = MutationLedger()
    ledger.stage_delete(PendingDelete(table="users", row_key=RowKey({"id": "2"})))
    ledger.stage_edit(_edit(new="ann"))
    ledger.stage_edit(_edit(new="anna"))
    assert ledger.undo_depth == 2

    assert ledger.undo().kind == OpKind.EDIT

    assert ledger.edits == ()
    assert ledger.get_edited_value("users", {"id": "1"}, "name") == ("", False)
    assert ledger.is_deleted("users", {"id": "2"})
    assert ledger.pending_count() == 1
