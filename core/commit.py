# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/commit.py — All-or-Nothing Commit of the Mutation Ledger
# ============================================================

from dataclasses import dataclass
from typing import ContextManager, List, Optional, Protocol, Sequence

from loguru import logger

from core.errors import CommitError, PgSheetError
from core.ledger import MutationLedger


class Transaction(Protocol):
    def execute(self, sql: str, params: Sequence[str] = ()) -> int:
        ...


class TransactionalDriver(Protocol):
    """Anything that can open a transaction (PostgresManager, test fakes)."""

    def transaction(self) -> ContextManager[Transaction]:
        ...


@dataclass
class CommitResult:
    statements_executed: int = 0
    error: Optional[str] = None
    failed_index: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def __repr__(self):
        if self.success:
            return f"<CommitResult OK statements={self.statements_executed}>"
        return f"<CommitResult ERROR at #{self.failed_index}: {self.error}>"


def execute_statements(
        driver: TransactionalDriver,
        statements: List[str],
        parameter_sets: List[List[str]],
) -> CommitResult:
    """
    Run `statements` in one transaction, in order.

    The first failing statement aborts the loop; leaving the transaction
    block with an exception rolls everything back.
    """
    if not statements:
        return CommitResult(statements_executed=0)

    try:
        with driver.transaction() as tx:
            for index, sql in enumerate(statements):
                params = parameter_sets[index] if index < len(parameter_sets) else []
                try:
                    tx.execute(sql, params)
                except PgSheetError as e:
                    raise CommitError(str(e), statement_index=index, sql=sql) from e
    except CommitError as e:
        logger.warning(f"Commit rolled back at statement #{e.statement_index}: {e}\nSQL: {e.sql}")
        return CommitResult(error=f"exec: {e}", failed_index=e.statement_index)
    except PgSheetError as e:
        logger.error(f"Commit failed: {e}")
        return CommitResult(error=f"commit: {e}")

    logger.info(f"Committed {len(statements)} staged statement(s)")
    return CommitResult(statements_executed=len(statements))


def commit(ledger: MutationLedger, driver: TransactionalDriver) -> CommitResult:
    """
    Execute every staged change of `ledger` atomically.

    The ledger is never cleared here: on failure the user can retry or
    inspect it, on success the caller clears it.
    """
    statements, parameter_sets = ledger.generate_statements()
    return execute_statements(driver, statements, parameter_sets)
