# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/errors.py — Error Taxonomy
# ============================================================

from typing import Optional


class PgSheetError(Exception):
    """Base class for every error raised by the session engine."""


class ConnectionFailedError(PgSheetError):
    """Dial, authentication or timeout failure. Fatal to the operation only."""


class StatementError(PgSheetError):
    """SQL error reported by the server (syntax, constraint, permission...)."""

    def __init__(self, message: str, sql: Optional[str] = None):
        super().__init__(message)
        self.sql = sql


class EditBlockedError(PgSheetError):
    """Edit or delete attempted on a row without a stable identity."""


class CommitError(PgSheetError):
    """A staged statement failed; the whole transaction was rolled back."""

    def __init__(self, message: str, statement_index: int, sql: str):
        super().__init__(message)
        self.statement_index = statement_index
        self.sql = sql


class StorageError(PgSheetError):
    """Saved connections, scripts or autosave could not be read or written."""
