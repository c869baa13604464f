from __future__ import annotations


class ReconcilerError(Exception):
    """Base class for import/reconciliation failures."""


class ImportFileError(ReconcilerError, ValueError):
    """The whole file is unusable: empty, unreadable, or no adapter fits."""


class RowParseError(ReconcilerError, ValueError):
    """A single row looked like a trade but could not be parsed."""


class PersistenceError(ReconcilerError):
    def __init__(self, message: str, *, committed_batches: int = 0) -> None:
        super().__init__(message)
        self.committed_batches = committed_batches
