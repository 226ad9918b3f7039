"""Exception hierarchy for ledger-doctor."""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base exception for all ledger-doctor errors."""


class ConfigurationError(LedgerError):
    """Raised when configuration is invalid or missing."""


class SchemaResolutionError(LedgerError, ValueError):
    """Raised when a ledger header lacks the columns an import cannot do without."""

    def __init__(self, message: str, missing: list[str] | None = None, headers: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = list(missing or [])
        self.headers = list(headers or [])


class StoreError(LedgerError):
    """Raised when the persistent store rejects or fails a request."""


class EntityNotFoundError(LedgerError):
    """Raised when a referenced customer does not exist."""


class ReconcileError(LedgerError):
    """Raised when a batch fails; ``result`` holds the counters gathered so far."""

    def __init__(self, message: str, result: Any) -> None:
        super().__init__(message)
        self.result = result
