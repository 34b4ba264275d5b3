"""Error taxonomy for ledger operations."""

from typing import Optional

# Postgres unique_violation, as reported by the remote store.
UNIQUE_VIOLATION = "23505"


class LedgerError(Exception):
    """Base class for all ledger errors."""


class ValidationError(LedgerError):
    """Malformed input, detected before any store call."""


class MalformedRowError(ValidationError):
    """A store row that cannot be decoded into a domain record."""


class NotFoundError(LedgerError):
    """A referenced vehicle, trip or record does not exist."""


class DuplicateError(LedgerError):
    """Plate number already used by another vehicle of the same owner."""


class StoreError(LedgerError):
    """Underlying record store failure."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class PartialWriteWarning(UserWarning):
    """
    The primary write of a compound operation succeeded but a secondary
    write failed. State converges on the next refresh.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause
