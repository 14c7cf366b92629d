"""
Exceptions for the manifest ledger
All of them surface to the caller unmodified; none is retried here.
"""
from typing import List, Optional


class LedgerError(Exception):
    """Base exception for ledger errors"""
    pass


class ValidationError(LedgerError):
    """Raised when caller input is out of range or incomplete"""
    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors) if errors else [message]
        super().__init__(message)

    @classmethod
    def from_errors(cls, errors: List[str]) -> 'ValidationError':
        return cls("; ".join(errors), errors)


class NotFoundError(LedgerError):
    """Raised when an entry or item does not exist in the current state"""
    pass


class ConcurrencyError(LedgerError):
    """Raised when a write loses a race against another writer"""
    def __init__(self, message: str, entry_id: Optional[str] = None,
                 expected_version: Optional[int] = None):
        self.entry_id = entry_id
        self.expected_version = expected_version
        super().__init__(message)
