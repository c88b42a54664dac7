"""Ledger client error taxonomy."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for failures talking to the ledger indexer."""


class InvalidAddressError(LedgerError, ValueError):
    """Raised locally when an address does not match the ledger grammar."""


class TransactionNotFound(LedgerError):
    """The indexer answered definitively that the resource does not exist."""


class LedgerUnavailable(LedgerError):
    """Every endpoint exhausted its retry budget."""

    def __init__(self, message: str, last_error: BaseException | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error
