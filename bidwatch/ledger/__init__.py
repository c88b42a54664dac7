"""Ledger indexer access: addresses, wire models, retry policy and client."""

from .addresses import SOMPI_PER_KAS, is_valid_address, to_kas, to_sompi, validate_address
from .client import LedgerClient
from .errors import InvalidAddressError, LedgerError, LedgerUnavailable, TransactionNotFound
from .models import TransactionOutput, TransactionRecord, Utxo, VerifiedTransaction
from .retry import RetryExhausted, RetryPolicy

__all__ = [
    "SOMPI_PER_KAS",
    "InvalidAddressError",
    "LedgerClient",
    "LedgerError",
    "LedgerUnavailable",
    "RetryExhausted",
    "RetryPolicy",
    "TransactionNotFound",
    "TransactionOutput",
    "TransactionRecord",
    "Utxo",
    "VerifiedTransaction",
    "is_valid_address",
    "to_kas",
    "to_sompi",
    "validate_address",
]
