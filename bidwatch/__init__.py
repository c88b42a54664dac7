"""Ledger-observed live auction server."""

__version__ = "0.1.0"
