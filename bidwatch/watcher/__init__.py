"""Ledger polling and auction routing."""
