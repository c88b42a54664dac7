"""Auction aggregate, status machine and settlement engine."""
