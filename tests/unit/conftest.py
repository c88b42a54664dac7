"""Shared fakes for the unit suite."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from bidwatch.auction.models import Auction, BidCandidate
from bidwatch.ledger.errors import LedgerUnavailable, TransactionNotFound
from bidwatch.ledger.models import TransactionOutput, Utxo, VerifiedTransaction
from bidwatch.storage.in_memory import InMemoryStorage

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
SELLER = "kaspa:qpseller0000000000000000000000000000000000000000000000000"
BUYER = "kaspa:qpbuyer00000000000000000000000000000000000000000000000000"


def verified_tx(transaction_id: str, amount: int, sender: str | None = BUYER) -> VerifiedTransaction:
    return VerifiedTransaction(
        transaction_id=transaction_id,
        is_accepted=True,
        blue_score=1000,
        outputs=(TransactionOutput(amount=amount, address=SELLER),),
        sender=sender,
        timestamp=NOW,
    )


def make_auction(
    auction_id: str = "a1",
    *,
    start_price: int = 100,
    minimum_increment: int = 10,
    seller: str = SELLER,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
) -> Auction:
    return Auction(
        id=auction_id,
        seller_address=seller,
        start_price=start_price,
        minimum_increment=minimum_increment,
        start_time=start_time or NOW - timedelta(hours=1),
        end_time=end_time or NOW + timedelta(hours=1),
        title=f"Auction {auction_id}",
    )


def candidate(transaction_id: str, amount: int, sender: str | None = None) -> BidCandidate:
    return BidCandidate(transaction_id=transaction_id, amount=amount, sender=sender, timestamp=NOW)


class FakeLedger:
    """Scripted stand-in for LedgerClient.

    ``transactions`` maps ids to verified transactions or to an exception to
    raise. ``snapshots`` is consumed one entry per ``fetch_address_utxos``
    call; an exception entry is raised instead of returned.
    """

    def __init__(self) -> None:
        self.transactions: dict[str, Any] = {}
        self.snapshots: list[Any] = []
        self.verify_calls: list[str] = []
        self.fetch_calls = 0
        self.endpoints = ["https://ledger.test"]

    def add(self, transaction_id: str, amount: int, sender: str | None = BUYER) -> None:
        self.transactions[transaction_id] = verified_tx(transaction_id, amount, sender)

    async def verify_transaction(self, transaction_id: str) -> VerifiedTransaction:
        self.verify_calls.append(transaction_id)
        await asyncio.sleep(0)
        result = self.transactions.get(transaction_id)
        if result is None:
            raise TransactionNotFound(transaction_id)
        if isinstance(result, BaseException):
            raise result
        return result

    async def fetch_address_utxos(self, address: str) -> list[Utxo]:
        self.fetch_calls += 1
        if not self.snapshots:
            return []
        snapshot = self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]
        if isinstance(snapshot, BaseException):
            raise snapshot
        return list(snapshot)

    async def get_network_info(self) -> dict[str, Any]:
        raise LedgerUnavailable("offline")


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()
