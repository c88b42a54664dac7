"""Routing of watcher candidates into settlement and event publication."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from bidwatch.auction.errors import BidRejected, RejectReason, SettlementContention
from bidwatch.auction.models import AuctionStatus, Bid
from bidwatch.watcher.monitor import AuctionMonitor

from conftest import NOW, SELLER, candidate, make_auction

OTHER_SELLER = "kaspa:qpother000000000000000000000000000000000000000000000000"


@pytest.fixture
def watcher():
    watcher = MagicMock()
    watcher.start.side_effect = lambda address, callback: MagicMock(address=address, stopped=False)
    watcher.stop_all = AsyncMock()
    return watcher


@pytest.fixture
def engine():
    engine = AsyncMock()
    engine.on_expired = MagicMock()
    return engine


@pytest.fixture
def publisher():
    return AsyncMock()


@pytest.fixture
def monitor(watcher, engine, publisher):
    return AuctionMonitor(watcher, engine, publisher)


def accepted_bid(auction_id: str, tx: str = "tx1", amount: int = 120) -> Bid:
    return Bid(id=tx, auction_id=auction_id, bidder_address=None, amount=amount, timestamp=NOW, tx_hash=tx)


class TestRouting:
    def test_one_watcher_per_address(self, monitor, watcher):
        monitor.watch(make_auction("a1"))
        monitor.watch(make_auction("a2"))
        monitor.watch(make_auction("b1", seller=OTHER_SELLER))

        assert watcher.start.call_count == 2
        assert monitor.routes() == {OTHER_SELLER: ["b1"], SELLER: ["a1", "a2"]}

    def test_ended_auctions_are_not_watched(self, monitor, watcher):
        auction = make_auction()
        auction.status = AuctionStatus.ENDED

        assert monitor.watch(auction) is None
        watcher.start.assert_not_called()

    def test_watcher_stops_with_last_auction_on_address(self, monitor, watcher):
        monitor.watch(make_auction("a1"))
        monitor.watch(make_auction("a2"))

        monitor.unwatch("a1")
        watcher.stop.assert_not_called()

        monitor.unwatch("a2")
        watcher.stop.assert_called_once()
        assert monitor.routes() == {}

    @pytest.mark.asyncio
    async def test_candidate_is_offered_to_every_auction_on_address(self, monitor, watcher, engine, publisher):
        monitor.watch(make_auction("a2"))
        monitor.watch(make_auction("a1"))
        on_candidate = watcher.start.call_args.args[1]
        engine.submit_candidate.side_effect = [
            accepted_bid("a1"),
            BidRejected(RejectReason.BELOW_MINIMUM_INCREMENT),
        ]
        engine.get.return_value = make_auction("a1")

        await on_candidate(candidate("tx1", 120))

        assert [c.args[0] for c in engine.submit_candidate.await_args_list] == ["a1", "a2"]
        events = [c.args[0] for c in publisher.publish.await_args_list]
        assert events == ["new_bid", "auction_updated"]

    @pytest.mark.asyncio
    async def test_auction_ended_rejection_unwatches(self, monitor, watcher, engine, publisher):
        monitor.watch(make_auction("a1"))
        engine.submit_candidate.side_effect = BidRejected(RejectReason.AUCTION_ENDED)

        await monitor.submit("a1", candidate("tx1", 120))

        assert monitor.routes() == {}
        watcher.stop.assert_called_once()
        publisher.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_contention_is_logged_not_raised(self, monitor, engine, publisher):
        monitor.watch(make_auction("a1"))
        engine.submit_candidate.side_effect = SettlementContention("a1", 3)

        await monitor.submit("a1", candidate("tx1", 120))

        assert monitor.routes() == {SELLER: ["a1"]}
        publisher.publish.assert_not_awaited()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_restore_watches_active_auctions(self, monitor, engine, watcher):
        engine.list_active.return_value = [make_auction("a1"), make_auction("b1", seller=OTHER_SELLER)]

        assert await monitor.restore() == 2
        assert monitor.routes() == {OTHER_SELLER: ["b1"], SELLER: ["a1"]}

    @pytest.mark.asyncio
    async def test_close_stops_all_watchers(self, monitor, watcher):
        monitor.watch(make_auction("a1"))

        await monitor.close()

        watcher.stop_all.assert_awaited_once()
        assert monitor.routes() == {}

    def test_expiry_found_by_engine_unwatches(self, monitor, watcher, engine):
        monitor.watch(make_auction("a1"))
        on_expired = engine.on_expired.call_args.args[0]
        expired = make_auction("a1")
        expired.status = AuctionStatus.ENDED

        on_expired(expired)

        assert monitor.routes() == {}
        watcher.stop.assert_called_once()
