"""Bind live auctions to watched seller addresses and route payments into settlement."""

from __future__ import annotations

import logging

from ..auction.engine import SettlementEngine
from ..auction.errors import BidRejected, RejectReason, SettlementContention
from ..auction.models import Auction, AuctionStatus, Bid, BidCandidate
from ..events.publisher import AuctionEventPublisher
from .chain_watcher import ChainWatcher, WatchHandle

logger = logging.getLogger(__name__)


class AuctionMonitor:
    def __init__(
        self,
        watcher: ChainWatcher,
        engine: SettlementEngine,
        publisher: AuctionEventPublisher,
    ) -> None:
        self._watcher = watcher
        self._engine = engine
        self._publisher = publisher
        self._auction_address: dict[str, str] = {}
        self._handles: dict[str, WatchHandle] = {}
        engine.on_expired(self._on_expired)

    def watch(self, auction: Auction) -> WatchHandle | None:
        if auction.status is not AuctionStatus.LIVE:
            logger.info("auction %s has ended, not watching", auction.id)
            return None
        address = auction.seller_address
        self._auction_address[auction.id] = address
        handle = self._handles.get(address)
        if handle is None or handle.stopped:
            handle = self._watcher.start(
                address, lambda candidate: self._on_candidate(address, candidate)
            )
            self._handles[address] = handle
        logger.info("monitoring auction %s on %s", auction.id, address)
        return handle

    def unwatch(self, auction_id: str) -> None:
        address = self._auction_address.pop(auction_id, None)
        if address is None:
            return
        logger.info("stopped monitoring auction %s", auction_id)
        if address in self._auction_address.values():
            return
        handle = self._handles.pop(address, None)
        if handle is not None:
            self._watcher.stop(handle)

    def _on_expired(self, auction: Auction) -> None:
        self.unwatch(auction.id)

    async def restore(self) -> int:
        """Resume monitoring of every active auction, typically at startup."""
        auctions = await self._engine.list_active()
        for auction in auctions:
            self.watch(auction)
        logger.info("restored monitoring for %d active auctions", len(auctions))
        return len(auctions)

    def routes(self) -> dict[str, list[str]]:
        routes: dict[str, list[str]] = {}
        for auction_id, address in self._auction_address.items():
            routes.setdefault(address, []).append(auction_id)
        return {address: sorted(ids) for address, ids in sorted(routes.items())}

    def auctions_for(self, address: str) -> list[str]:
        return sorted(
            auction_id for auction_id, routed in self._auction_address.items() if routed == address
        )

    async def _on_candidate(self, address: str, candidate: BidCandidate) -> None:
        for auction_id in self.auctions_for(address):
            await self.submit(auction_id, candidate)

    async def submit(self, auction_id: str, candidate: BidCandidate) -> None:
        try:
            bid = await self._engine.submit_candidate(auction_id, candidate)
        except BidRejected as exc:
            if exc.reason in (RejectReason.AUCTION_ENDED, RejectReason.NOT_FOUND):
                self.unwatch(auction_id)
            logger.warning(
                "candidate %s rejected for auction %s: %s",
                candidate.transaction_id,
                auction_id,
                exc.reason.value,
            )
            return
        except SettlementContention as exc:
            logger.error("candidate %s dropped: %s", candidate.transaction_id, exc)
            return
        auction = await self._engine.get(auction_id)
        await self.announce(auction, bid)

    async def announce(self, auction: Auction, bid: Bid) -> None:
        await self._publisher.publish("new_bid", auction.id, {"bid": bid.to_dict()})
        await self._publisher.publish("auction_updated", auction.id, {"auction": auction.to_dict()})

    async def close(self) -> None:
        self._auction_address.clear()
        self._handles.clear()
        await self._watcher.stop_all()
