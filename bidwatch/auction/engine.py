"""Bid validation and settlement under optimistic concurrency."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from ..ledger.client import LedgerClient
from ..ledger.errors import LedgerUnavailable, TransactionNotFound
from ..ledger.retry import RetryExhausted, RetryPolicy
from ..storage.base import AuctionNotFound, AuctionStore, VersionConflict
from ..transport.timestamps import utcnow
from .errors import AuctionHasBids, BidRejected, RejectReason, SettlementContention
from .fsm import AuctionEvent, transition
from .models import Auction, AuctionStatus, Bid, BidCandidate, BidStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OnChainCheck:
    """Outcome of re-verifying a candidate against the ledger."""

    verified: bool
    mismatch: bool = False
    sender: str | None = None


class SettlementEngine:
    """The single authority that turns candidates into bids.

    Every mutation is a read, rule evaluation and conditional write against
    the injected store. A version conflict restarts the whole evaluation from
    a fresh read, so a candidate that lost a race is judged again against the
    winner's price.
    """

    def __init__(
        self,
        store: AuctionStore,
        ledger: LedgerClient,
        *,
        max_attempts: int = 3,
        amount_tolerance: int = 10_000,
        reject_amount_mismatch: bool = True,
        require_verification: bool = False,
        retention: timedelta = timedelta(days=60),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._amount_tolerance = amount_tolerance
        self._reject_amount_mismatch = reject_amount_mismatch
        self._require_verification = require_verification
        self._retention = retention
        self._clock = clock
        self._expiry_listeners: list[Callable[[Auction], Any]] = []
        self._contention = RetryPolicy(
            max_attempts=max_attempts,
            base_delay=0,
            retryable=(VersionConflict,),
        )

    async def _with_contention_retry(self, auction_id: str, operation, label: str):
        try:
            return await self._contention.run(operation, label=f"{label} {auction_id}")
        except RetryExhausted as exc:
            logger.error("%s for auction %s gave up after %d attempts", label, auction_id, exc.attempts)
            raise SettlementContention(auction_id, exc.attempts) from exc

    # -- bids --

    async def submit_candidate(self, auction_id: str, candidate: BidCandidate) -> Bid:
        checks: dict[str, OnChainCheck] = {}
        try:
            return await self._with_contention_retry(
                auction_id,
                lambda: self._settle_once(auction_id, candidate, checks),
                "settlement",
            )
        except AuctionNotFound as exc:
            raise BidRejected(RejectReason.NOT_FOUND, f"auction {auction_id} not found") from exc

    async def _settle_once(
        self, auction_id: str, candidate: BidCandidate, checks: dict[str, OnChainCheck]
    ) -> Bid:
        auction, version = await self._store.get(auction_id)

        existing = auction.find_bid(candidate.transaction_id)
        if existing is not None:
            logger.info("duplicate bid %s on auction %s ignored", candidate.transaction_id, auction_id)
            return existing

        if candidate.transaction_id not in checks:
            checks[candidate.transaction_id] = await self._check_on_chain(candidate, auction.seller_address)
        check = self._apply_verification_policy(checks[candidate.transaction_id], candidate)

        if auction.status is not AuctionStatus.LIVE:
            logger.warning("bid %s rejected: auction %s already ended", candidate.transaction_id, auction_id)
            raise BidRejected(RejectReason.AUCTION_ENDED)

        if candidate.amount < auction.minimum_bid:
            logger.warning(
                "bid %s rejected: %d below minimum %d",
                candidate.transaction_id,
                candidate.amount,
                auction.minimum_bid,
            )
            raise BidRejected(
                RejectReason.BELOW_MINIMUM_INCREMENT,
                f"amount {candidate.amount} below minimum {auction.minimum_bid}",
            )

        if auction.is_past_end(self._clock()):
            auction.status = transition(auction.status, AuctionEvent.EXPIRED)
            await self._store.conditional_put(auction_id, auction, version)
            logger.info("auction %s expired while receiving bid %s", auction_id, candidate.transaction_id)
            raise BidRejected(RejectReason.AUCTION_ENDED, "auction expired")

        bid = Bid(
            id=candidate.transaction_id,
            auction_id=auction_id,
            bidder_address=check.sender or candidate.sender,
            amount=candidate.amount,
            timestamp=candidate.timestamp,
            status=BidStatus.DETECTED,
            tx_hash=candidate.transaction_id,
            verified=check.verified,
        )
        auction.status = transition(auction.status, AuctionEvent.BID_ACCEPTED)
        auction.accept(bid)
        await self._store.conditional_put(auction_id, auction, version)
        logger.info(
            "accepted bid %s on auction %s: %d sompi from %s (verified=%s)",
            bid.id,
            auction_id,
            bid.amount,
            bid.bidder_address,
            bid.verified,
        )
        return bid

    async def _check_on_chain(self, candidate: BidCandidate, seller_address: str) -> OnChainCheck:
        try:
            tx = await self._ledger.verify_transaction(candidate.transaction_id)
        except (LedgerUnavailable, TransactionNotFound) as exc:
            logger.warning(
                "could not verify %s on chain, continuing unverified: %s", candidate.transaction_id, exc
            )
            return OnChainCheck(verified=False)
        if not tx.has_output_near(candidate.amount, self._amount_tolerance, seller_address):
            return OnChainCheck(verified=False, mismatch=True, sender=tx.sender)
        if candidate.sender and tx.sender and candidate.sender != tx.sender:
            logger.warning(
                "claimed sender %s of %s differs from ledger sender %s",
                candidate.sender,
                candidate.transaction_id,
                tx.sender,
            )
        return OnChainCheck(verified=True, sender=tx.sender)

    def _apply_verification_policy(self, check: OnChainCheck, candidate: BidCandidate) -> OnChainCheck:
        if check.mismatch:
            logger.error(
                "amount mismatch: no output of %s matches %d sompi", candidate.transaction_id, candidate.amount
            )
            if self._reject_amount_mismatch:
                raise BidRejected(RejectReason.AMOUNT_MISMATCH, "no output matches the claimed amount")
        if not check.verified and self._require_verification:
            raise BidRejected(RejectReason.UNVERIFIED, "transaction could not be verified on chain")
        return check

    # -- lifecycle --

    async def create_auction(self, auction: Auction) -> Auction:
        await self._store.conditional_put(auction.id, auction, None)
        logger.info("created auction %s for seller %s", auction.id, auction.seller_address)
        return auction

    async def finalize(self, auction_id: str) -> Auction:
        async def finalize_once() -> Auction:
            auction, version = await self._store.get(auction_id)
            if auction.status is AuctionStatus.ENDED:
                return auction
            auction.status = transition(auction.status, AuctionEvent.FINALIZED)
            await self._store.conditional_put(auction_id, auction, version)
            logger.info("finalized auction %s at %d sompi", auction_id, auction.current_price)
            return auction

        return await self._with_contention_retry(auction_id, finalize_once, "finalize")

    async def delete(self, auction_id: str) -> None:
        async def delete_once() -> None:
            auction, version = await self._store.get(auction_id)
            if auction.bids:
                raise AuctionHasBids(f"auction {auction_id} has {len(auction.bids)} bids")
            await self._store.delete(auction_id, version)
            logger.info("deleted auction %s", auction_id)

        await self._with_contention_retry(auction_id, delete_once, "delete")

    async def backfill_bidders(self, auction_id: str, *, pause: float = 0.0) -> int:
        """Resolve missing bidder addresses of stored bids from the ledger.

        Returns the number of bids repaired. ``pause`` spaces out ledger
        lookups when repairing many auctions in a batch.
        """
        senders: dict[str, str | None] = {}

        async def lookup(tx_hash: str) -> str | None:
            if tx_hash not in senders:
                try:
                    senders[tx_hash] = (await self._ledger.verify_transaction(tx_hash)).sender
                except (LedgerUnavailable, TransactionNotFound) as exc:
                    logger.warning("could not resolve bidder of %s: %s", tx_hash, exc)
                    senders[tx_hash] = None
                if pause:
                    await asyncio.sleep(pause)
            return senders[tx_hash]

        async def backfill_once() -> int:
            auction, version = await self._store.get(auction_id)
            repaired = 0
            for bid in auction.bids:
                if bid.bidder_address or not bid.tx_hash:
                    continue
                sender = await lookup(bid.tx_hash)
                if sender:
                    bid.bidder_address = sender
                    repaired += 1
            changed = repaired > 0
            if auction.bids and not auction.highest_bidder:
                top = auction.bids[0]
                if top.amount == auction.current_price and top.bidder_address:
                    auction.highest_bidder = top.bidder_address
                    changed = True
            if changed:
                await self._store.conditional_put(auction_id, auction, version)
                logger.info("repaired %d bids on auction %s", repaired, auction_id)
            return repaired

        return await self._with_contention_retry(auction_id, backfill_once, "backfill")

    # -- expiry --

    def on_expired(self, listener: Callable[[Auction], Any]) -> None:
        """Register a callback invoked with each auction a read found past its end."""
        self._expiry_listeners.append(listener)

    def _is_due(self, auction: Auction) -> bool:
        return auction.status is AuctionStatus.LIVE and auction.is_past_end(self._clock())

    async def _expire(self, auction_id: str) -> Auction:
        async def expire_once() -> Auction:
            auction, version = await self._store.get(auction_id)
            if not self._is_due(auction):
                return auction
            auction.status = transition(auction.status, AuctionEvent.EXPIRED)
            await self._store.conditional_put(auction_id, auction, version)
            logger.info("auction %s ended at %s", auction_id, auction.end_time.isoformat())
            return auction

        auction = await self._with_contention_retry(auction_id, expire_once, "expiry")
        if auction.status is AuctionStatus.ENDED:
            for listener in self._expiry_listeners:
                try:
                    listener(auction)
                except Exception as exc:
                    logger.error("expiry listener failed for %s: %s", auction_id, exc, exc_info=True)
        return auction

    async def _settle_expiry(self, auction: Auction) -> Auction:
        if not self._is_due(auction):
            return auction
        try:
            return await self._expire(auction.id)
        except SettlementContention as exc:
            logger.warning("could not record expiry of auction %s: %s", auction.id, exc)
            return auction

    # -- reads --

    async def get(self, auction_id: str) -> Auction:
        auction, _ = await self._store.get(auction_id)
        return await self._settle_expiry(auction)

    async def list_all(self) -> list[Auction]:
        await self._purge_quietly()
        auctions: list[Auction] = []
        for auction in await self._store.list_all():
            try:
                auctions.append(await self._settle_expiry(auction))
            except AuctionNotFound:
                continue
        return sorted(auctions, key=lambda auction: auction.start_time, reverse=True)

    async def list_active(self) -> list[Auction]:
        now = self._clock()
        return [
            auction
            for auction in await self.list_all()
            if auction.status is AuctionStatus.LIVE and not auction.is_past_end(now)
        ]

    async def purge_expired(self) -> int:
        """Drop bidless auctions that ended longer ago than the retention window."""
        cutoff = self._clock() - self._retention
        purged = 0
        for auction in await self._store.list_all():
            if auction.end_time >= cutoff or auction.bids:
                continue
            try:
                current, version = await self._store.get(auction.id)
                if current.bids:
                    continue
                await self._store.delete(auction.id, version)
            except (AuctionNotFound, VersionConflict) as exc:
                logger.info("skipped purge of auction %s: %s", auction.id, exc)
                continue
            purged += 1
        if purged:
            logger.info("purged %d auctions older than %s", purged, cutoff.isoformat())
        return purged

    async def _purge_quietly(self) -> None:
        try:
            await self.purge_expired()
        except Exception as exc:
            logger.error("auction purge failed: %s", exc, exc_info=True)
