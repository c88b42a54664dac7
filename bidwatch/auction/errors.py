"""Settlement outcomes that are not an accepted bid."""

from __future__ import annotations

from enum import Enum


class RejectReason(str, Enum):
    NOT_FOUND = "not_found"
    AUCTION_ENDED = "auction_ended"
    BELOW_MINIMUM_INCREMENT = "below_minimum_increment"
    AMOUNT_MISMATCH = "amount_mismatch"
    UNVERIFIED = "unverified"


class BidRejected(ValueError):
    """A business rule refused the candidate. Authoritative, never retried."""

    def __init__(self, reason: RejectReason, detail: str = "") -> None:
        super().__init__(detail or reason.value)
        self.reason = reason


class SettlementContention(RuntimeError):
    """Concurrent writers kept winning; the caller may retry later."""

    def __init__(self, auction_id: str, attempts: int) -> None:
        super().__init__(f"auction {auction_id} still contended after {attempts} attempts")
        self.auction_id = auction_id
        self.attempts = attempts


class AuctionHasBids(ValueError):
    """Auctions with bid history are retained."""
