"""Auction status state machine."""

from __future__ import annotations

from enum import Enum

from .models import AuctionStatus


class AuctionEvent(str, Enum):
    BID_ACCEPTED = "bid_accepted"
    EXPIRED = "expired"
    FINALIZED = "finalized"


_TRANSITIONS = {
    (AuctionStatus.LIVE, AuctionEvent.BID_ACCEPTED): AuctionStatus.LIVE,
    (AuctionStatus.LIVE, AuctionEvent.EXPIRED): AuctionStatus.ENDED,
    (AuctionStatus.LIVE, AuctionEvent.FINALIZED): AuctionStatus.ENDED,
    (AuctionStatus.ENDED, AuctionEvent.FINALIZED): AuctionStatus.ENDED,
}


def transition(current: AuctionStatus, event: AuctionEvent) -> AuctionStatus:
    try:
        return _TRANSITIONS[(current, event)]
    except KeyError as exc:
        raise ValueError(f"invalid transition from {current} via {event}") from exc
