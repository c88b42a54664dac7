"""Auction aggregate, bids and ledger-observed bid candidates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..ledger.addresses import SOMPI_PER_KAS
from ..transport.timestamps import format_timestamp, parse_timestamp

MIN_DEFAULT_INCREMENT = 10 * SOMPI_PER_KAS


class AuctionStatus(str, Enum):
    LIVE = "live"
    ENDED = "ended"


class BidStatus(str, Enum):
    DETECTED = "detected"
    CONFIRMED = "confirmed"


def default_minimum_increment(start_price: int) -> int:
    # 5% of the start price, floored to whole KAS
    five_percent = start_price * 5 // 100 // SOMPI_PER_KAS * SOMPI_PER_KAS
    return max(MIN_DEFAULT_INCREMENT, five_percent)


@dataclass(frozen=True)
class BidCandidate:
    """A payment seen on the ledger (or injected manually) that may become a bid."""

    transaction_id: str
    amount: int
    sender: str | None
    timestamp: datetime


@dataclass
class Bid:
    id: str
    auction_id: str
    bidder_address: str | None
    amount: int
    timestamp: datetime
    status: BidStatus = BidStatus.DETECTED
    tx_hash: str | None = None
    verified: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "auction_id": self.auction_id,
            "bidder_address": self.bidder_address,
            "amount": self.amount,
            "timestamp": format_timestamp(self.timestamp),
            "status": self.status.value,
            "tx_hash": self.tx_hash,
            "verified": self.verified,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Bid":
        return cls(
            id=data["id"],
            auction_id=data["auction_id"],
            bidder_address=data.get("bidder_address"),
            amount=int(data["amount"]),
            timestamp=parse_timestamp(data["timestamp"]),
            status=BidStatus(data.get("status", BidStatus.DETECTED.value)),
            tx_hash=data.get("tx_hash"),
            verified=bool(data.get("verified", False)),
        )


@dataclass
class Auction:
    id: str
    seller_address: str
    start_price: int
    minimum_increment: int
    start_time: datetime
    end_time: datetime
    current_price: int | None = None
    status: AuctionStatus = AuctionStatus.LIVE
    bids: list[Bid] = field(default_factory=list)
    bid_count: int = 0
    highest_bidder: str | None = None
    title: str = ""
    description: str = ""
    image_url: str = ""
    category: str | None = None

    def __post_init__(self) -> None:
        if self.current_price is None:
            self.current_price = self.start_price

    @property
    def minimum_bid(self) -> int:
        return self.current_price + self.minimum_increment

    def find_bid(self, transaction_id: str) -> Bid | None:
        return next((bid for bid in self.bids if bid.id == transaction_id), None)

    def is_past_end(self, now: datetime) -> bool:
        return now > self.end_time

    def accept(self, bid: Bid) -> None:
        self.bids.insert(0, bid)
        self.bid_count += 1
        self.current_price = bid.amount
        self.highest_bidder = bid.bidder_address

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "image_url": self.image_url,
            "category": self.category,
            "seller_address": self.seller_address,
            "start_price": self.start_price,
            "current_price": self.current_price,
            "minimum_increment": self.minimum_increment,
            "start_time": format_timestamp(self.start_time),
            "end_time": format_timestamp(self.end_time),
            "status": self.status.value,
            "bids": [bid.to_dict() for bid in self.bids],
            "bid_count": self.bid_count,
            "highest_bidder": self.highest_bidder,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Auction":
        bids = [Bid.from_dict(item) for item in data.get("bids") or []]
        return cls(
            id=data["id"],
            seller_address=data["seller_address"],
            start_price=int(data["start_price"]),
            minimum_increment=int(data["minimum_increment"]),
            start_time=parse_timestamp(data["start_time"]),
            end_time=parse_timestamp(data["end_time"]),
            current_price=int(data.get("current_price", data["start_price"])),
            status=AuctionStatus(data.get("status", AuctionStatus.LIVE.value)),
            bids=bids,
            bid_count=int(data.get("bid_count", len(bids))),
            highest_bidder=data.get("highest_bidder"),
            title=data.get("title") or "",
            description=data.get("description") or "",
            image_url=data.get("image_url") or "",
            category=data.get("category"),
        )
