"""Operational stats endpoint."""

from __future__ import annotations

from collections import Counter
from typing import Any

from fastapi import APIRouter, Depends, Request

from ..auction.engine import SettlementEngine
from ..auction.models import AuctionStatus

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_engine(request: Request) -> SettlementEngine:
    return request.app.state.engine


@router.get("/stats")
async def stats(engine: SettlementEngine = Depends(_get_engine)) -> dict[str, Any]:
    auctions = await engine.list_all()
    status_counts: Counter[str] = Counter(auction.status.value for auction in auctions)
    bids = [bid for auction in auctions for bid in auction.bids]
    verified = sum(1 for bid in bids if bid.verified)
    unresolved = sum(1 for bid in bids if not bid.bidder_address)
    volume = sum(auction.current_price for auction in auctions if auction.bids)
    return {
        "total_auctions": len(auctions),
        "live_auctions": status_counts.get(AuctionStatus.LIVE.value, 0),
        "ended_auctions": status_counts.get(AuctionStatus.ENDED.value, 0),
        "total_bids": len(bids),
        "verified_rate": round(verified / len(bids), 4) if bids else 0.0,
        "unresolved_bidders": unresolved,
        "settled_volume_sompi": volume,
    }
