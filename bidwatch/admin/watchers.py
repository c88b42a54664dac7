"""Inspect which seller addresses are being polled and for which auctions."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from ..watcher.chain_watcher import ChainWatcher
from ..watcher.monitor import AuctionMonitor

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_monitor(request: Request) -> AuctionMonitor:
    return request.app.state.monitor


def _get_watcher(request: Request) -> ChainWatcher:
    return request.app.state.watcher


@router.get("/watchers")
async def watchers(
    monitor: AuctionMonitor = Depends(_get_monitor),
    watcher: ChainWatcher = Depends(_get_watcher),
) -> dict[str, Any]:
    routes = monitor.routes()
    return {
        "addresses": [
            {
                "address": address,
                "auctions": auction_ids,
                "polling": watcher.is_watching(address),
            }
            for address, auction_ids in routes.items()
        ],
        "total": len(routes),
    }
