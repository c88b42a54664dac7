"""Liveness of the service and the size of its watch set."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(prefix="/admin", tags=["admin"])


def _uptime_seconds(started: datetime | None) -> int:
    if started is None:
        return 0
    return int((datetime.now(timezone.utc) - started).total_seconds())


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    state = request.app.state
    settings = state.server_config
    monitor = getattr(state, "monitor", None)
    routes = monitor.routes() if monitor is not None else {}
    return {
        "status": "healthy",
        "version": request.app.version,
        "uptime_seconds": _uptime_seconds(getattr(state, "start_time", None)),
        "network": settings.ledger.network,
        "storage_backend": settings.storage.backend,
        "watched_addresses": len(routes),
        "monitored_auctions": sum(len(ids) for ids in routes.values()),
    }
