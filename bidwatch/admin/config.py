"""Expose currently loaded server config for debugging."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..config import ServerConfig

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_config(request: Request) -> ServerConfig:
    return request.app.state.server_config


@router.get("/config")
async def config(request: Request, config: ServerConfig = Depends(_get_config)) -> dict:
    return {
        "version": request.app.version,
        "network": config.ledger.network,
        "ledger_endpoints": [config.ledger.url, *config.ledger.fallback_urls],
        "watch_interval_seconds": config.watcher.interval_seconds,
        "pending_retry_limit": config.watcher.pending_retry_limit,
        "settlement": {
            "max_attempts": config.settlement.max_attempts,
            "amount_tolerance": config.settlement.amount_tolerance,
            "reject_amount_mismatch": config.settlement.reject_amount_mismatch,
            "require_verification": config.settlement.require_verification,
            "retention_days": config.settlement.retention_days,
        },
        "storage_backend": config.storage.backend,
        "events_backend": config.events.backend,
        "allow_simulated_bids": config.api.allow_simulated_bids,
    }
