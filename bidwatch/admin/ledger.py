"""Report the ledger indexer endpoints and their network parameters."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from ..ledger.client import LedgerClient
from ..ledger.errors import LedgerError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_ledger_client(request: Request) -> LedgerClient:
    return request.app.state.ledger_client


@router.get("/ledger")
async def ledger(client: LedgerClient = Depends(_get_ledger_client)) -> dict[str, Any]:
    try:
        info = await client.get_network_info()
    except LedgerError as exc:
        logger.warning("ledger network info unavailable: %s", exc)
        return {"reachable": False, "endpoints": client.endpoints, "error": str(exc)}
    return {"reachable": True, "endpoints": client.endpoints, "network": info}
