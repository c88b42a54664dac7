"""Back-fill bidder addresses of stored bids whose sender was unresolved.

Runs against the storage backend named in the server config, e.g.::

    BIDWATCH_CONFIG_PATH=deploy/server.yaml python scripts/repair_bids.py
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from bidwatch.auction.engine import SettlementEngine
from bidwatch.config import get_server_config
from bidwatch.ledger.client import LedgerClient
from bidwatch.storage import build_storage

logger = logging.getLogger("bidwatch.repair")


async def repair(auction_ids: list[str], pause: float) -> int:
    config = get_server_config()
    storage = build_storage(config)
    ledger = LedgerClient(
        config.ledger.url,
        config.ledger.fallback_urls,
        timeout=config.ledger.timeout_seconds,
        max_retries=config.ledger.max_retries,
        backoff_base=config.ledger.backoff_base_seconds,
    )
    engine = SettlementEngine(storage, ledger, max_attempts=config.settlement.max_attempts)
    repaired = 0
    try:
        if not auction_ids:
            auction_ids = [auction.id for auction in await storage.list_all()]
        for auction_id in auction_ids:
            count = await engine.backfill_bidders(auction_id, pause=pause)
            if count:
                logger.info("auction %s: %d bids repaired", auction_id, count)
            repaired += count
    finally:
        await ledger.close()
        close_storage = getattr(storage, "close", None)
        if close_storage is not None:
            await close_storage()
    return repaired


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("auction_ids", nargs="*", help="auctions to repair (default: all)")
    parser.add_argument("--pause", type=float, default=0.2, help="seconds between ledger lookups")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    repaired = asyncio.run(repair(args.auction_ids, args.pause))
    logger.info("repair finished, %d bids fixed", repaired)


if __name__ == "__main__":
    main()
