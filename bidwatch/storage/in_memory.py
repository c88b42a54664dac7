"""In-memory auction store with compare-and-swap writes."""

from __future__ import annotations

import asyncio
from copy import deepcopy
from typing import Any

from ..auction.models import Auction
from .base import AuctionNotFound, VersionConflict, VersionToken


class InMemoryStorage:
    def __init__(self) -> None:
        self._records: dict[str, tuple[dict[str, Any], int]] = {}
        self._lock = asyncio.Lock()

    async def get(self, auction_id: str) -> tuple[Auction, VersionToken]:
        async with self._lock:
            try:
                data, version = self._records[auction_id]
            except KeyError as exc:
                raise AuctionNotFound(auction_id) from exc
            return Auction.from_dict(deepcopy(data)), version

    async def conditional_put(
        self, auction_id: str, auction: Auction, expected_version: VersionToken | None
    ) -> VersionToken:
        async with self._lock:
            current = self._records.get(auction_id)
            if expected_version is None:
                if current is not None:
                    raise VersionConflict(f"auction {auction_id} already exists")
                version = 1
            else:
                if current is None:
                    raise AuctionNotFound(auction_id)
                if current[1] != expected_version:
                    raise VersionConflict(
                        f"auction {auction_id} at version {current[1]}, expected {expected_version}"
                    )
                version = current[1] + 1
            self._records[auction_id] = (auction.to_dict(), version)
            return version

    async def delete(self, auction_id: str, expected_version: VersionToken | None = None) -> None:
        async with self._lock:
            current = self._records.get(auction_id)
            if current is None:
                raise AuctionNotFound(auction_id)
            if expected_version is not None and current[1] != expected_version:
                raise VersionConflict(f"auction {auction_id} changed before delete")
            del self._records[auction_id]

    async def list_all(self) -> list[Auction]:
        async with self._lock:
            return [Auction.from_dict(deepcopy(data)) for data, _ in self._records.values()]
