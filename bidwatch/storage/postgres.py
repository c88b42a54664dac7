"""Postgres auction store leveraging asyncpg and a version column."""

from __future__ import annotations

from typing import Any

import asyncpg
import orjson

from ..auction.models import Auction
from .base import AuctionNotFound, VersionConflict, VersionToken


class PostgresStorage:
    def __init__(self, *, dsn: str | None = None, **connect_kwargs: Any) -> None:
        if not dsn and not connect_kwargs:
            raise ValueError("postgres connection details missing")
        self._dsn = dsn
        self._connect_kwargs = connect_kwargs
        self._pool: asyncpg.Pool | None = None

    def _encode(self, auction: Auction) -> str:
        return orjson.dumps(auction.to_dict()).decode()

    def _decode(self, value: Any) -> Auction:
        if isinstance(value, (bytes, bytearray)):
            value = value.decode()
        if isinstance(value, str):
            value = orjson.loads(value)
        return Auction.from_dict(value)

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(dsn=self._dsn, **self._connect_kwargs)
            async with self._pool.acquire() as conn:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS auctions (
                        auction_id TEXT PRIMARY KEY,
                        version BIGINT NOT NULL,
                        data JSONB NOT NULL
                    );
                    """
                )
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get(self, auction_id: str) -> tuple[Auction, VersionToken]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """SELECT data, version FROM auctions WHERE auction_id=$1""",
                auction_id,
            )
        if not row:
            raise AuctionNotFound(auction_id)
        return self._decode(row["data"]), int(row["version"])

    async def conditional_put(
        self, auction_id: str, auction: Auction, expected_version: VersionToken | None
    ) -> VersionToken:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            if expected_version is None:
                version = await conn.fetchval(
                    """INSERT INTO auctions(auction_id, version, data) VALUES($1, 1, $2)
                       ON CONFLICT (auction_id) DO NOTHING RETURNING version""",
                    auction_id,
                    self._encode(auction),
                )
                if version is None:
                    raise VersionConflict(f"auction {auction_id} already exists")
                return int(version)
            version = await conn.fetchval(
                """UPDATE auctions SET data=$2, version=version+1
                   WHERE auction_id=$1 AND version=$3 RETURNING version""",
                auction_id,
                self._encode(auction),
                int(expected_version),
            )
            if version is None:
                exists = await conn.fetchval(
                    """SELECT 1 FROM auctions WHERE auction_id=$1""", auction_id
                )
                if not exists:
                    raise AuctionNotFound(auction_id)
                raise VersionConflict(
                    f"auction {auction_id} changed since version {expected_version}"
                )
            return int(version)

    async def delete(self, auction_id: str, expected_version: VersionToken | None = None) -> None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            if expected_version is None:
                status = await conn.execute(
                    """DELETE FROM auctions WHERE auction_id=$1""", auction_id
                )
            else:
                status = await conn.execute(
                    """DELETE FROM auctions WHERE auction_id=$1 AND version=$2""",
                    auction_id,
                    int(expected_version),
                )
            if status.split()[-1] != "0":
                return
            exists = await conn.fetchval("""SELECT 1 FROM auctions WHERE auction_id=$1""", auction_id)
        if exists:
            raise VersionConflict(f"auction {auction_id} changed before delete")
        raise AuctionNotFound(auction_id)

    async def list_all(self) -> list[Auction]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch("SELECT data FROM auctions ORDER BY auction_id")
        return [self._decode(row["data"]) for row in rows]
