"""Redis auction store using redis-py asyncio and server-side compare-and-swap."""

from __future__ import annotations

from typing import Any

import orjson
from redis import asyncio as aioredis

from ..auction.models import Auction
from .base import AuctionNotFound, VersionConflict, VersionToken

# Returns the new version, -1 on version mismatch, -2 when the record is gone.
_PUT_SCRIPT = """
local current = redis.call('HGET', KEYS[1], 'version')
if ARGV[1] == '' then
  if current then return -1 end
else
  if not current then return -2 end
  if current ~= ARGV[1] then return -1 end
end
redis.call('HSET', KEYS[1], 'data', ARGV[2])
return redis.call('HINCRBY', KEYS[1], 'version', 1)
"""

_DELETE_SCRIPT = """
local current = redis.call('HGET', KEYS[1], 'version')
if not current then return -2 end
if ARGV[1] ~= '' and current ~= ARGV[1] then return -1 end
redis.call('DEL', KEYS[1])
return 1
"""


class RedisStorage:
    def __init__(self, *, url: str, prefix: str = "bidwatch") -> None:
        if not url:
            raise ValueError("redis url missing")
        self._redis = aioredis.from_url(url)
        self._prefix = prefix.rstrip(":")
        self._put = self._redis.register_script(_PUT_SCRIPT)
        self._delete = self._redis.register_script(_DELETE_SCRIPT)

    def _auction_key(self, auction_id: str) -> str:
        return f"{self._prefix}:auction:{auction_id}"

    @staticmethod
    def _version_arg(expected_version: VersionToken | None) -> str:
        return "" if expected_version is None else str(int(expected_version))

    async def get(self, auction_id: str) -> tuple[Auction, VersionToken]:
        data, version = await self._redis.hmget(self._auction_key(auction_id), "data", "version")
        if data is None or version is None:
            raise AuctionNotFound(auction_id)
        return Auction.from_dict(orjson.loads(data)), int(version)

    async def conditional_put(
        self, auction_id: str, auction: Auction, expected_version: VersionToken | None
    ) -> VersionToken:
        result = int(
            await self._put(
                keys=[self._auction_key(auction_id)],
                args=[self._version_arg(expected_version), orjson.dumps(auction.to_dict())],
            )
        )
        if result == -2:
            raise AuctionNotFound(auction_id)
        if result == -1:
            raise VersionConflict(f"auction {auction_id} changed since version {expected_version}")
        return result

    async def delete(self, auction_id: str, expected_version: VersionToken | None = None) -> None:
        result = int(
            await self._delete(
                keys=[self._auction_key(auction_id)],
                args=[self._version_arg(expected_version)],
            )
        )
        if result == -2:
            raise AuctionNotFound(auction_id)
        if result == -1:
            raise VersionConflict(f"auction {auction_id} changed before delete")

    async def list_all(self) -> list[Auction]:
        pattern = self._auction_key("*")
        keys: list[Any] = []
        cursor = 0
        while True:
            cursor, batch = await self._redis.scan(cursor=cursor, match=pattern, count=100)
            keys.extend(batch)
            if cursor == 0:
                break
        if not keys:
            return []
        async with self._redis.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.hget(key, "data")
            values = await pipe.execute()
        return [Auction.from_dict(orjson.loads(value)) for value in values if value]
