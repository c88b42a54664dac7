"""Auction store contract shared by every backend."""

from __future__ import annotations

from typing import Any, Protocol

from ..auction.models import Auction

# Opaque per-record version: an int counter for most backends, the document
# update time for Firestore.
VersionToken = Any


class AuctionNotFound(KeyError):
    """No auction is stored under the requested id."""

    def __str__(self) -> str:
        return f"auction {self.args[0]} not found" if self.args else "auction not found"


class VersionConflict(RuntimeError):
    """The stored version differs from the one the writer read."""


class AuctionStore(Protocol):
    async def get(self, auction_id: str) -> tuple[Auction, VersionToken]: ...

    async def conditional_put(
        self, auction_id: str, auction: Auction, expected_version: VersionToken | None
    ) -> VersionToken:
        """Write only if the stored version matches; ``None`` means create-if-absent."""
        ...

    async def delete(self, auction_id: str, expected_version: VersionToken | None = None) -> None: ...

    async def list_all(self) -> list[Auction]: ...
