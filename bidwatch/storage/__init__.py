"""Storage backend factory."""

from __future__ import annotations

from ..config import ServerConfig
from .base import AuctionNotFound, AuctionStore, VersionConflict, VersionToken
from .firestore import FirestoreStorage
from .in_memory import InMemoryStorage
from .postgres import PostgresStorage
from .redis import RedisStorage

__all__ = [
    "AuctionNotFound",
    "AuctionStore",
    "InMemoryStorage",
    "VersionConflict",
    "VersionToken",
    "build_storage",
]


def build_storage(config: ServerConfig) -> AuctionStore:
    backend = config.storage.backend
    options = dict(config.storage.options)
    if backend == "in_memory":
        return InMemoryStorage()
    if backend == "redis":
        return RedisStorage(**options)
    if backend == "postgres":
        return PostgresStorage(**options)
    if backend == "firestore":
        return FirestoreStorage(**options)
    raise ValueError(f"unknown storage backend {backend}")
