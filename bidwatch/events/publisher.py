"""Announce accepted bids and auction updates over publish/subscribe transports."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from ..transport.canonical_json import canonical_dumps

try:  # pragma: no cover - optional dependency
    from google.cloud import pubsub_v1
except ImportError:  # pragma: no cover - library not installed
    pubsub_v1 = None

logger = logging.getLogger(__name__)

EVENT_TYPES = ("new_bid", "auction_updated")


class _PublisherProtocol:
    async def publish(self, event_type: str, auction_id: str, payload: dict[str, Any]) -> None:  # pragma: no cover - protocol
        raise NotImplementedError


class _LocalPublisher(_PublisherProtocol):
    def __init__(self) -> None:
        self.delivered: list[tuple[str, str, dict[str, Any]]] = []

    async def publish(self, event_type: str, auction_id: str, payload: dict[str, Any]) -> None:
        self.delivered.append((event_type, auction_id, payload))
        logger.info("[local-events] %s auction=%s", event_type, auction_id)


class _PubSubPublisher(_PublisherProtocol):
    def __init__(self, options: Mapping[str, Any]) -> None:
        if pubsub_v1 is None:
            raise RuntimeError("google-cloud-pubsub is required for pubsub backend")
        self._project_id = options.get("project_id")
        if not self._project_id:
            raise ValueError("pubsub backend requires project_id")
        self._topic_prefix = options.get("topic_prefix", "bidwatch")
        self._publisher = pubsub_v1.PublisherClient()

    def _topic_path(self, event_type: str) -> str:
        return self._publisher.topic_path(self._project_id, f"{self._topic_prefix}-{event_type}")

    async def publish(self, event_type: str, auction_id: str, payload: dict[str, Any]) -> None:
        message = canonical_dumps({"event": event_type, "auction_id": auction_id, "data": payload})
        future = self._publisher.publish(
            self._topic_path(event_type), message, event=event_type, auction_id=auction_id
        )
        await asyncio.to_thread(future.result)


class AuctionEventPublisher:
    def __init__(self, backend: str = "local", options: Mapping[str, Any] | None = None) -> None:
        options = options or {}
        self.backend = backend
        if backend == "pubsub":
            self._publisher: _PublisherProtocol = _PubSubPublisher(options.get("pubsub", options))
        elif backend == "local":
            self._publisher = _LocalPublisher()
        else:
            raise ValueError(f"unknown events backend {backend}")

    async def publish(self, event_type: str, auction_id: str, payload: dict[str, Any]) -> None:
        try:
            await self._publisher.publish(event_type, auction_id, payload)
        except Exception as exc:
            logger.error("publishing %s for auction %s failed: %s", event_type, auction_id, exc, exc_info=True)
