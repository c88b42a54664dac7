"""Firestore auction store using update-time write preconditions."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.oauth2 import service_account

from ..auction.models import Auction
from .base import AuctionNotFound, VersionConflict, VersionToken


class FirestoreStorage:
    def __init__(
        self,
        *,
        project_id: str,
        collection: str = "auctions",
        credentials_path: str | None = None,
    ) -> None:
        if not project_id:
            raise ValueError("project_id required for firestore backend")
        client_kwargs: dict[str, Any] = {"project": project_id}
        if credentials_path:
            client_kwargs["credentials"] = service_account.Credentials.from_service_account_file(
                credentials_path
            )
        self._client = firestore.Client(**client_kwargs)
        self._collection_name = collection

    def _document(self, auction_id: str):
        return self._client.collection(self._collection_name).document(auction_id)

    async def _run(self, func: Callable, *args, **kwargs):
        return await asyncio.to_thread(func, *args, **kwargs)

    async def get(self, auction_id: str) -> tuple[Auction, VersionToken]:
        snapshot = await self._run(self._document(auction_id).get)
        if not snapshot.exists:
            raise AuctionNotFound(auction_id)
        return Auction.from_dict(snapshot.to_dict()), snapshot.update_time

    async def conditional_put(
        self, auction_id: str, auction: Auction, expected_version: VersionToken | None
    ) -> VersionToken:
        document = self._document(auction_id)
        payload = auction.to_dict()
        try:
            if expected_version is None:
                result = await self._run(document.create, payload)
            else:
                option = self._client.write_option(last_update_time=expected_version)
                result = await self._run(document.update, payload, option=option)
        except gcp_exceptions.AlreadyExists as exc:
            raise VersionConflict(f"auction {auction_id} already exists") from exc
        except gcp_exceptions.FailedPrecondition as exc:
            raise VersionConflict(f"auction {auction_id} changed since {expected_version}") from exc
        except gcp_exceptions.NotFound as exc:
            raise AuctionNotFound(auction_id) from exc
        return result.update_time

    async def delete(self, auction_id: str, expected_version: VersionToken | None = None) -> None:
        if expected_version is None:
            _, expected_version = await self.get(auction_id)
        option = self._client.write_option(last_update_time=expected_version)
        try:
            await self._run(self._document(auction_id).delete, option=option)
        except gcp_exceptions.FailedPrecondition as exc:
            raise VersionConflict(f"auction {auction_id} changed before delete") from exc
        except gcp_exceptions.NotFound as exc:
            raise AuctionNotFound(auction_id) from exc

    async def list_all(self) -> list[Auction]:
        docs = await self._run(lambda: list(self._client.collection(self._collection_name).stream()))
        return [Auction.from_dict(doc.to_dict()) for doc in docs]
