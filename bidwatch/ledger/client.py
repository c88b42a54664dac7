"""Async client for the Kaspa REST indexer with retry and endpoint fallback."""

from __future__ import annotations

import logging
from typing import Any, Iterable

import httpx

from .addresses import validate_address
from .errors import LedgerUnavailable, TransactionNotFound
from .models import TransactionRecord, Utxo, VerifiedTransaction
from .retry import RetryExhausted, RetryPolicy

logger = logging.getLogger(__name__)

_RETRYABLE = (httpx.TransportError, httpx.HTTPStatusError, ValueError)


def _ordered_endpoints(primary: str, fallbacks: Iterable[str]) -> list[str]:
    endpoints: list[str] = []
    for url in (primary, *fallbacks):
        if not url:
            continue
        url = url.rstrip("/")
        if url not in endpoints:
            endpoints.append(url)
    return endpoints


class LedgerClient:
    """Stateless request layer over one or more indexer endpoints."""

    def __init__(
        self,
        primary_url: str,
        fallback_urls: Iterable[str] = (),
        *,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._endpoints = _ordered_endpoints(primary_url, fallback_urls)
        if not self._endpoints:
            raise ValueError("at least one ledger endpoint is required")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._policy = policy or RetryPolicy(
            max_attempts=max_retries,
            base_delay=backoff_base,
            retryable=_RETRYABLE,
            fatal=(TransactionNotFound,),
        )

    @property
    def endpoints(self) -> list[str]:
        return list(self._endpoints)

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_once(self, url: str) -> Any:
        response = await self._client.get(url)
        if response.status_code == 404:
            raise TransactionNotFound(f"{url} not found")
        response.raise_for_status()
        return response.json()

    async def _get(self, path: str) -> Any:
        last_error: BaseException | None = None
        for endpoint in self._endpoints:
            url = f"{endpoint}{path}"
            try:
                return await self._policy.run(lambda: self._get_once(url), label=f"GET {url}")
            except RetryExhausted as exc:
                last_error = exc.last_error
                logger.warning("all retries failed for %s, trying next endpoint", endpoint)
        raise LedgerUnavailable(f"GET {path} failed on every endpoint", last_error)

    async def fetch_address_utxos(self, address: str) -> list[Utxo]:
        validate_address(address)
        try:
            data = await self._get(f"/addresses/{address}/utxos")
        except TransactionNotFound as exc:
            # an empty listing is [], a 404 here means a misrouted endpoint
            raise LedgerUnavailable(f"utxo listing for {address} not served", exc) from exc
        if not isinstance(data, list):
            return []
        utxos: list[Utxo] = []
        for item in data:
            try:
                utxos.append(Utxo.from_api(item))
            except (TypeError, ValueError, AttributeError) as exc:
                logger.warning("skipping malformed utxo at %s: %s", address, exc)
        return utxos

    async def fetch_transaction(self, transaction_id: str) -> TransactionRecord:
        data = await self._get(f"/transactions/{transaction_id}")
        try:
            return TransactionRecord.from_api(transaction_id, data)
        except (TypeError, ValueError) as exc:
            raise LedgerUnavailable(f"malformed transaction {transaction_id}", exc) from exc

    async def resolve_sender(self, record: TransactionRecord) -> str | None:
        """Return the address that controlled the output spent by the first input."""
        if not record.inputs:
            return None
        first = record.inputs[0]
        if first.previous_outpoint_address:
            return first.previous_outpoint_address
        if not first.previous_outpoint_hash:
            return None
        logger.info(
            "resolving sender for %s from %s:%s",
            record.transaction_id,
            first.previous_outpoint_hash,
            first.previous_outpoint_index,
        )
        try:
            previous = await self.fetch_transaction(first.previous_outpoint_hash)
        except (TransactionNotFound, LedgerUnavailable) as exc:
            logger.error("failed to resolve sender for %s: %s", record.transaction_id, exc)
            return None
        return previous.output_address(first.previous_outpoint_index)

    async def verify_transaction(self, transaction_id: str) -> VerifiedTransaction:
        record = await self.fetch_transaction(transaction_id)
        sender = await self.resolve_sender(record)
        return VerifiedTransaction.from_record(record, sender)

    async def get_network_info(self) -> dict[str, Any]:
        data = await self._get("/info/dagconfig")
        return data if isinstance(data, dict) else {"data": data}
