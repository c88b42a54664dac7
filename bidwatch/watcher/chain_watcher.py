"""Poll watched addresses and surface new payments as bid candidates."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from ..auction.models import BidCandidate
from ..ledger.addresses import validate_address
from ..ledger.client import LedgerClient
from ..ledger.errors import LedgerUnavailable, TransactionNotFound
from ..ledger.models import Utxo
from ..transport.timestamps import utcnow

logger = logging.getLogger(__name__)

CandidateCallback = Callable[[BidCandidate], Union[Awaitable[Any], Any]]


class WatchHandle:
    """Owns the polling state of one address: baseline snapshot and pending UTXOs."""

    def __init__(self, address: str) -> None:
        self.address = address
        self.baseline: set[Utxo] | None = None
        self.pending: dict[Utxo, int] = {}
        self.task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    async def wait(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    async def wait_closed(self) -> None:
        if self.task is not None:
            await self.task


class ChainWatcher:
    def __init__(
        self,
        ledger: LedgerClient,
        *,
        interval_seconds: float = 2.0,
        pending_retry_limit: int = 5,
    ) -> None:
        self._ledger = ledger
        self._interval = interval_seconds
        self._pending_retry_limit = pending_retry_limit
        self._watches: dict[str, WatchHandle] = {}

    def is_watching(self, address: str) -> bool:
        handle = self._watches.get(address)
        return handle is not None and not handle.stopped

    def watched_addresses(self) -> list[str]:
        return sorted(address for address in self._watches if self.is_watching(address))

    def start(self, address: str, on_candidate: CandidateCallback) -> WatchHandle:
        validate_address(address)
        existing = self._watches.get(address)
        if existing is not None and not existing.stopped:
            return existing
        handle = WatchHandle(address)
        handle.task = asyncio.create_task(self._run(handle, on_candidate), name=f"watch:{address}")
        self._watches[address] = handle
        logger.info("watching %s every %.1fs", address, self._interval)
        return handle

    def stop(self, handle: WatchHandle) -> None:
        handle.stop()
        if self._watches.get(handle.address) is handle:
            del self._watches[handle.address]
        logger.info("stopped watching %s", handle.address)

    async def stop_all(self) -> None:
        handles = list(self._watches.values())
        for handle in handles:
            self.stop(handle)
        await asyncio.gather(*(handle.wait_closed() for handle in handles), return_exceptions=True)

    async def _run(self, handle: WatchHandle, on_candidate: CandidateCallback) -> None:
        while not handle.stopped:
            try:
                await self.tick(handle, on_candidate)
            except Exception as exc:
                logger.error("tick for %s failed: %s", handle.address, exc, exc_info=True)
            if handle.stopped:
                break
            await handle.wait(self._interval)

    async def tick(self, handle: WatchHandle, on_candidate: CandidateCallback) -> None:
        """Diff the current snapshot against the baseline and emit new payments."""
        try:
            utxos = await self._ledger.fetch_address_utxos(handle.address)
        except LedgerUnavailable as exc:
            logger.warning("utxo fetch for %s failed, keeping baseline: %s", handle.address, exc)
            return

        if handle.baseline is None:
            handle.baseline = set(utxos)
            logger.info("baseline for %s holds %d utxos", handle.address, len(utxos))
            return

        previous = handle.baseline
        retries = {utxo: handle.pending[utxo] for utxo in utxos if utxo in handle.pending}
        fresh = [utxo for utxo in utxos if utxo not in previous or utxo in retries]
        handle.baseline = set(utxos)
        handle.pending = {}

        for utxo in fresh:
            if handle.stopped:
                return
            logger.info("new utxo %s on %s: %d sompi", utxo.utxo_id, handle.address, utxo.amount)
            candidate = await self._resolve(utxo)
            if candidate is None:
                attempts = retries.get(utxo, 0) + 1
                if attempts < self._pending_retry_limit:
                    handle.pending[utxo] = attempts
                else:
                    logger.error("dropping %s after %d failed resolutions", utxo.utxo_id, attempts)
                continue
            if handle.stopped:
                return
            await self._emit(on_candidate, candidate)

    async def _resolve(self, utxo: Utxo) -> BidCandidate | None:
        try:
            tx = await self._ledger.verify_transaction(utxo.transaction_id)
        except (TransactionNotFound, LedgerUnavailable) as exc:
            logger.warning("could not resolve %s: %s", utxo.transaction_id, exc)
            return None
        return BidCandidate(
            transaction_id=utxo.transaction_id,
            amount=utxo.amount,
            sender=tx.sender,
            timestamp=tx.timestamp or utcnow(),
        )

    async def _emit(self, on_candidate: CandidateCallback, candidate: BidCandidate) -> None:
        try:
            result = on_candidate(candidate)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.error(
                "candidate handler failed for %s: %s", candidate.transaction_id, exc, exc_info=True
            )
