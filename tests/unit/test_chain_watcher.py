"""Snapshot diffing, pending retries and lifecycle of the chain watcher."""

from __future__ import annotations

import asyncio

import pytest

from bidwatch.ledger.errors import InvalidAddressError, LedgerUnavailable
from bidwatch.ledger.models import Utxo
from bidwatch.watcher.chain_watcher import ChainWatcher, WatchHandle

from conftest import SELLER

X = Utxo("tx-x", 0, 100)
Y = Utxo("tx-y", 0, 250)
Z = Utxo("tx-z", 1, 300)


class Collector:
    def __init__(self) -> None:
        self.candidates = []

    def __call__(self, candidate) -> None:
        self.candidates.append(candidate)

    @property
    def ids(self) -> list[str]:
        return [c.transaction_id for c in self.candidates]


class TestTick:
    @pytest.mark.asyncio
    async def test_baseline_then_only_new_utxos_are_emitted(self, ledger):
        ledger.snapshots = [[X], [X, Y], [Y]]
        for utxo in (X, Y):
            ledger.add(utxo.transaction_id, utxo.amount)
        watcher = ChainWatcher(ledger)
        handle = WatchHandle(SELLER)
        collect = Collector()

        await watcher.tick(handle, collect)
        assert collect.ids == []

        await watcher.tick(handle, collect)
        assert collect.ids == ["tx-y"]
        assert collect.candidates[0].amount == 250

        await watcher.tick(handle, collect)
        assert collect.ids == ["tx-y"]

    @pytest.mark.asyncio
    async def test_failed_fetch_keeps_baseline(self, ledger):
        ledger.snapshots = [[X], LedgerUnavailable("down"), [X, Y]]
        ledger.add("tx-y", 250)
        watcher = ChainWatcher(ledger)
        handle = WatchHandle(SELLER)
        collect = Collector()

        await watcher.tick(handle, collect)
        await watcher.tick(handle, collect)
        assert handle.baseline == {X}

        await watcher.tick(handle, collect)
        assert collect.ids == ["tx-y"]

    @pytest.mark.asyncio
    async def test_candidate_carries_ledger_sender(self, ledger):
        ledger.snapshots = [[], [Z]]
        ledger.add("tx-z", 300, sender="kaspa:qpalice")
        watcher = ChainWatcher(ledger)
        handle = WatchHandle(SELLER)
        collect = Collector()

        await watcher.tick(handle, collect)
        await watcher.tick(handle, collect)

        assert collect.candidates[0].sender == "kaspa:qpalice"


class TestPending:
    @pytest.mark.asyncio
    async def test_unresolved_utxo_is_retried_and_emitted_once(self, ledger):
        ledger.snapshots = [[], [Y]]
        ledger.transactions["tx-y"] = LedgerUnavailable("indexer lagging")
        watcher = ChainWatcher(ledger)
        handle = WatchHandle(SELLER)
        collect = Collector()

        await watcher.tick(handle, collect)
        await watcher.tick(handle, collect)
        assert collect.ids == []
        assert handle.pending == {Y: 1}

        ledger.add("tx-y", 250)
        await watcher.tick(handle, collect)
        assert collect.ids == ["tx-y"]
        assert handle.pending == {}

        await watcher.tick(handle, collect)
        assert collect.ids == ["tx-y"]

    @pytest.mark.asyncio
    async def test_pending_utxo_is_dropped_after_limit(self, ledger):
        ledger.snapshots = [[], [Y]]
        watcher = ChainWatcher(ledger, pending_retry_limit=2)
        handle = WatchHandle(SELLER)
        collect = Collector()

        await watcher.tick(handle, collect)
        await watcher.tick(handle, collect)
        assert handle.pending == {Y: 1}

        await watcher.tick(handle, collect)
        assert handle.pending == {}

        ledger.add("tx-y", 250)
        await watcher.tick(handle, collect)
        assert collect.ids == []

    @pytest.mark.asyncio
    async def test_pending_utxo_forgotten_when_spent(self, ledger):
        ledger.snapshots = [[], [Y], []]
        watcher = ChainWatcher(ledger)
        handle = WatchHandle(SELLER)
        collect = Collector()

        await watcher.tick(handle, collect)
        await watcher.tick(handle, collect)
        await watcher.tick(handle, collect)

        assert handle.pending == {}


class TestLifecycle:
    def test_start_rejects_invalid_address(self, ledger):
        watcher = ChainWatcher(ledger)
        with pytest.raises(InvalidAddressError):
            watcher.start("not-an-address", Collector())

    @pytest.mark.asyncio
    async def test_no_emission_after_stop(self, ledger):
        ledger.snapshots = [[], [Y, Z]]
        ledger.add("tx-y", 250)
        ledger.add("tx-z", 300)
        watcher = ChainWatcher(ledger)
        handle = WatchHandle(SELLER)
        seen = []

        def stop_after_first(candidate):
            seen.append(candidate.transaction_id)
            handle.stop()

        await watcher.tick(handle, stop_after_first)
        await watcher.tick(handle, stop_after_first)

        assert seen == ["tx-y"]

    @pytest.mark.asyncio
    async def test_loop_emits_to_async_callback_and_stops(self, ledger):
        ledger.snapshots = [[X], [X, Y]]
        ledger.add("tx-y", 250)
        watcher = ChainWatcher(ledger, interval_seconds=0.01)
        received = asyncio.Event()
        seen = []

        async def on_candidate(candidate):
            seen.append(candidate.transaction_id)
            received.set()

        handle = watcher.start(SELLER, on_candidate)
        assert watcher.start(SELLER, on_candidate) is handle
        assert watcher.watched_addresses() == [SELLER]

        await asyncio.wait_for(received.wait(), timeout=2)
        await watcher.stop_all()

        assert seen == ["tx-y"]
        assert handle.task.done()
        assert not watcher.is_watching(SELLER)

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_end_the_loop(self, ledger):
        ledger.snapshots = [[], [Y], [Y, Z]]
        ledger.add("tx-y", 250)
        ledger.add("tx-z", 300)
        watcher = ChainWatcher(ledger, interval_seconds=0.01)
        done = asyncio.Event()
        seen = []

        def on_candidate(candidate):
            seen.append(candidate.transaction_id)
            if candidate.transaction_id == "tx-y":
                raise RuntimeError("handler blew up")
            done.set()

        watcher.start(SELLER, on_candidate)
        await asyncio.wait_for(done.wait(), timeout=2)
        await watcher.stop_all()

        assert seen == ["tx-y", "tx-z"]
