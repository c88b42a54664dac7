"""Configuration helpers for the auction server."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml

_DEFAULT_SERVER_CONFIG = Path(__file__).resolve().parent / "server.yaml"

NETWORK_ENDPOINTS: dict[str, tuple[str, ...]] = {
    "mainnet": ("https://api.kaspa.org",),
    "testnet": ("https://api-tn10.kaspa.org", "https://kaspa-rest.fyi"),
}


@dataclass(frozen=True)
class LedgerConfig:
    network: str
    url: str
    fallback_urls: tuple[str, ...]
    timeout_seconds: float
    max_retries: int
    backoff_base_seconds: float


@dataclass(frozen=True)
class WatcherConfig:
    interval_seconds: float
    pending_retry_limit: int


@dataclass(frozen=True)
class SettlementConfig:
    max_attempts: int
    amount_tolerance: int
    reject_amount_mismatch: bool
    require_verification: bool
    retention_days: int


@dataclass(frozen=True)
class StorageConfig:
    backend: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class EventsConfig:
    backend: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class ApiConfig:
    allow_simulated_bids: bool


@dataclass(frozen=True)
class ServerConfig:
    listen: Mapping[str, Any]
    ledger: LedgerConfig
    watcher: WatcherConfig
    settlement: SettlementConfig
    storage: StorageConfig
    events: EventsConfig
    api: ApiConfig


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return yaml.safe_load(path.read_text()) or {}


def _ledger_config(ledger: Mapping[str, Any]) -> LedgerConfig:
    network = str(os.getenv("BIDWATCH_NETWORK") or ledger.get("network", "mainnet"))
    if network not in NETWORK_ENDPOINTS:
        raise ValueError(f"unknown ledger network {network}")
    defaults = NETWORK_ENDPOINTS[network]
    url = os.getenv("BIDWATCH_LEDGER_URL") or ledger.get("url") or defaults[0]
    fallbacks = ledger.get("fallback_urls")
    return LedgerConfig(
        network=network,
        url=str(url),
        fallback_urls=tuple(fallbacks) if fallbacks is not None else defaults,
        timeout_seconds=float(ledger.get("timeout_seconds", 15.0)),
        max_retries=int(ledger.get("max_retries", 3)),
        backoff_base_seconds=float(ledger.get("backoff_base_seconds", 1.0)),
    )


def parse_server_config(data: Mapping[str, Any]) -> ServerConfig:
    watcher = data.get("watcher", {})
    settlement = data.get("settlement", {})
    storage = data.get("storage", {})
    events = data.get("events", {})
    api = data.get("api", {})
    return ServerConfig(
        listen=data.get("listen", {}),
        ledger=_ledger_config(data.get("ledger", {})),
        watcher=WatcherConfig(
            interval_seconds=float(watcher.get("interval_seconds", 2.0)),
            pending_retry_limit=int(watcher.get("pending_retry_limit", 5)),
        ),
        settlement=SettlementConfig(
            max_attempts=int(settlement.get("max_attempts", 3)),
            amount_tolerance=int(settlement.get("amount_tolerance", 10_000)),
            reject_amount_mismatch=bool(settlement.get("reject_amount_mismatch", True)),
            require_verification=bool(settlement.get("require_verification", False)),
            retention_days=int(settlement.get("retention_days", 60)),
        ),
        storage=StorageConfig(
            backend=str(storage.get("backend", "in_memory")),
            options=dict(storage.get("options") or {}),
        ),
        events=EventsConfig(
            backend=str(events.get("backend", "local")),
            options=dict(events.get("options") or {}),
        ),
        api=ApiConfig(
            allow_simulated_bids=bool(api.get("allow_simulated_bids", True)),
        ),
    )


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfig:
    path = Path(os.getenv("BIDWATCH_CONFIG_PATH", _DEFAULT_SERVER_CONFIG))
    return parse_server_config(_load_yaml(path))
