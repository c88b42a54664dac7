"""Timestamp helpers for ISO-8601 persistence and ledger epoch values."""

from __future__ import annotations

from datetime import datetime, timezone


class TimestampError(ValueError):
    """Raised when timestamps are malformed or lack timezone information."""


def parse_timestamp(value: str) -> datetime:
    if not value:
        raise TimestampError("timestamp missing")
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
    except ValueError as exc:  # pragma: no cover - delegated to datetime
        raise TimestampError("timestamp is not ISO-8601 compatible") from exc
    if dt.tzinfo is None:
        raise TimestampError("timestamp must include timezone information")
    return dt.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        raise TimestampError("timestamp must include timezone information")
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def from_epoch_ms(value: int | str | None) -> datetime:
    """Convert a ledger block time (epoch milliseconds) to an aware datetime.

    Missing values fall back to the current time, matching how unconfirmed
    transactions are reported by the indexer.
    """
    if value in (None, ""):
        return utcnow()
    try:
        millis = int(value)
    except (TypeError, ValueError) as exc:
        raise TimestampError(f"invalid epoch milliseconds {value!r}") from exc
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
