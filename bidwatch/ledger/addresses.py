"""Address grammar and unit conversion for the Kaspa ledger."""

from __future__ import annotations

import re
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any

from .errors import InvalidAddressError

ADDRESS_PATTERN = re.compile(r"^kaspa(test)?:[a-z0-9]+$", re.IGNORECASE)

SOMPI_PER_KAS = 100_000_000


def is_valid_address(address: Any) -> bool:
    return isinstance(address, str) and ADDRESS_PATTERN.match(address) is not None


def validate_address(address: Any) -> str:
    if not is_valid_address(address):
        raise InvalidAddressError(f"invalid address format: {address!r}")
    return address


def to_sompi(value: Any) -> int:
    """Convert a display amount (KAS) to integer sompi, truncating dust."""
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"invalid amount {value!r}") from exc
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"invalid amount {value!r}")
    return int((amount * SOMPI_PER_KAS).to_integral_value(rounding=ROUND_DOWN))


def to_kas(sompi: int) -> Decimal:
    return Decimal(sompi) / SOMPI_PER_KAS
