"""Reusable retry policy with exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhausted(Exception):
    """Raised when every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt an operation up to ``max_attempts`` times.

    Errors in ``fatal`` propagate immediately, errors in ``retryable`` are
    retried after ``base_delay * 2**attempt`` seconds, anything else
    propagates untouched.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    retryable: tuple[type[BaseException], ...] = (Exception,)
    fatal: tuple[type[BaseException], ...] = ()
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2**attempt)

    async def run(self, operation: Callable[[], Awaitable[T]], *, label: str = "operation") -> T:
        last_error: BaseException | None = None
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except self.fatal:
                raise
            except self.retryable as exc:
                last_error = exc
                logger.warning(
                    "%s attempt %d/%d failed: %s", label, attempt + 1, self.max_attempts, exc
                )
                if attempt < self.max_attempts - 1:
                    delay = self.delay_for(attempt)
                    if delay > 0:
                        await self.sleep(delay)
        raise RetryExhausted(self.max_attempts, last_error)
