"""Shared retry policy applied around every adapter call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import HarvestError
from .guidance import detect_features
from .provider_config import ProviderConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable_error(exc: BaseException) -> bool:
    """Only pipeline errors flagged retryable are retried."""
    return isinstance(exc, HarvestError) and exc.retryable


@dataclass
class RetryPolicy:
    """Bounded retry with linear backoff.

    Attempt ``n`` (1-based) that fails with a retryable error is followed by a
    wait of ``n * backoff_seconds``. Non-retryable errors are re-raised
    immediately, as is the last error once ``max_attempts`` is reached.

    Attributes:
        max_attempts: Total number of calls, including the first
        backoff_seconds: Linear backoff unit
        is_retryable: Predicate deciding whether an exception may be retried
        sleep: Awaitable sleep, replaceable in tests
    """

    max_attempts: int = 1
    backoff_seconds: float = 5.0
    is_retryable: Callable[[BaseException], bool] = is_retryable_error
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def backoff(self, attempt: int) -> float:
        return attempt * self.backoff_seconds

    def with_attempts(self, max_attempts: int) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=max_attempts,
            backoff_seconds=self.backoff_seconds,
            is_retryable=self.is_retryable,
            sleep=self.sleep,
        )

    def for_provider(
        self, provider: ProviderConfig, flaky_attempts: int, slow_attempts: int
    ) -> RetryPolicy:
        """Derive the policy for one provider: only flaky providers retry."""
        if not provider.flaky:
            return self.with_attempts(1)
        if detect_features(provider).slow:
            return self.with_attempts(slow_attempts)
        return self.with_attempts(flaky_attempts)

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "") -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                if attempt >= self.max_attempts or not self.is_retryable(e):
                    raise
                wait = self.backoff(attempt)
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.1fs",
                    label or "operation",
                    attempt,
                    self.max_attempts,
                    e,
                    wait,
                )
                await self.sleep(wait)
                attempt += 1
