"""Exponential backoff with jitter for rate-limited provider calls.

One executor serves every call site; what differs per operation class lives
in a ``RetryPolicy`` value object.

Convention: ``max_attempts`` counts *retries after the first try*, so an
operation that is rate-limited every time is called ``max_attempts + 1``
times before ``RetriesExhaustedError`` is raised.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from loguru import logger

from weddingbot.constants import (
    RATE_LIMIT_REASONS,
    RATE_LIMIT_STATUS_CODES,
    SHARING_RATE_LIMIT_REASONS,
)
from weddingbot.errors import ProviderError, RetriesExhaustedError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters plus the errors considered rate limits.

    Attributes:
        base_delay:   Seconds before the first retry.
        multiplier:   Growth factor per attempt.
        max_delay:    Cap on the exponential part (jitter is added on top).
        max_attempts: Retries allowed after the first try.
        jitter:       Upper bound of the uniform random delay added.
        status_codes: HTTP statuses that may signal a rate limit.
        reasons:      Provider reasons that confirm it.
    """

    name: str
    base_delay: float
    multiplier: float
    max_delay: float
    max_attempts: int
    jitter: float
    status_codes: frozenset[int] = RATE_LIMIT_STATUS_CODES
    reasons: frozenset[str] = RATE_LIMIT_REASONS

    def delay_for(self, attempt: int, rng: Callable[[float, float], float] = random.uniform) -> float:
        """Delay before retry ``attempt`` (0-indexed)."""
        exponential = min(self.base_delay * self.multiplier**attempt, self.max_delay)
        return exponential + rng(0, self.jitter)

    def is_rate_limit(self, error: BaseException) -> bool:
        if not isinstance(error, ProviderError):
            return False
        return error.status in self.status_codes and any(
            reason in self.reasons for reason in error.reasons
        )


UPLOAD_POLICY = RetryPolicy(
    name="upload",
    base_delay=1.0,
    multiplier=2.0,
    max_delay=32.0,
    max_attempts=3,
    jitter=1.0,
)

PUBLIC_PERMISSION_POLICY = RetryPolicy(
    name="make-public",
    base_delay=0.5,
    multiplier=2.0,
    max_delay=5.0,
    max_attempts=2,
    jitter=0.5,
)

OWNER_SHARE_POLICY = RetryPolicy(
    name="share-owner",
    base_delay=1.0,
    multiplier=2.0,
    max_delay=30.0,
    max_attempts=3,
    jitter=1.0,
    status_codes=frozenset({403}),
    reasons=SHARING_RATE_LIMIT_REASONS,
)


class RetryExecutor:
    """Runs an async operation, sleeping and retrying on rate-limit errors only."""

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self._sleep = sleep
        self._rng = rng

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        label: str = "",
    ) -> T:
        """Call ``operation`` until it succeeds or the policy gives up.

        Raises:
            RetriesExhaustedError: rate limited on every one of the
                ``policy.max_attempts + 1`` tries.
            Exception: any non-rate-limit error, immediately.
        """
        label = label or policy.name
        attempt = 0
        while True:
            try:
                return await operation()
            except ProviderError as exc:
                if not policy.is_rate_limit(exc):
                    raise
                if attempt >= policy.max_attempts:
                    raise RetriesExhaustedError(label, attempt + 1, exc) from exc

                delay = policy.delay_for(attempt, self._rng)
                logger.warning(
                    "⏳ Rate limit on {} - retrying in {:.1f}s (attempt {}/{})",
                    label,
                    delay,
                    attempt + 1,
                    policy.max_attempts + 1,
                )
                await self._sleep(delay)
                attempt += 1
