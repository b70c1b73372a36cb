from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, Type, TypeVar

from leadgen.config import settings
from leadgen.errors import RateLimitError
from leadgen.services.logger import logger

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    max_attempts: int = 3
    base_delay_ms: int = 300
    max_delay_ms: int = 4000

    @classmethod
    def from_settings(cls) -> "BackoffPolicy":
        return cls(
            max_attempts=max(settings.rate_limit_max_attempts, 1),
            base_delay_ms=settings.rate_limit_base_delay_ms,
            max_delay_ms=settings.rate_limit_max_delay_ms,
        )

    def delay_seconds(self, attempt: int) -> float:
        """Exponential delay for the given 1-based attempt, with +/-20% jitter."""
        delay = min(self.max_delay_ms, self.base_delay_ms * (2 ** (attempt - 1)))
        delay = delay * (0.8 + 0.4 * random.random())
        return delay / 1000.0


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    retry_on: Sequence[Type[BaseException]] = (RateLimitError,),
    policy: BackoffPolicy | None = None,
    label: str = "",
) -> T:
    """Await `fn`, retrying only on `retry_on` errors up to the policy's attempt budget.

    Any other exception propagates immediately.
    """
    policy = policy or BackoffPolicy.from_settings()
    attempt = 0
    while True:
        try:
            return await fn()
        except tuple(retry_on) as exc:
            attempt += 1
            if attempt >= policy.max_attempts:
                raise
            delay = policy.delay_seconds(attempt)
            logger.debug(f"Retrying {label or 'call'} after {exc!r} in {delay:.2f}s (attempt {attempt + 1}/{policy.max_attempts})")
            await asyncio.sleep(delay)
