"""
Explicit retry policy for external service calls.

Nothing retries unless a policy with more than one attempt is injected, and
every retry is logged.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt count and exponential backoff with jitter."""

    max_attempts: int = 1
    base_delay_s: float = 0.5
    max_delay_s: float = 8.0
    jitter_s: float = 0.25

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based)."""
        delay = min(self.max_delay_s, self.base_delay_s * (2 ** (attempt - 1)))
        return delay + random.uniform(0, self.jitter_s)


NO_RETRY = RetryPolicy()


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    label: str = "call",
) -> T:
    """Run `fn`, retrying on `retry_on` errors up to the policy's limit."""
    attempts = max(1, policy.max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= attempts:
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (%s); retrying in %.1fs (attempt %s/%s)",
                label,
                exc,
                delay,
                attempt + 1,
                attempts,
            )
            await asyncio.sleep(delay)
    raise RuntimeError("unreachable")
