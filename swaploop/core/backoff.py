from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
RetryHook = Callable[[int, BaseException, float], None]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry budget shared by every retry site in the engine.

    ``delay(attempt)`` is the pause after the ``attempt``-th failure (1-based):
    ``base_delay * factor ** attempt``, capped at ``max_delay``. A factor of 1
    gives a fixed delay.
    """

    max_attempts: int
    base_delay: float
    factor: float = 2.0
    max_delay: float = 60.0

    @classmethod
    def exponential(cls, max_attempts: int, base_delay: float = 1.0) -> "BackoffPolicy":
        return cls(max_attempts=max_attempts, base_delay=base_delay, factor=2.0)

    @classmethod
    def fixed(cls, max_attempts: int, delay: float) -> "BackoffPolicy":
        return cls(max_attempts=max_attempts, base_delay=delay, factor=1.0)

    @classmethod
    def single(cls) -> "BackoffPolicy":
        return cls(max_attempts=1, base_delay=0.0, factor=1.0)

    def delay(self, attempt: int) -> float:
        if attempt <= 0:
            return 0.0
        return min(self.max_delay, self.base_delay * (self.factor**attempt))


async def retry_async(
    policy: BackoffPolicy,
    operation: Callable[[], Awaitable[T]],
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    on_retry: Optional[RetryHook] = None,
    sleep: Optional[Sleep] = None,
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    The last exception is re-raised once ``max_attempts`` calls have failed.
    Exceptions outside ``retry_on`` propagate immediately.
    """
    pause = sleep or asyncio.sleep
    attempts = max(1, policy.max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= attempts:
                raise
            delay = policy.delay(attempt)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            else:
                logger.debug("retry %s/%s after %.1fs: %s", attempt, attempts, delay, exc)
            await pause(delay)
    raise RuntimeError("retry_async exhausted without result")


__all__ = ["BackoffPolicy", "retry_async"]
