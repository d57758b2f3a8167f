"""
Retry and throttling utilities for provider calls.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from ..config.rate_limiter import RateLimitConfig

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryPolicy:
    """Exponential backoff retry policy wrapping any async provider call.

    A call is attempted once plus ``max_retries`` more times. The delay
    before retry ``n`` (0-based) is ``initial_delay * backoff_factor ** n``,
    capped at ``max_delay``.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.config = config or RateLimitConfig()
        self.retry_on = retry_on
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.config.max_retries + 1

    def backoff_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay."""
        delay = min(
            self.config.max_delay,
            self.config.initial_delay * (self.config.backoff_factor ** attempt)
        )
        if self.config.jitter:
            delay += random.uniform(0, self.config.jitter)
        return delay

    async def run(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Call ``func`` until it succeeds or retries are exhausted.

        The last exception is re-raised unchanged once every attempt failed.
        """
        name = getattr(func, '__name__', repr(func))
        for attempt in range(self.max_attempts):
            try:
                return await func(*args, **kwargs)
            except self.retry_on as e:
                if attempt >= self.config.max_retries:
                    logger.error(f"{name} failed after {self.max_attempts} attempts: {str(e)}")
                    raise
                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"{name} attempt {attempt + 1}/{self.max_attempts} failed: {str(e)}. "
                    f"Retrying in {delay:.2f}s"
                )
                await self._sleep(delay)
        raise RuntimeError("unreachable")


class BatchThrottle:
    """Fixed delay between consecutive batches.

    The first call returns immediately; every later call sleeps for
    ``delay`` seconds first.
    """

    def __init__(self, delay: float, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.delay = delay
        self._sleep = sleep
        self._calls = 0

    async def wait(self):
        if self._calls > 0 and self.delay > 0:
            logger.debug(f"Throttling for {self.delay:.2f}s before next batch")
            await self._sleep(self.delay)
        self._calls += 1
