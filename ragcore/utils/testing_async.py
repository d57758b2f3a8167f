"""
Async testing utilities.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, List, TypeVar
from functools import wraps
from unittest.mock import AsyncMock

logger = logging.getLogger(__name__)

T = TypeVar('T')


def async_test(func: Callable[..., Coroutine[Any, Any, T]]) -> Callable[..., T]:
    """Decorator to run async test functions."""
    @wraps(func)
    def wrapper(*args, **kwargs) -> T:
        return asyncio.run(func(*args, **kwargs))
    return wrapper


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays instead of waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def failing_then(result: Any, failures: int, error: Exception) -> AsyncMock:
    """AsyncMock raising ``error`` ``failures`` times before returning ``result``."""
    return AsyncMock(side_effect=[error] * failures + [result])


async def never_finishes(*args, **kwargs) -> Awaitable[None]:
    """Coroutine that outlives any reasonable stage timeout."""
    await asyncio.sleep(3600)
