"""
In-memory TTL cache for query results.

One instance belongs to one query processor; nothing is shared at module
scope, so separate processors (or separate test cases) never see each
other's entries.
"""

import logging
import time
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class QueryCache(Generic[T]):
    """Bounded TTL cache.

    When a ``set`` pushes the size above ``max_entries`` the cache is pruned
    down to ``prune_to`` entries: expired entries go first, then the oldest
    remaining ones.
    """

    def __init__(
        self,
        ttl: float = 3600,
        max_entries: int = 100,
        prune_to: int = 80,
        clock: Callable[[], float] = time.monotonic
    ):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if not 0 <= prune_to <= max_entries:
            raise ValueError("prune_to must be between 0 and max_entries")
        self.ttl = ttl
        self.max_entries = max_entries
        self.prune_to = prune_to
        self._clock = clock
        self._entries: Dict[str, Tuple[float, T]] = {}

    @staticmethod
    def make_key(query: str, user_id: str) -> str:
        """Build the cache key from the normalized query and the caller."""
        return f"query:{query.strip().lower()}:user:{user_id}"

    def _expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at > self.ttl

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._expired(stored_at):
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: T):
        self._entries[key] = (self._clock(), value)
        if len(self._entries) > self.max_entries:
            self._prune()

    def _prune(self):
        before = len(self._entries)
        for key in [k for k, (ts, _) in self._entries.items() if self._expired(ts)]:
            del self._entries[key]

        excess = len(self._entries) - self.prune_to
        if excess > 0:
            oldest = sorted(self._entries.items(), key=lambda item: item[1][0])[:excess]
            for key, _ in oldest:
                del self._entries[key]
        logger.info(f"Pruned query cache from {before} to {len(self._entries)} entries")

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
