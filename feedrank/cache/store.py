"""
Feed page cache: the storage contract plus the process-local backend.

Every entry is written as a full replacement (last writer wins), so the only
locking needed is what keeps the underlying dict consistent. Values are
JSON-compatible payloads; the assemblers store ``FeedPage`` dumps.
"""
import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from feedrank.cache import keys

logger = logging.getLogger(__name__)


class _Missing:
    """Sentinel type for a cache miss (absent or expired)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    keys: int


def compile_pattern(pattern: str) -> "re.Pattern[str]":
    """
    Turn a ``*`` wildcard pattern into a regex meant for ``fullmatch``.
    Every other character is matched literally.
    """
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")), re.DOTALL)


class FeedCache(ABC):
    """
    Key/value store with per-entry expiry. Backends implement the five
    primitives; the invalidation helpers below are pure compositions of
    ``delete_pattern`` and work on any backend.
    """

    backend = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Return the stored value, or ``MISSING``."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> int:
        ...

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching ``pattern``; returns the count removed."""

    @abstractmethod
    async def clear_all(self) -> None:
        ...

    @abstractmethod
    async def stats(self) -> CacheStats:
        ...

    async def purge_expired(self) -> int:
        return 0

    # ── Invalidation helpers ──────────────────────────────────────────────

    async def invalidate_feed(self, scope: str, feed_type: str) -> int:
        """Drop every cached page of one feed type for one scope."""
        return await self.delete_pattern(keys.scope_pattern(feed_type, scope))

    async def invalidate_follower_feeds(self, follower_ids: Iterable[str]) -> int:
        """Drop home and following pages for each follower."""
        deleted = 0
        for follower_id in follower_ids or ():
            deleted += await self.invalidate_feed(follower_id, keys.HOME)
            deleted += await self.invalidate_feed(follower_id, keys.FOLLOWING)
        return deleted

    async def invalidate_community_feed(self, community_id: str) -> int:
        return await self.delete_pattern(keys.community_pattern(community_id))

    async def invalidate_trending_feed(self) -> int:
        return await self.delete_pattern(keys.feed_type_pattern(keys.TRENDING))


class InMemoryFeedCache(FeedCache):
    """Process-local TTL cache. ``clock`` must be monotonic and in seconds."""

    backend = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return MISSING
            value, expires_at = entry
            if expires_at <= now:
                del self._entries[key]
                self._misses += 1
                return MISSING
            self._hits += 1
            return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds
        with self._lock:
            self._entries[key] = (value, expires_at)

    async def delete(self, key: str) -> int:
        with self._lock:
            return 1 if self._entries.pop(key, None) is not None else 0

    async def delete_pattern(self, pattern: str) -> int:
        regex = compile_pattern(pattern)
        with self._lock:
            matching = [k for k in self._entries if regex.fullmatch(k)]
            for k in matching:
                del self._entries[k]
        if matching:
            logger.debug("Deleted %d cache keys matching %s", len(matching), pattern)
        return len(matching)

    async def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    async def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, keys=len(self._entries))

    async def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
            for k in expired:
                del self._entries[k]
        return len(expired)
