"""
Redis-backed feed cache for multi-instance deployments.

  • Pages   — STRING (JSON) keyed by the feed key schema, native EX expiry
  • Pattern — SCAN MATCH with glob metacharacters other than ``*`` escaped

Hit/miss counters are kept per process; key count is a SCAN over ``feed:*``.
Driver and serialisation errors are raised as CacheFault so callers can
degrade to a miss.
"""
import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from feedrank.cache import keys
from feedrank.cache.store import MISSING, CacheStats, FeedCache
from feedrank.errors import CacheFault

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = set("?[]\\")
SCAN_BATCH = 500


def to_redis_glob(pattern: str) -> str:
    """Escape Redis glob metacharacters so only ``*`` acts as a wildcard."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in pattern)


class RedisFeedCache(FeedCache):
    backend = "redis"

    def __init__(self, client: aioredis.Redis) -> None:
        self._redis = client
        self._hits = 0
        self._misses = 0

    @classmethod
    def from_settings(cls, host: str, port: int) -> "RedisFeedCache":
        return cls(aioredis.Redis(host=host, port=port, decode_responses=True))

    async def get(self, key: str) -> Any:
        try:
            raw: Optional[str] = await self._redis.get(key)
        except RedisError as exc:
            raise CacheFault(f"redis GET {key} failed: {exc}") from exc
        if raw is None:
            self._misses += 1
            return MISSING
        try:
            value = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as exc:
            raise CacheFault(f"corrupt cache entry {key}") from exc
        self._hits += 1
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise CacheFault(f"value for {key} is not JSON-serialisable") from exc
        try:
            await self._redis.set(key, payload, ex=ttl_seconds)
        except RedisError as exc:
            raise CacheFault(f"redis SET {key} failed: {exc}") from exc

    async def delete(self, key: str) -> int:
        try:
            return int(await self._redis.delete(key))
        except RedisError as exc:
            raise CacheFault(f"redis DEL {key} failed: {exc}") from exc

    async def _scan(self, pattern: str) -> list[str]:
        return [
            k async for k in self._redis.scan_iter(match=to_redis_glob(pattern), count=SCAN_BATCH)
        ]

    async def delete_pattern(self, pattern: str) -> int:
        try:
            matching = await self._scan(pattern)
            if not matching:
                return 0
            await self._redis.delete(*matching)
        except RedisError as exc:
            raise CacheFault(f"redis pattern delete {pattern} failed: {exc}") from exc
        logger.debug("Deleted %d cache keys matching %s", len(matching), pattern)
        return len(matching)

    async def clear_all(self) -> None:
        await self.delete_pattern(f"{keys.KEY_PREFIX}:*")
        self._hits = 0
        self._misses = 0

    async def stats(self) -> CacheStats:
        try:
            count = len(await self._scan(f"{keys.KEY_PREFIX}:*"))
        except RedisError as exc:
            raise CacheFault(f"redis SCAN failed: {exc}") from exc
        return CacheStats(hits=self._hits, misses=self._misses, keys=count)

    async def close(self) -> None:
        await self._redis.aclose()
