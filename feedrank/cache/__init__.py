from feedrank.cache.store import MISSING, CacheStats, FeedCache, InMemoryFeedCache

__all__ = ["MISSING", "CacheStats", "FeedCache", "InMemoryFeedCache"]
