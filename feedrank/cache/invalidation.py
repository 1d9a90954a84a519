"""
Mutation-side cache invalidation.

Each hook maps a content or social-graph event onto the cache helpers:

  post created / edited / deleted → followers' home+following, the author's
                                    own home+following, trending, community
  post engagement (like/unlike)   → nothing; engagement drift self-heals at
                                    the next TTL expiry
  follow / unfollow               → the user's home+following
  join / leave community          → the user's home+following

Hooks are best-effort: they return an InvalidationOutcome and log failures
instead of raising, so a cache problem can never fail the mutation itself.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from feedrank.cache import keys
from feedrank.cache.store import FeedCache
from feedrank.clients.base import SocialGraph
from feedrank.telemetry import CACHE_INVALIDATIONS_TOTAL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvalidationOutcome:
    event: str
    success: bool
    deleted: int = 0
    error: Optional[str] = None


class CacheInvalidator:
    def __init__(self, cache: FeedCache, social_graph: SocialGraph) -> None:
        self.cache = cache
        self.social_graph = social_graph

    async def _run(self, event: str, action: Callable[[], Awaitable[int]]) -> InvalidationOutcome:
        try:
            deleted = await action()
        except Exception as exc:
            logger.error("Cache invalidation failed on %s: %s", event, exc)
            return InvalidationOutcome(event=event, success=False, error=str(exc))
        CACHE_INVALIDATIONS_TOTAL.labels(event=event).inc(deleted)
        logger.debug("Invalidated %d cache keys on %s", deleted, event)
        return InvalidationOutcome(event=event, success=True, deleted=deleted)

    async def _own_feeds(self, user_id: str) -> int:
        return (
            await self.cache.invalidate_feed(user_id, keys.HOME)
            + await self.cache.invalidate_feed(user_id, keys.FOLLOWING)
        )

    async def _content_changed(self, author_id: str, community_id: Optional[str]) -> int:
        follower_ids = await self.social_graph.get_follower_ids(author_id)
        deleted = await self.cache.invalidate_follower_feeds(follower_ids)
        deleted += await self._own_feeds(author_id)
        deleted += await self.cache.invalidate_trending_feed()
        if community_id:
            deleted += await self.cache.invalidate_community_feed(community_id)
        return deleted

    # ── Content events ────────────────────────────────────────────────────

    async def on_post_created(
        self, author_id: str, community_id: Optional[str] = None
    ) -> InvalidationOutcome:
        return await self._run(
            "post_created", lambda: self._content_changed(author_id, community_id)
        )

    async def on_post_updated(
        self, author_id: str, community_id: Optional[str] = None
    ) -> InvalidationOutcome:
        return await self._run(
            "post_updated", lambda: self._content_changed(author_id, community_id)
        )

    async def on_post_deleted(
        self, author_id: str, community_id: Optional[str] = None
    ) -> InvalidationOutcome:
        return await self._run(
            "post_deleted", lambda: self._content_changed(author_id, community_id)
        )

    async def on_post_engagement(self, post_id: str, author_id: str) -> InvalidationOutcome:
        # Likes do not invalidate follower or trending pages; they expire via TTL.
        logger.debug("Engagement on post %s by %s: relying on TTL expiry", post_id, author_id)
        return InvalidationOutcome(event="post_engagement", success=True, deleted=0)

    # ── Social graph events ───────────────────────────────────────────────

    async def on_connection_changed(self, user_id: str) -> InvalidationOutcome:
        return await self._run("connection_changed", lambda: self._own_feeds(user_id))

    async def on_membership_changed(self, user_id: str) -> InvalidationOutcome:
        return await self._run("membership_changed", lambda: self._own_feeds(user_id))
