"""
FeedService — one entry point per feed type, wired to a shared cache.

The cache, content store, social graph and response builder are injected,
so tests build isolated instances and a deployment can swap the in-memory
cache for Redis without touching the assemblers.
"""
from datetime import datetime
from typing import Callable, Optional

from feedrank.cache import keys
from feedrank.cache.invalidation import CacheInvalidator
from feedrank.cache.store import FeedCache
from feedrank.clients.base import ContentStore, ResponseBuilder, SocialGraph
from feedrank.config import FeedConfig
from feedrank.feeds.base import FeedAssembler, FeedRequest, utcnow
from feedrank.feeds.community import CommunityFeedAssembler
from feedrank.feeds.following import FollowingFeedAssembler
from feedrank.feeds.home import HomeFeedAssembler
from feedrank.feeds.trending import TrendingFeedAssembler
from feedrank.schemas import FeedResponse

ASSEMBLERS: dict[str, type[FeedAssembler]] = {
    keys.HOME: HomeFeedAssembler,
    keys.FOLLOWING: FollowingFeedAssembler,
    keys.TRENDING: TrendingFeedAssembler,
    keys.COMMUNITY: CommunityFeedAssembler,
}


class FeedService:
    def __init__(
        self,
        cache: FeedCache,
        store: ContentStore,
        social_graph: SocialGraph,
        response_builder: ResponseBuilder,
        config: Optional[FeedConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.cache = cache
        self.config = config or FeedConfig()
        self.invalidator = CacheInvalidator(cache, social_graph)
        self.assemblers: dict[str, FeedAssembler] = {
            feed_type: cls(cache, store, social_graph, response_builder, self.config, clock)
            for feed_type, cls in ASSEMBLERS.items()
        }

    async def home(
        self, viewer_id: Optional[str] = None, page: Optional[int] = None, limit: Optional[int] = None
    ) -> FeedResponse:
        return await self.assemblers[keys.HOME].assemble(
            FeedRequest(viewer_id=viewer_id, page=page, limit=limit)
        )

    async def following(
        self, viewer_id: Optional[str] = None, page: Optional[int] = None, limit: Optional[int] = None
    ) -> FeedResponse:
        return await self.assemblers[keys.FOLLOWING].assemble(
            FeedRequest(viewer_id=viewer_id, page=page, limit=limit)
        )

    async def trending(
        self, viewer_id: Optional[str] = None, page: Optional[int] = None, limit: Optional[int] = None
    ) -> FeedResponse:
        return await self.assemblers[keys.TRENDING].assemble(
            FeedRequest(viewer_id=viewer_id, page=page, limit=limit)
        )

    async def community(
        self,
        community_id: Optional[str],
        viewer_id: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> FeedResponse:
        return await self.assemblers[keys.COMMUNITY].assemble(
            FeedRequest(viewer_id=viewer_id, page=page, limit=limit, community_id=community_id)
        )
