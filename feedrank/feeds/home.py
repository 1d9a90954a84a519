"""
Home feed: personalized and scored.

Authenticated viewers get posts from followed authors or joined communities
within the home window, ranked with the home weights (engagement, recency,
source). A viewer with an empty social graph gets an empty page without any
candidate query. Anonymous viewers get the same window reverse-chronologically.
"""
from datetime import datetime, timedelta
from typing import Optional

from feedrank.cache import keys
from feedrank.feeds.base import FeedAssembler, FeedRequest
from feedrank.predicates import CandidatePredicate, HomePredicate, RecentPredicate
from feedrank.schemas import ViewerContext


class HomeFeedAssembler(FeedAssembler):
    feed_type = keys.HOME

    @property
    def ttl(self) -> int:
        return self.config.ttl_home

    async def resolve_viewer(self, request: FeedRequest) -> ViewerContext:
        if request.viewer_id is None:
            return ViewerContext()
        return await self.social_graph.get_social_context(request.viewer_id)

    def build_predicate(
        self, request: FeedRequest, viewer: ViewerContext, now: datetime
    ) -> Optional[CandidatePredicate]:
        since = now - timedelta(days=self.config.home_feed_days)
        if not viewer.is_authenticated:
            return RecentPredicate(since=since)
        if not viewer.has_social_graph:
            return None
        return HomePredicate(
            author_ids=viewer.followed_author_ids,
            community_ids=viewer.joined_community_ids,
            since=since,
        )

    def is_scored(self, viewer: ViewerContext) -> bool:
        return viewer.is_authenticated
