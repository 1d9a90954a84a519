"""
Following feed: posts from followed authors and joined communities, strictly
reverse-chronological. Requires a viewer; anonymous requests are rejected
before the cache or storage is touched.
"""
from datetime import datetime, timedelta
from typing import Optional

from feedrank.cache import keys
from feedrank.errors import AuthenticationRequiredError
from feedrank.feeds.base import FeedAssembler, FeedRequest
from feedrank.predicates import CandidatePredicate, FollowingPredicate
from feedrank.schemas import ViewerContext


class FollowingFeedAssembler(FeedAssembler):
    feed_type = keys.FOLLOWING

    @property
    def ttl(self) -> int:
        return self.config.ttl_following

    def validate(self, request: FeedRequest) -> None:
        if not request.viewer_id:
            raise AuthenticationRequiredError()
        super().validate(request)

    async def resolve_viewer(self, request: FeedRequest) -> ViewerContext:
        return await self.social_graph.get_social_context(request.viewer_id)

    def build_predicate(
        self, request: FeedRequest, viewer: ViewerContext, now: datetime
    ) -> Optional[CandidatePredicate]:
        if not viewer.has_social_graph:
            return None
        return FollowingPredicate(
            author_ids=viewer.followed_author_ids,
            community_ids=viewer.joined_community_ids,
            since=now - timedelta(days=self.config.following_feed_days),
        )
