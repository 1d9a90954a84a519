"""
Community feed: one community's posts, reverse-chronological so every
member's post gets the same exposure.
"""
from datetime import datetime
from typing import Optional

from feedrank.cache import keys
from feedrank.errors import ValidationError
from feedrank.feeds.base import FeedAssembler, FeedRequest, PageWindow, validate_id
from feedrank.predicates import CandidatePredicate, CommunityPredicate
from feedrank.schemas import ViewerContext


class CommunityFeedAssembler(FeedAssembler):
    feed_type = keys.COMMUNITY

    @property
    def ttl(self) -> int:
        return self.config.ttl_community

    def validate(self, request: FeedRequest) -> None:
        if not request.community_id or not request.community_id.strip():
            raise ValidationError("Community ID is required")
        validate_id(request.community_id, "community id")
        super().validate(request)

    def cache_key(self, request: FeedRequest, window: PageWindow) -> str:
        return keys.feed_key(
            self.feed_type,
            keys.scope_for(request.viewer_id),
            window.page,
            community_id=request.community_id,
        )

    def build_predicate(
        self, request: FeedRequest, viewer: ViewerContext, now: datetime
    ) -> Optional[CandidatePredicate]:
        return CommunityPredicate(community_id=request.community_id)
