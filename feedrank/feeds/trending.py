"""
Trending feed: every post in the trending window, ranked globally by
engagement and recency. The ranking ignores the viewer; the cache key still
carries the viewer scope because enriched items hold per-viewer flags.
"""
from datetime import datetime, timedelta
from typing import Optional

from feedrank.cache import keys
from feedrank.feeds.base import FeedAssembler, FeedRequest
from feedrank.predicates import CandidatePredicate, TrendingPredicate
from feedrank.schemas import ViewerContext


class TrendingFeedAssembler(FeedAssembler):
    feed_type = keys.TRENDING

    @property
    def ttl(self) -> int:
        return self.config.ttl_trending

    def build_predicate(
        self, request: FeedRequest, viewer: ViewerContext, now: datetime
    ) -> Optional[CandidatePredicate]:
        return TrendingPredicate(since=now - timedelta(days=self.config.trending_feed_days))

    def is_scored(self, viewer: ViewerContext) -> bool:
        return True

    def scoring_viewer(self, viewer: ViewerContext) -> Optional[ViewerContext]:
        return None
