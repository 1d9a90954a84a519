"""
Typed candidate predicates, one per candidate-selection rule.

These are the fixed contract between the feed assemblers and the content
store: the store translates each predicate into its own query language, and
``matches`` gives the same rule as a plain Python check.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Union

from feedrank.schemas import ContentItem


class Sort(str, Enum):
    NEWEST_FIRST = "newest_first"


@dataclass(frozen=True)
class RecentPredicate:
    """Every post created at or after ``since``."""
    since: datetime

    def matches(self, item: ContentItem) -> bool:
        return item.created_at >= self.since


@dataclass(frozen=True)
class SocialPredicate:
    """Posts by followed authors OR in joined communities, since ``since``."""
    author_ids: frozenset[str]
    community_ids: frozenset[str]
    since: datetime

    def matches(self, item: ContentItem) -> bool:
        if item.created_at < self.since:
            return False
        return item.author_id in self.author_ids or (
            item.community_id is not None and item.community_id in self.community_ids
        )


class HomePredicate(SocialPredicate):
    pass


class FollowingPredicate(SocialPredicate):
    pass


class TrendingPredicate(RecentPredicate):
    pass


@dataclass(frozen=True)
class CommunityPredicate:
    community_id: str

    def matches(self, item: ContentItem) -> bool:
        return item.community_id == self.community_id


CandidatePredicate = Union[RecentPredicate, SocialPredicate, CommunityPredicate]
