from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from feedrank.cache.store import FeedCache, InMemoryFeedCache
from feedrank.clients.viewer_response import base_view
from feedrank.config import FeedConfig
from feedrank.errors import CacheFault, UpstreamQueryError
from feedrank.feeds.service import FeedService
from feedrank.predicates import Sort
from feedrank.schemas import ContentItem, EngagementCounts, ViewerContext

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def make_item(
    item_id: str,
    author="author-1",
    community=None,
    hours_old: float = 1.0,
    likes: int = 0,
    comments: int = 0,
    reposts: int = 0,
) -> ContentItem:
    return ContentItem(
        id=item_id,
        author=author,
        community=community,
        content=f"post {item_id}",
        created_at=NOW - timedelta(hours=hours_old),
        engagement=EngagementCounts(likes=likes, comments=comments, reposts=reposts),
    )


class FakeClock:
    """Monotonic seconds, advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeContentStore:
    def __init__(self, items=()):
        self.items = list(items)
        self.find_calls = []
        self.count_calls = []
        self.fail = False

    def _matching(self, predicate):
        # stable sort keeps insertion order among equal timestamps
        return sorted(
            (i for i in self.items if predicate.matches(i)),
            key=lambda i: i.created_at,
            reverse=True,
        )

    async def find_candidates(self, predicate, sort=Sort.NEWEST_FIRST, limit=20, skip=0):
        self.find_calls.append({"predicate": predicate, "limit": limit, "skip": skip})
        if self.fail:
            raise UpstreamQueryError("candidate query failed: connection reset")
        return self._matching(predicate)[skip:skip + limit]

    async def count_candidates(self, predicate):
        self.count_calls.append(predicate)
        if self.fail:
            raise UpstreamQueryError("candidate count failed: connection reset")
        return len(self._matching(predicate))

    @property
    def queried(self) -> bool:
        return bool(self.find_calls or self.count_calls)


class FakeSocialGraph:
    def __init__(self, following=None, communities=None):
        self.following = {k: set(v) for k, v in (following or {}).items()}
        self.communities = {k: set(v) for k, v in (communities or {}).items()}
        self.context_calls = []

    async def get_social_context(self, viewer_id: str) -> ViewerContext:
        self.context_calls.append(viewer_id)
        return ViewerContext(
            viewer_id=viewer_id,
            followed_author_ids=frozenset(self.following.get(viewer_id, ())),
            joined_community_ids=frozenset(self.communities.get(viewer_id, ())),
        )

    async def get_follower_ids(self, user_id: str) -> list[str]:
        return sorted(f for f, followed in self.following.items() if user_id in followed)


class FakeResponseBuilder:
    def __init__(self, liked=None):
        self.liked = {k: set(v) for k, v in (liked or {}).items()}

    async def build_viewer_response(self, item: ContentItem, viewer_id: Optional[str]):
        is_liked = viewer_id is not None and item.id in self.liked.get(viewer_id, set())
        return base_view(item, is_liked=is_liked)


class BrokenCache(FeedCache):
    """Every operation fails as if the backing store were unreachable."""

    backend = "broken"

    async def get(self, key):
        raise CacheFault("connection refused")

    async def set(self, key, value, ttl_seconds):
        raise CacheFault("connection refused")

    async def delete(self, key):
        raise CacheFault("connection refused")

    async def delete_pattern(self, pattern):
        raise CacheFault("connection refused")

    async def clear_all(self):
        raise CacheFault("connection refused")

    async def stats(self):
        raise CacheFault("connection refused")


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(clock):
    return InMemoryFeedCache(clock=clock)


@pytest.fixture()
def store():
    return FakeContentStore()


@pytest.fixture()
def graph():
    return FakeSocialGraph()


@pytest.fixture()
def builder():
    return FakeResponseBuilder()


@pytest.fixture()
def service(cache, store, graph, builder):
    return FeedService(cache, store, graph, builder, config=FeedConfig(), clock=lambda: NOW)
