"""
Collaborator interfaces the feed core depends on.

  ContentStore     — candidate queries over typed predicates
  SocialGraph      — who a viewer follows / which communities they joined
  ResponseBuilder  — per-viewer enrichment of a post into its wire shape

The SQL implementations live next to this module; tests substitute fakes.
"""
from typing import Optional, Protocol

from feedrank.predicates import CandidatePredicate, Sort
from feedrank.schemas import ContentItem, PostView, ViewerContext


class ContentStore(Protocol):
    async def find_candidates(
        self,
        predicate: CandidatePredicate,
        sort: Sort = Sort.NEWEST_FIRST,
        limit: int = 20,
        skip: int = 0,
    ) -> list[ContentItem]:
        ...

    async def count_candidates(self, predicate: CandidatePredicate) -> int:
        ...


class SocialGraph(Protocol):
    async def get_social_context(self, viewer_id: str) -> ViewerContext:
        ...

    async def get_follower_ids(self, user_id: str) -> list[str]:
        ...


class ResponseBuilder(Protocol):
    async def build_viewer_response(
        self, item: ContentItem, viewer_id: Optional[str]
    ) -> PostView:
        ...
