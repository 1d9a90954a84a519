"""
Shared feed assembly pipeline.

  RECEIVED → CACHE_CHECK ─┬─ HIT  → RESPOND (cached=true)
                          └─ MISS → CANDIDATE_FETCH → [SCORE_AND_RANK]
                                    → PAGINATE → ENRICH → CACHE_STORE
                                    → RESPOND (cached=false)

Subclasses decide three things: how the request is validated, which
predicate selects candidates, and whether candidates are scored. Scored feeds
fetch a recency-sorted superset and rank it before slicing the page;
unscored feeds let storage do skip/limit directly.

Cache calls never fail a request: read faults are misses, write faults are
skipped. Any other failure after the cache check becomes a FeedFetchError.
"""
import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from opentelemetry import trace
from pydantic import ValidationError as SchemaError

from feedrank.cache import keys
from feedrank.cache.store import MISSING, FeedCache
from feedrank.clients.base import ContentStore, ResponseBuilder, SocialGraph
from feedrank.config import FeedConfig
from feedrank.errors import FeedFetchError, ValidationError
from feedrank.predicates import CandidatePredicate, Sort
from feedrank.schemas import (
    ContentItem,
    FeedPage,
    FeedResponse,
    Pagination,
    PostView,
    ViewerContext,
)
from feedrank.scoring import rank_items
from feedrank.telemetry import (
    CACHE_FAULTS_TOTAL,
    FEED_CANDIDATES_TOTAL,
    FEED_LATENCY,
    FEED_REQUESTS_TOTAL,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Ids end up inside cache keys and invalidation patterns.
ID_PATTERN = re.compile(r"[^\s:*]{1,64}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_id(value: Optional[str], field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not ID_PATTERN.fullmatch(value):
        raise ValidationError(f"Invalid {field}")
    return value


@dataclass(frozen=True)
class FeedRequest:
    viewer_id: Optional[str] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    community_id: Optional[str] = None


@dataclass(frozen=True)
class PageWindow:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def resolve_page_window(page: Optional[int], limit: Optional[int], config: FeedConfig) -> PageWindow:
    """page >= 1 (default 1); limit defaults to 20 and is capped at max_limit."""
    page = page if page and page >= 1 else config.default_page
    limit = limit if limit and limit >= 1 else config.default_limit
    return PageWindow(page=page, limit=min(limit, config.max_limit))


class FeedAssembler(ABC):
    feed_type: str = ""

    def __init__(
        self,
        cache: FeedCache,
        store: ContentStore,
        social_graph: SocialGraph,
        response_builder: ResponseBuilder,
        config: FeedConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.cache = cache
        self.store = store
        self.social_graph = social_graph
        self.response_builder = response_builder
        self.config = config
        self.clock = clock

    # ── Hooks for subclasses ──────────────────────────────────────────────

    @property
    @abstractmethod
    def ttl(self) -> int:
        ...

    def validate(self, request: FeedRequest) -> None:
        validate_id(request.viewer_id, "viewer id")
        # the anonymous scope must never be shared with a real viewer
        if request.viewer_id == keys.PUBLIC_SCOPE:
            raise ValidationError("Invalid viewer id")

    def cache_key(self, request: FeedRequest, window: PageWindow) -> str:
        return keys.feed_key(self.feed_type, keys.scope_for(request.viewer_id), window.page)

    async def resolve_viewer(self, request: FeedRequest) -> ViewerContext:
        return ViewerContext(viewer_id=request.viewer_id)

    @abstractmethod
    def build_predicate(
        self, request: FeedRequest, viewer: ViewerContext, now: datetime
    ) -> Optional[CandidatePredicate]:
        """Return the candidate predicate, or None when the page is empty by definition."""

    def is_scored(self, viewer: ViewerContext) -> bool:
        return False

    def scoring_viewer(self, viewer: ViewerContext) -> Optional[ViewerContext]:
        return viewer

    # ── Pipeline ──────────────────────────────────────────────────────────

    async def assemble(
        self, request: FeedRequest, viewer: Optional[ViewerContext] = None
    ) -> FeedResponse:
        started = time.perf_counter()
        self.validate(request)
        window = resolve_page_window(request.page, request.limit, self.config)
        key = self.cache_key(request, window)

        with tracer.start_as_current_span(f"{self.feed_type}_feed") as span:
            span.set_attribute("feed.cache_key", key)

            with tracer.start_as_current_span("cache_check"):
                cached_page = await self._cache_get(key)
            if cached_page is not None:
                logger.debug("Cache hit %s", key)
                return self._respond(request, cached_page, cached=True, started=started)

            try:
                page, cacheable = await self._build_page(request, window, viewer)
            except FeedFetchError:
                raise
            except Exception as exc:
                logger.error("%s feed assembly failed: %s", self.feed_type, exc)
                raise FeedFetchError(self.feed_type) from exc

            if cacheable:
                with tracer.start_as_current_span("cache_store"):
                    await self._cache_set(key, page)

            span.set_attribute("feed.items", len(page.items))
            logger.info(
                "Assembled %s feed page %d (%d items, total=%d)",
                self.feed_type, window.page, len(page.items), page.pagination.total,
            )
            return self._respond(request, page, cached=False, started=started)

    async def _build_page(
        self,
        request: FeedRequest,
        window: PageWindow,
        viewer: Optional[ViewerContext],
    ) -> tuple[FeedPage, bool]:
        now = self.clock()
        if viewer is None:
            viewer = await self.resolve_viewer(request)

        predicate = self.build_predicate(request, viewer, now)
        if predicate is None:
            return self._empty_page(window), False

        with tracer.start_as_current_span("candidate_fetch"):
            if self.is_scored(viewer):
                items, total = await self._ranked_slice(predicate, viewer, window, now)
            else:
                items, total = await self._chronological_slice(predicate, window)

        with tracer.start_as_current_span("enrich"):
            views = await self._enrich(items, request.viewer_id)

        return FeedPage(items=views, pagination=Pagination.build(window.page, window.limit, total)), True

    async def _chronological_slice(
        self, predicate: CandidatePredicate, window: PageWindow
    ) -> tuple[list[ContentItem], int]:
        items, total = await asyncio.gather(
            self.store.find_candidates(
                predicate, Sort.NEWEST_FIRST, limit=window.limit, skip=window.skip
            ),
            self.store.count_candidates(predicate),
        )
        FEED_CANDIDATES_TOTAL.labels(feed_type=self.feed_type).inc(len(items))
        return items, total

    def candidate_pool_size(self, window: PageWindow) -> int:
        """
        Superset to rank: ``candidate_multiplier`` pages of the newest
        candidates. The pool does not depend on the page, so consecutive
        pages are slices of one ranking; pages past the pool come back short.
        """
        pool = window.limit * self.config.candidate_multiplier
        return min(pool, self.config.max_candidate_pool)

    async def _ranked_slice(
        self,
        predicate: CandidatePredicate,
        viewer: ViewerContext,
        window: PageWindow,
        now: datetime,
    ) -> tuple[list[ContentItem], int]:
        candidates, total = await asyncio.gather(
            self.store.find_candidates(
                predicate, Sort.NEWEST_FIRST, limit=self.candidate_pool_size(window), skip=0
            ),
            self.store.count_candidates(predicate),
        )
        FEED_CANDIDATES_TOTAL.labels(feed_type=self.feed_type).inc(len(candidates))

        with tracer.start_as_current_span("score_and_rank") as span:
            span.set_attribute("rank.candidates", len(candidates))
            ranked = rank_items(candidates, self.scoring_viewer(viewer), self.feed_type, now)
        return ranked[window.skip:window.skip + window.limit], total

    async def _enrich(self, items: list[ContentItem], viewer_id: Optional[str]) -> list[PostView]:
        return list(
            await asyncio.gather(
                *(self.response_builder.build_viewer_response(item, viewer_id) for item in items)
            )
        )

    def _empty_page(self, window: PageWindow) -> FeedPage:
        return FeedPage(items=[], pagination=Pagination.build(window.page, window.limit, 0))

    # ── Cache access (never raises) ───────────────────────────────────────

    async def _cache_get(self, key: str) -> Optional[FeedPage]:
        try:
            value = await self.cache.get(key)
        except Exception as exc:
            CACHE_FAULTS_TOTAL.labels(operation="get").inc()
            logger.warning("Cache read error for %s: %s (treating as miss)", key, exc)
            return None
        if value is MISSING:
            return None
        try:
            return FeedPage.model_validate(value)
        except SchemaError as exc:
            CACHE_FAULTS_TOTAL.labels(operation="decode").inc()
            logger.warning("Discarding malformed cache entry %s: %s", key, exc)
            return None

    async def _cache_set(self, key: str, page: FeedPage) -> None:
        try:
            await self.cache.set(key, page.model_dump(mode="json", by_alias=True), self.ttl)
        except Exception as exc:
            CACHE_FAULTS_TOTAL.labels(operation="set").inc()
            logger.warning("Cache write error for %s: %s (continuing without cache)", key, exc)

    def _respond(
        self, request: FeedRequest, page: FeedPage, cached: bool, started: float
    ) -> FeedResponse:
        FEED_REQUESTS_TOTAL.labels(feed_type=self.feed_type, cached=str(cached).lower()).inc()
        FEED_LATENCY.labels(feed_type=self.feed_type).observe(time.perf_counter() - started)
        return FeedResponse(
            cached=cached,
            feed_type=self.feed_type,
            community_id=request.community_id if self.feed_type == keys.COMMUNITY else None,
            items=page.items,
            pagination=page.pagination,
        )
