"""
Feed retrieval endpoints:
  GET /feed/home                      — personalized, scored (anonymous: chronological)
  GET /feed/following                 — followed authors + joined communities, chronological
  GET /feed/trending                  — global, scored
  GET /communities/{id}/feed          — one community, chronological
  GET /feed/cache/stats               — feed cache hit/miss counters

Authentication is handled upstream; the caller identity arrives as the
optional ``viewer_id`` query parameter.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from feedrank.feeds.service import FeedService
from feedrank.schemas import CacheStatsResponse, FeedResponse

logger = logging.getLogger(__name__)
router = APIRouter()
communities_router = APIRouter()


def get_feed_service(request: Request) -> FeedService:
    return request.app.state.feed_service


@router.get("/home", response_model=FeedResponse)
async def home_feed(
    viewer_id: Optional[str] = Query(None, description="ID of the requesting user"),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    service: FeedService = Depends(get_feed_service),
):
    return await service.home(viewer_id=viewer_id, page=page, limit=limit)


@router.get("/following", response_model=FeedResponse)
async def following_feed(
    viewer_id: Optional[str] = Query(None, description="ID of the requesting user"),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    service: FeedService = Depends(get_feed_service),
):
    return await service.following(viewer_id=viewer_id, page=page, limit=limit)


@router.get("/trending", response_model=FeedResponse)
async def trending_feed(
    viewer_id: Optional[str] = Query(None, description="ID of the requesting user"),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    service: FeedService = Depends(get_feed_service),
):
    return await service.trending(viewer_id=viewer_id, page=page, limit=limit)


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(service: FeedService = Depends(get_feed_service)):
    stats = await service.cache.stats()
    return CacheStatsResponse(
        backend=service.cache.backend, hits=stats.hits, misses=stats.misses, keys=stats.keys
    )


@communities_router.get("/{community_id}/feed", response_model=FeedResponse)
async def community_feed(
    community_id: str,
    viewer_id: Optional[str] = Query(None, description="ID of the requesting user"),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    service: FeedService = Depends(get_feed_service),
):
    return await service.community(community_id, viewer_id=viewer_id, page=page, limit=limit)
