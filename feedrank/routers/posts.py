"""
Post mutation endpoints (write side of the feed system):
  POST   /posts                — create a post
  PATCH  /posts/{id}           — edit a post's content
  DELETE /posts/{id}           — delete a post
  POST   /posts/{id}/like      — like a post (idempotent)
  POST   /posts/{id}/unlike    — remove a like (idempotent)

Each mutation schedules its cache invalidation hook as a background task;
the hook runs after the response and never fails the request.
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from opentelemetry import trace
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.cache.invalidation import CacheInvalidator
from feedrank.database import get_db
from feedrank.models import Community, Like, Post, Save, User
from feedrank.schemas import LikeRequest, PostCreate, PostResponse, PostUpdate

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def get_invalidator(request: Request) -> CacheInvalidator:
    return request.app.state.feed_service.invalidator


def _build_post_response(post: Post) -> PostResponse:
    return PostResponse(
        id=post.post_id,
        author_id=post.author_id,
        community_id=post.community_id,
        content=post.content,
        likes_count=post.likes_count,
        comments_count=post.comments_count,
        reposts_count=post.reposts_count,
        created_at=post.created_at,
    )


async def _get_post(db: AsyncSession, post_id: str) -> Post:
    post = await db.get(Post, post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


@router.post("/", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    body: PostCreate,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    with tracer.start_as_current_span("create_post") as span:
        if not await db.get(User, body.author_id):
            raise HTTPException(status_code=404, detail="Author not found")
        if body.community_id and not await db.get(Community, body.community_id):
            raise HTTPException(status_code=404, detail="Community not found")

        post = Post(
            author_id=body.author_id,
            community_id=body.community_id,
            content=body.content,
            created_at=datetime.now(timezone.utc),
        )
        db.add(post)
        await db.flush()

        span.set_attribute("post.id", post.post_id)
        background.add_task(invalidator.on_post_created, post.author_id, post.community_id)
        logger.info("Post created: %s by user %s", post.post_id, post.author_id)
        return _build_post_response(post)


@router.patch("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: str,
    body: PostUpdate,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    with tracer.start_as_current_span("update_post"):
        post = await _get_post(db, post_id)
        post.content = body.content
        post.updated_at = datetime.now(timezone.utc)
        await db.flush()

        background.add_task(invalidator.on_post_updated, post.author_id, post.community_id)
        return _build_post_response(post)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: str,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    with tracer.start_as_current_span("delete_post"):
        post = await _get_post(db, post_id)
        author_id, community_id = post.author_id, post.community_id

        await db.execute(delete(Like).where(Like.post_id == post_id))
        await db.execute(delete(Save).where(Save.post_id == post_id))
        await db.delete(post)

        background.add_task(invalidator.on_post_deleted, author_id, community_id)
        logger.info("Post deleted: %s", post_id)


@router.post("/{post_id}/like", status_code=status.HTTP_204_NO_CONTENT)
async def like_post(
    post_id: str,
    body: LikeRequest,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    """Like a post — idempotent. Cached feeds pick the new count up on TTL expiry."""
    with tracer.start_as_current_span("like_post"):
        post = await _get_post(db, post_id)
        existing = await db.execute(
            select(Like).where(Like.user_id == body.user_id, Like.post_id == post_id)
        )
        if existing.scalar_one_or_none():
            return  # already liked

        db.add(Like(user_id=body.user_id, post_id=post_id))
        post.likes_count += 1
        background.add_task(invalidator.on_post_engagement, post_id, post.author_id)


@router.post("/{post_id}/unlike", status_code=status.HTTP_204_NO_CONTENT)
async def unlike_post(
    post_id: str,
    body: LikeRequest,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    with tracer.start_as_current_span("unlike_post"):
        post = await _get_post(db, post_id)
        result = await db.execute(
            delete(Like).where(Like.user_id == body.user_id, Like.post_id == post_id)
        )
        if result.rowcount:
            post.likes_count = max(post.likes_count - 1, 0)
            background.add_task(invalidator.on_post_engagement, post_id, post.author_id)
