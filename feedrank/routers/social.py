"""
Social graph endpoints:
  POST /users                        — create a user profile
  POST /users/follow                 — follow another user
  POST /users/unfollow               — unfollow
  POST /communities                  — create a community
  POST /communities/{id}/join        — join a community
  POST /communities/{id}/leave       — leave a community

A graph change only affects the acting user's own home and following feeds.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from opentelemetry import trace
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.cache.invalidation import CacheInvalidator
from feedrank.database import get_db
from feedrank.models import Community, CommunityMember, Follow, User
from feedrank.routers.posts import get_invalidator
from feedrank.schemas import (
    CommunityCreate,
    CommunityResponse,
    FollowRequest,
    MembershipRequest,
    UserCreate,
    UserResponse,
)

logger = logging.getLogger(__name__)
users_router = APIRouter()
communities_router = APIRouter()
tracer = trace.get_tracer(__name__)


@users_router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(body: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a new user. New users have an empty graph, so no cache is touched."""
    with tracer.start_as_current_span("create_user"):
        existing = await db.execute(select(User).where(User.username == body.username))
        if existing.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Username '{body.username}' already taken",
            )

        user = User(username=body.username, display_name=body.display_name)
        db.add(user)
        await db.flush()

        logger.info("Created user %s (id=%s)", user.username, user.user_id)
        return user


@communities_router.post(
    "/", response_model=CommunityResponse, status_code=status.HTTP_201_CREATED
)
async def create_community(body: CommunityCreate, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("create_community"):
        existing = await db.execute(select(Community).where(Community.name == body.name))
        if existing.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Community '{body.name}' already exists",
            )

        community = Community(name=body.name)
        db.add(community)
        await db.flush()
        return community


@users_router.post("/follow", status_code=status.HTTP_204_NO_CONTENT)
async def follow_user(
    body: FollowRequest,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    with tracer.start_as_current_span("follow_user"):
        if body.follower_id == body.followee_id:
            raise HTTPException(status_code=400, detail="Cannot follow yourself")

        for uid in (body.follower_id, body.followee_id):
            if not await db.get(User, uid):
                raise HTTPException(status_code=404, detail=f"User {uid} not found")

        existing = await db.execute(
            select(Follow).where(
                Follow.follower_id == body.follower_id,
                Follow.followee_id == body.followee_id,
            )
        )
        if existing.scalar_one_or_none():
            return  # already following

        db.add(Follow(follower_id=body.follower_id, followee_id=body.followee_id))
        background.add_task(invalidator.on_connection_changed, body.follower_id)
        logger.info("%s followed %s", body.follower_id, body.followee_id)


@users_router.post("/unfollow", status_code=status.HTTP_204_NO_CONTENT)
async def unfollow_user(
    body: FollowRequest,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    with tracer.start_as_current_span("unfollow_user"):
        result = await db.execute(
            delete(Follow).where(
                Follow.follower_id == body.follower_id,
                Follow.followee_id == body.followee_id,
            )
        )
        if result.rowcount:
            background.add_task(invalidator.on_connection_changed, body.follower_id)


@communities_router.post("/{community_id}/join", status_code=status.HTTP_204_NO_CONTENT)
async def join_community(
    community_id: str,
    body: MembershipRequest,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    with tracer.start_as_current_span("join_community"):
        if not await db.get(Community, community_id):
            raise HTTPException(status_code=404, detail="Community not found")
        if not await db.get(User, body.user_id):
            raise HTTPException(status_code=404, detail="User not found")
        if await db.get(CommunityMember, (body.user_id, community_id)):
            return

        db.add(CommunityMember(user_id=body.user_id, community_id=community_id))
        background.add_task(invalidator.on_membership_changed, body.user_id)
        logger.info("%s joined community %s", body.user_id, community_id)


@communities_router.post("/{community_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_community(
    community_id: str,
    body: MembershipRequest,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    with tracer.start_as_current_span("leave_community"):
        result = await db.execute(
            delete(CommunityMember).where(
                CommunityMember.user_id == body.user_id,
                CommunityMember.community_id == community_id,
            )
        )
        if result.rowcount:
            background.add_task(invalidator.on_membership_changed, body.user_id)
