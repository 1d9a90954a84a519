"""
Pydantic schemas shared by the feed core and the API layer.
Kept separate from ORM models to avoid coupling transport to storage.

Wire shapes are camelCase (``feedType``, ``totalPages``); Python code uses
snake_case attribute names throughout.
"""
import math
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ──────────────────────────── References ──────────────────────────────────

class EntityRef(BaseModel):
    """A populated author/community reference (id plus display name)."""
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: Optional[str] = None


def ref_id(ref: Any) -> Optional[str]:
    """
    Extract an identifier from a reference that is either a bare id or a
    populated object exposing ``id`` / ``_id`` (attribute or mapping key).
    """
    if ref is None:
        return None
    if isinstance(ref, (str, int)):
        return str(ref)
    if isinstance(ref, dict):
        value = ref.get("id", ref.get("_id"))
    else:
        value = getattr(ref, "id", None)
        if value is None:
            value = getattr(ref, "_id", None)
    return str(value) if value is not None else None


# ──────────────────────────── Content ─────────────────────────────────────

class EngagementCounts(BaseModel):
    likes: int = 0
    comments: int = 0
    reposts: int = 0

    @field_validator("likes", "comments", "reposts", mode="before")
    @classmethod
    def _missing_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class ContentItem(BaseModel):
    """
    A rankable post as seen by the feed core. Read-only snapshot: the
    content-management side owns and mutates the underlying record.
    """
    id: str
    author: Union[str, EntityRef]
    community: Optional[Union[str, EntityRef]] = None
    content: Optional[str] = None
    created_at: datetime
    engagement: EngagementCounts = Field(default_factory=EngagementCounts)

    class Config:
        frozen = True

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        # SQLite and some MySQL drivers hand back naive datetimes
        return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v

    @property
    def author_id(self) -> Optional[str]:
        return ref_id(self.author)

    @property
    def community_id(self) -> Optional[str]:
        return ref_id(self.community)


class ViewerContext(BaseModel):
    """Who is asking, and their social graph. Built per request, never mutated."""
    viewer_id: Optional[str] = None
    followed_author_ids: frozenset[str] = frozenset()
    joined_community_ids: frozenset[str] = frozenset()

    class Config:
        frozen = True

    @property
    def is_authenticated(self) -> bool:
        return self.viewer_id is not None

    @property
    def has_social_graph(self) -> bool:
        return bool(self.followed_author_ids or self.joined_community_ids)


# ──────────────────────────── Feed pages ──────────────────────────────────

class PostView(CamelModel):
    """A post enriched for a specific viewer, as returned in feeds."""
    id: str
    author: EntityRef
    community: Optional[EntityRef] = None
    content: Optional[str] = None
    created_at: datetime
    likes_count: int = 0
    comments_count: int = 0
    reposts_count: int = 0
    is_liked: bool = False
    is_saved: bool = False


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool = False
    has_prev_page: bool = False

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )


class FeedPage(CamelModel):
    """The cacheable unit: replaced wholesale on refresh, never patched."""
    items: list[PostView]
    pagination: Pagination


class FeedResponse(CamelModel):
    success: bool = True
    cached: bool
    feed_type: str
    community_id: Optional[str] = None
    items: list[PostView]
    pagination: Pagination


class CacheStatsResponse(BaseModel):
    backend: str
    hits: int
    misses: int
    keys: int


# ──────────────────────────── Mutations ───────────────────────────────────

class PostCreate(CamelModel):
    author_id: str
    content: str = Field(..., min_length=1, max_length=5000)
    community_id: Optional[str] = None


class PostUpdate(CamelModel):
    content: str = Field(..., min_length=1, max_length=5000)


class PostResponse(CamelModel):
    id: str
    author_id: str
    community_id: Optional[str]
    content: Optional[str]
    likes_count: int
    comments_count: int
    reposts_count: int
    created_at: datetime


class LikeRequest(CamelModel):
    user_id: str


class FollowRequest(CamelModel):
    follower_id: str
    followee_id: str


class MembershipRequest(CamelModel):
    user_id: str


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    display_name: Optional[str] = None


class UserResponse(CamelModel):
    user_id: str
    username: str
    display_name: Optional[str]

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class CommunityCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)


class CommunityResponse(CamelModel):
    community_id: str
    name: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
