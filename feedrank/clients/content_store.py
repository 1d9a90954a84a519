"""
SQL content store: translates candidate predicates into SELECTs over posts.

Every call opens its own session, so the count and the candidate fetch of a
single feed request can run concurrently. Driver errors are re-raised as
UpstreamQueryError.
"""
import logging

from sqlalchemy import and_, desc, false, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.expression import ColumnElement
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedrank.errors import UpstreamQueryError
from feedrank.models import Post
from feedrank.predicates import (
    CandidatePredicate,
    CommunityPredicate,
    RecentPredicate,
    SocialPredicate,
    Sort,
)
from feedrank.schemas import ContentItem, EngagementCounts, EntityRef

logger = logging.getLogger(__name__)


def where_clause(predicate: CandidatePredicate) -> ColumnElement[bool]:
    if isinstance(predicate, CommunityPredicate):
        return Post.community_id == predicate.community_id
    if isinstance(predicate, SocialPredicate):
        sources = []
        if predicate.author_ids:
            sources.append(Post.author_id.in_(sorted(predicate.author_ids)))
        if predicate.community_ids:
            sources.append(Post.community_id.in_(sorted(predicate.community_ids)))
        source_clause = or_(*sources) if sources else false()
        return and_(source_clause, Post.created_at >= predicate.since)
    if isinstance(predicate, RecentPredicate):
        return Post.created_at >= predicate.since
    raise TypeError(f"Unsupported predicate: {type(predicate).__name__}")


def to_content_item(post: Post) -> ContentItem:
    author = (
        EntityRef(id=post.author_id, name=post.author.username)
        if post.author is not None
        else post.author_id
    )
    community = None
    if post.community_id:
        community = (
            EntityRef(id=post.community_id, name=post.community.name)
            if post.community is not None
            else post.community_id
        )
    return ContentItem(
        id=post.post_id,
        author=author,
        community=community,
        content=post.content,
        created_at=post.created_at,
        engagement=EngagementCounts(
            likes=post.likes_count,
            comments=post.comments_count,
            reposts=post.reposts_count,
        ),
    )


class SqlContentStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def find_candidates(
        self,
        predicate: CandidatePredicate,
        sort: Sort = Sort.NEWEST_FIRST,
        limit: int = 20,
        skip: int = 0,
    ) -> list[ContentItem]:
        query = select(Post).where(where_clause(predicate))
        if sort is Sort.NEWEST_FIRST:
            query = query.order_by(desc(Post.created_at), desc(Post.post_id))
        query = query.offset(skip).limit(limit)
        try:
            async with self._sessions() as session:
                rows = await session.execute(query)
                posts = rows.unique().scalars().all()
        except SQLAlchemyError as exc:
            raise UpstreamQueryError(f"candidate query failed: {exc}") from exc
        logger.debug(
            "%s matched %d posts (skip=%d, limit=%d)",
            type(predicate).__name__, len(posts), skip, limit,
        )
        return [to_content_item(p) for p in posts]

    async def count_candidates(self, predicate: CandidatePredicate) -> int:
        query = select(func.count()).select_from(Post).where(where_clause(predicate))
        try:
            async with self._sessions() as session:
                return int((await session.execute(query)).scalar_one())
        except SQLAlchemyError as exc:
            raise UpstreamQueryError(f"candidate count failed: {exc}") from exc
