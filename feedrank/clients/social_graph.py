"""
Social graph lookups backed by the follows / community_members tables.
"""
import asyncio

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedrank.errors import UpstreamQueryError
from feedrank.models import CommunityMember, Follow
from feedrank.schemas import ViewerContext


class SqlSocialGraph:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def _column(self, query) -> list[str]:  # noqa: ANN001
        try:
            async with self._sessions() as session:
                rows = await session.execute(query)
                return [r[0] for r in rows.all()]
        except SQLAlchemyError as exc:
            raise UpstreamQueryError(f"social graph lookup failed: {exc}") from exc

    async def get_social_context(self, viewer_id: str) -> ViewerContext:
        followed, joined = await asyncio.gather(
            self._column(select(Follow.followee_id).where(Follow.follower_id == viewer_id)),
            self._column(
                select(CommunityMember.community_id).where(CommunityMember.user_id == viewer_id)
            ),
        )
        return ViewerContext(
            viewer_id=viewer_id,
            followed_author_ids=frozenset(followed),
            joined_community_ids=frozenset(joined),
        )

    async def get_follower_ids(self, user_id: str) -> list[str]:
        return await self._column(select(Follow.follower_id).where(Follow.followee_id == user_id))
