"""
Per-viewer post enrichment: like/save flags plus author/community summaries.

Anonymous viewers get false flags without a query. Each call uses its own
session so a page's items can be enriched concurrently.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedrank.errors import UpstreamQueryError
from feedrank.models import Like, Save
from feedrank.schemas import ContentItem, EntityRef, PostView


def base_view(item: ContentItem, is_liked: bool = False, is_saved: bool = False) -> PostView:
    """The viewer-independent part of a post view."""
    author = item.author if isinstance(item.author, EntityRef) else EntityRef(id=item.author_id)
    community = None
    if item.community is not None:
        community = (
            item.community
            if isinstance(item.community, EntityRef)
            else EntityRef(id=item.community_id)
        )
    return PostView(
        id=item.id,
        author=author,
        community=community,
        content=item.content,
        created_at=item.created_at,
        likes_count=item.engagement.likes,
        comments_count=item.engagement.comments,
        reposts_count=item.engagement.reposts,
        is_liked=is_liked,
        is_saved=is_saved,
    )


class SqlResponseBuilder:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def build_viewer_response(
        self, item: ContentItem, viewer_id: Optional[str]
    ) -> PostView:
        if viewer_id is None:
            return base_view(item)

        liked_q = select(Like.post_id).where(Like.user_id == viewer_id, Like.post_id == item.id)
        saved_q = select(Save.post_id).where(Save.user_id == viewer_id, Save.post_id == item.id)
        try:
            async with self._sessions() as session:
                is_liked = (await session.execute(liked_q)).first() is not None
                is_saved = (await session.execute(saved_q)).first() is not None
        except SQLAlchemyError as exc:
            raise UpstreamQueryError(f"viewer enrichment failed for {item.id}: {exc}") from exc
        return base_view(item, is_liked=is_liked, is_saved=is_saved)
