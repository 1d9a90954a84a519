"""
Feed cache key schema.

  feed:{feed_type}:{scope}:page:{page}
  feed:community:{community_id}:{scope}:page:{page}

``scope`` is the viewer id, or ``public`` for anonymous requests. Keys are a
pure function of their components, so the same request always maps to the
same key and invalidation can target a whole scope with a trailing wildcard.
"""
from typing import Optional

KEY_PREFIX = "feed"
PUBLIC_SCOPE = "public"

HOME = "home"
FOLLOWING = "following"
TRENDING = "trending"
COMMUNITY = "community"
FEED_TYPES = (HOME, FOLLOWING, TRENDING, COMMUNITY)


def scope_for(viewer_id: Optional[str]) -> str:
    return viewer_id if viewer_id else PUBLIC_SCOPE


def feed_key(
    feed_type: str,
    scope: str,
    page: int,
    community_id: Optional[str] = None,
) -> str:
    if feed_type == COMMUNITY and community_id:
        return f"{KEY_PREFIX}:{COMMUNITY}:{community_id}:{scope}:page:{page}"
    return f"{KEY_PREFIX}:{feed_type}:{scope}:page:{page}"


def scope_pattern(feed_type: str, scope: str) -> str:
    return f"{KEY_PREFIX}:{feed_type}:{scope}:*"


def community_pattern(community_id: str) -> str:
    return f"{KEY_PREFIX}:{COMMUNITY}:{community_id}:*"


def feed_type_pattern(feed_type: str) -> str:
    return f"{KEY_PREFIX}:{feed_type}:*"
