"""
Feed scoring: engagement, recency and social-proximity sub-scores combined
per feed type.

Sub-scores (all on a 0-100 scale):
  engagement  = min(100, 25 * log10(likes + 3*comments + 2*reposts + 1))
                log-compressed so a handful of viral posts cannot dominate
  recency     = coarse step function of age in hours (see RECENCY_STEPS)
  source      = 100 followed author + joined community
                 80 followed author only
                 60 joined community only
                  0 otherwise (or anonymous viewer)

Combined score weights per feed type:

  feed type   engagement  recency  source
  ─────────   ──────────  ───────  ──────
  trending       0.6        0.4      -
  home           0.5        0.3     0.2

Everything here is pure: inputs are read-only snapshots and ``now`` is passed
in explicitly.
"""
import math
from datetime import datetime, timezone
from typing import Optional, Sequence

from feedrank.schemas import ContentItem, ViewerContext

ENGAGEMENT_WEIGHTS = {"likes": 1, "comments": 3, "reposts": 2}
ENGAGEMENT_SCALE = 25
MAX_SCORE = 100.0

# (upper bound in hours, score); lower bound is closed, upper bound open
RECENCY_STEPS: tuple[tuple[float, int], ...] = (
    (1, 100),
    (6, 90),
    (24, 70),
    (48, 50),
    (72, 30),
    (168, 10),
)

SOURCE_BOTH = 100
SOURCE_AUTHOR = 80
SOURCE_COMMUNITY = 60

FEED_WEIGHTS = {
    "trending": {"engagement": 0.6, "recency": 0.4, "source": 0.0},
    "home": {"engagement": 0.5, "recency": 0.3, "source": 0.2},
}
PERSONALIZED_WEIGHTS = FEED_WEIGHTS["home"]


def engagement_total(item: ContentItem) -> int:
    counts = item.engagement
    return (
        (counts.likes or 0) * ENGAGEMENT_WEIGHTS["likes"]
        + (counts.comments or 0) * ENGAGEMENT_WEIGHTS["comments"]
        + (counts.reposts or 0) * ENGAGEMENT_WEIGHTS["reposts"]
    )


def engagement_score(item: ContentItem) -> float:
    total = max(engagement_total(item), 0)
    score = min(math.log10(total + 1) * ENGAGEMENT_SCALE, MAX_SCORE)
    return round(score, 2)


def age_in_hours(item: ContentItem, now: datetime) -> float:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - item.created_at).total_seconds() / 3600


def recency_score(item: ContentItem, now: datetime) -> int:
    age = age_in_hours(item, now)
    for upper_hours, score in RECENCY_STEPS:
        if age < upper_hours:
            return score
    return 0


def source_score(item: ContentItem, viewer: Optional[ViewerContext]) -> int:
    if viewer is None:
        return 0

    author_id = item.author_id
    community_id = item.community_id
    followed = author_id is not None and author_id in viewer.followed_author_ids
    joined = community_id is not None and community_id in viewer.joined_community_ids

    if followed and joined:
        return SOURCE_BOTH
    if followed:
        return SOURCE_AUTHOR
    if joined:
        return SOURCE_COMMUNITY
    return 0


def combined_score(
    item: ContentItem,
    viewer: Optional[ViewerContext],
    feed_type: str,
    now: datetime,
) -> float:
    engagement = engagement_score(item)
    recency = recency_score(item, now)

    if feed_type == "trending":
        # global ranking: identical for every viewer at a given instant
        weights = FEED_WEIGHTS["trending"]
        return engagement * weights["engagement"] + recency * weights["recency"]

    weights = FEED_WEIGHTS.get(feed_type, PERSONALIZED_WEIGHTS)
    return (
        engagement * weights["engagement"]
        + recency * weights["recency"]
        + source_score(item, viewer) * weights["source"]
    )


def rank_items(
    items: Sequence[ContentItem],
    viewer: Optional[ViewerContext],
    feed_type: str,
    now: datetime,
) -> list[ContentItem]:
    """
    Sort candidates by combined score, highest first. The sort is stable, so
    ties keep query order (newest first for recency-sorted candidates).
    """
    scored = [(combined_score(item, viewer, feed_type, now), item) for item in items]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in scored]
