from __future__ import annotations

import pytest

from feedrank.schemas import EngagementCounts, EntityRef, ViewerContext, ref_id
from feedrank.scoring import (
    combined_score,
    engagement_score,
    rank_items,
    recency_score,
    source_score,
)

from conftest import NOW, make_item

VIEWER = ViewerContext(
    viewer_id="viewer-1",
    followed_author_ids=frozenset({"alice"}),
    joined_community_ids=frozenset({"python"}),
)


# ── engagement ─────────────────────────────────────────────────────────────

def test_zero_engagement_scores_zero():
    assert engagement_score(make_item("p1")) == 0


def test_missing_counts_are_treated_as_zero():
    item = make_item("p1").model_copy(
        update={"engagement": EngagementCounts(likes=None, comments=None, reposts=None)}
    )
    assert engagement_score(item) == 0


def test_engagement_is_monotonic_and_bounded():
    totals = [0, 1, 5, 9, 50, 99, 500, 5000, 10**6]
    scores = [engagement_score(make_item("p", likes=t)) for t in totals]
    assert scores == sorted(scores)
    assert all(0 <= s <= 100 for s in scores)


def test_viral_post_is_capped_at_100():
    assert engagement_score(make_item("p", likes=10000)) == 100


def test_comments_and_reposts_are_weighted():
    # 9 likes == 3 comments == 1 comment + 3 likes: all log10(10) * 25
    assert engagement_score(make_item("a", likes=9)) == 25.0
    assert engagement_score(make_item("b", comments=3)) == 25.0
    assert engagement_score(make_item("c", comments=1, reposts=3)) == 25.0


def test_engagement_rounded_to_two_decimals():
    score = engagement_score(make_item("p", likes=1))
    assert score == round(score, 2) == 7.53


# ── recency ────────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "hours, expected",
    [
        (0.5, 100),
        (3, 90),
        (12, 70),
        (36, 50),
        (50, 30),
        (120, 10),
        (240, 0),
    ],
)
def test_recency_steps(hours, expected):
    assert recency_score(make_item("p", hours_old=hours), NOW) == expected


@pytest.mark.parametrize(
    "hours, expected",
    [(1, 90), (6, 70), (24, 50), (48, 30), (72, 10), (168, 0)],
)
def test_recency_step_lower_bounds_are_inclusive(hours, expected):
    assert recency_score(make_item("p", hours_old=hours), NOW) == expected


def test_recency_accepts_naive_now():
    item = make_item("p", hours_old=3)
    assert recency_score(item, NOW.replace(tzinfo=None)) == 90


# ── source ─────────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "author, community, expected",
    [
        ("alice", "python", 100),
        ("alice", None, 80),
        ("alice", "rust", 80),
        ("bob", "python", 60),
        ("bob", "rust", 0),
        ("bob", None, 0),
    ],
)
def test_source_score(author, community, expected):
    assert source_score(make_item("p", author=author, community=community), VIEWER) == expected


def test_source_score_without_viewer_is_zero():
    assert source_score(make_item("p", author="alice", community="python"), None) == 0


def test_source_score_dereferences_populated_refs():
    item = make_item(
        "p",
        author={"_id": "alice", "name": "Alice"},
        community=EntityRef(id="python", name="Python"),
    )
    assert item.author_id == "alice"
    assert item.community_id == "python"
    assert source_score(item, VIEWER) == 100


def test_ref_id_shapes():
    class Doc:
        _id = "abc"

    assert ref_id(None) is None
    assert ref_id("abc") == "abc"
    assert ref_id(42) == "42"
    assert ref_id({"id": "abc"}) == "abc"
    assert ref_id({"_id": "abc"}) == "abc"
    assert ref_id(EntityRef(id="abc")) == "abc"
    assert ref_id(Doc()) == "abc"


# ── combined / ranking ─────────────────────────────────────────────────────

def test_home_score_combines_all_three_signals():
    item = make_item("p", author="alice", hours_old=0.5, likes=9)
    # 25 * 0.5 + 100 * 0.3 + 80 * 0.2
    assert combined_score(item, VIEWER, "home", NOW) == pytest.approx(58.5)


def test_trending_score_ignores_viewer():
    item = make_item("p", author="alice", community="python", hours_old=3, likes=9)
    with_viewer = combined_score(item, VIEWER, "trending", NOW)
    without_viewer = combined_score(item, None, "trending", NOW)
    assert with_viewer == without_viewer == pytest.approx(25 * 0.6 + 90 * 0.4)


def test_rank_orders_by_score_not_age():
    older_popular = make_item("popular", hours_old=30, likes=10000)
    newer_quiet = make_item("quiet", hours_old=0.5)
    ranked = rank_items([newer_quiet, older_popular], None, "trending", NOW)
    assert [i.id for i in ranked] == ["popular", "quiet"]


def test_rank_keeps_input_order_on_ties():
    items = [make_item(f"p{n}", hours_old=2) for n in range(5)]
    ranked = rank_items(items, None, "trending", NOW)
    assert [i.id for i in ranked] == ["p0", "p1", "p2", "p3", "p4"]
