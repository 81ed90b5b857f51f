"""
Tests for the sidebar view-model.
Pure functions, no storage involved.
"""

from datetime import datetime, timedelta, timezone

import pytest

from switchboard.sidebar import (
    GROUP_ORDER,
    OLDER,
    PREVIOUS_30_DAYS,
    PREVIOUS_7_DAYS,
    TODAY,
    YESTERDAY,
    SidebarState,
    build_sidebar,
    date_group,
    matches_query,
    parse_timestamp,
    sort_conversations,
)
from switchboard.storage.models import Conversation

# Noon local time keeps day arithmetic clear of midnight and DST edges.
NOW = datetime(2026, 3, 18, 12, 0).astimezone()


def days_ago(n: float) -> str:
    return (NOW - timedelta(days=n)).isoformat()


def conv(title="Chat", days=0.0, pinned=False, archived=False, last_message_days=None) -> Conversation:
    return Conversation(
        title=title,
        created_at=days_ago(days),
        last_message_at=days_ago(last_message_days) if last_message_days is not None else None,
        is_pinned=pinned,
        is_archived=archived,
    )


def titles(groups) -> list[list[str]]:
    return [[c.title for c in g.conversations] for g in groups]


# ---------------------------------------------------------------------------
# date_group
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("days, expected", [
    (0, TODAY),
    (0.4, TODAY),
    (1, YESTERDAY),
    (2, PREVIOUS_7_DAYS),
    (7, PREVIOUS_7_DAYS),
    (8, PREVIOUS_30_DAYS),
    (30, PREVIOUS_30_DAYS),
    (31, OLDER),
    (400, OLDER),
])
def test_date_group(days, expected):
    assert date_group(days_ago(days), NOW) == expected


def test_date_group_uses_calendar_days():
    """Just before local midnight yesterday is Yesterday, not Today."""
    late_yesterday = NOW.replace(hour=0, minute=0) - timedelta(minutes=1)
    assert date_group(late_yesterday.isoformat(), NOW) == YESTERDAY
    early_today = NOW.replace(hour=0, minute=1)
    assert date_group(early_today.isoformat(), NOW) == TODAY


def test_future_timestamp_is_not_today():
    """Only the current calendar day is Today; later days sort as recent."""
    assert date_group((NOW + timedelta(days=2)).isoformat(), NOW) == PREVIOUS_7_DAYS


def test_parse_timestamp_naive_is_utc():
    parsed = parse_timestamp("2026-01-02 03:04:05")
    assert parsed.tzinfo is not None
    assert parsed.utcoffset() == timedelta(0)
    assert parse_timestamp("2026-01-02T03:04:05Z") == parsed


# ---------------------------------------------------------------------------
# filter / sort
# ---------------------------------------------------------------------------

def test_matches_query_case_insensitive():
    c = conv(title="Python Tips")
    assert matches_query(c, "python")
    assert matches_query(c, "TIPS")
    assert matches_query(c, "")
    assert not matches_query(c, "rust")


def test_untitled_matches_placeholder():
    assert matches_query(conv(title=""), "new conv")


def test_query_padding_is_significant():
    c = conv(title="xfoo")
    assert matches_query(c, "foo")
    assert not matches_query(c, " foo")
    assert matches_query(conv(title="my foo"), " foo")
    assert matches_query(c, "   ")


def test_sort_pinned_first_regardless_of_time():
    old_pinned = conv("old pinned", days=90, pinned=True)
    fresh = conv("fresh", days=0)
    newer_pinned = conv("newer pinned", days=5, pinned=True)
    ordered = sort_conversations([fresh, old_pinned, newer_pinned])
    assert [c.title for c in ordered] == ["newer pinned", "old pinned", "fresh"]


def test_sort_uses_last_message_over_created():
    revived = conv("revived", days=60, last_message_days=0)
    recent = conv("recent", days=1)
    assert [c.title for c in sort_conversations([recent, revived])] == ["revived", "recent"]


# ---------------------------------------------------------------------------
# build_sidebar
# ---------------------------------------------------------------------------

def test_groups_in_fixed_order_without_empties():
    convs = [conv("old", 100), conv("today", 0), conv("last week", 3)]
    groups = build_sidebar(convs, now=NOW)
    assert [g.label for g in groups] == [TODAY, PREVIOUS_7_DAYS, OLDER]
    assert titles(groups) == [["today"], ["last week"], ["old"]]


def test_every_conversation_in_exactly_one_group():
    convs = [conv(f"c{d}", d, pinned=d % 3 == 0) for d in range(0, 60, 2)]
    groups = build_sidebar(convs, now=NOW)
    listed = [c.id for g in groups for c in g.conversations]
    assert sorted(listed) == sorted(c.id for c in convs)
    assert len(listed) == len(set(listed))
    order = [GROUP_ORDER.index(g.label) for g in groups]
    assert order == sorted(order)


def test_build_is_idempotent():
    convs = [conv("a", 0, pinned=True), conv("b", 1), conv("c", 40)]
    state = SidebarState(query="", collapsed={YESTERDAY})
    first = build_sidebar(convs, state, NOW)
    second = build_sidebar(convs, state, NOW)
    assert [(g.label, g.collapsed, [c.id for c in g.conversations]) for g in first] == \
        [(g.label, g.collapsed, [c.id for c in g.conversations]) for g in second]


def test_pinned_leads_within_group():
    convs = [conv("fresh", 0.1), conv("pinned", 0.2, pinned=True)]
    assert titles(build_sidebar(convs, now=NOW)) == [["pinned", "fresh"]]


def test_archived_partition():
    active = conv("active")
    shelved = conv("shelved", archived=True)
    assert titles(build_sidebar([active, shelved], now=NOW)) == [["active"]]
    assert titles(build_sidebar([active, shelved], SidebarState(show_archived=True), NOW)) == [["shelved"]]


def test_archive_then_unarchive():
    c = conv("c")
    other = conv("other")
    c.is_archived = True
    assert titles(build_sidebar([c, other], now=NOW)) == [["other"]]
    assert titles(build_sidebar([c, other], SidebarState(show_archived=True), NOW)) == [["c"]]
    c.is_archived = False
    assert "c" in titles(build_sidebar([c, other], now=NOW))[0]
    assert build_sidebar([c, other], SidebarState(show_archived=True), NOW) == []


def test_search_filters():
    convs = [conv("Python tips"), conv("Rust notes"), conv("")]
    assert titles(build_sidebar(convs, SidebarState(query="PYTHON"), NOW)) == [["Python tips"]]
    assert titles(build_sidebar(convs, SidebarState(query="new"), NOW)) == [[""]]
    assert build_sidebar(convs, SidebarState(query="zig"), NOW) == []


def test_collapsed_flag_carried():
    convs = [conv("a", 0), conv("b", 1)]
    state = SidebarState()
    assert state.toggle_group(TODAY) is True
    groups = build_sidebar(convs, state, NOW)
    assert [(g.label, g.collapsed) for g in groups] == [(TODAY, True), (YESTERDAY, False)]
    # Collapsing hides nothing from the plan; rendering decides.
    assert titles(groups) == [["a"], ["b"]]

    assert state.toggle_group(TODAY) is False
    assert all(not g.collapsed for g in build_sidebar(convs, state, NOW))


def test_empty_input():
    assert build_sidebar([], now=NOW) == []
