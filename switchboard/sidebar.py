"""
Sidebar view-model: the conversation list as a client renders it.

Pure derivation from (conversations, search query, archived view, collapsed
groups). Nothing here touches storage; the terminal client and `switchboard ls`
feed it whatever the API returned.

    partition  keep conversations whose archived flag matches the view
    filter     case-insensitive substring match on the title
    sort       pinned first, then most recently active first
    group      Today / Yesterday / Previous 7 Days / Previous 30 Days / Older
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from switchboard.storage.models import Conversation, DEFAULT_TITLE

TODAY = "Today"
YESTERDAY = "Yesterday"
PREVIOUS_7_DAYS = "Previous 7 Days"
PREVIOUS_30_DAYS = "Previous 30 Days"
OLDER = "Older"

GROUP_ORDER = (TODAY, YESTERDAY, PREVIOUS_7_DAYS, PREVIOUS_30_DAYS, OLDER)


@dataclass
class SidebarState:
    """Client-side view settings. Collapse state lives only for the session."""
    query: str = ""
    show_archived: bool = False
    collapsed: set[str] = field(default_factory=set)

    def toggle_group(self, label: str) -> bool:
        """Flip a group's collapsed flag. Returns the new value."""
        if label in self.collapsed:
            self.collapsed.discard(label)
            return False
        self.collapsed.add(label)
        return True


@dataclass
class SidebarGroup:
    label: str
    conversations: list[Conversation]
    collapsed: bool = False


def parse_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp. Naive values are taken as UTC."""
    value = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _local_day(moment: datetime) -> date:
    return moment.astimezone().date()


def date_group(ts: str, now: datetime | None = None) -> str:
    """Bucket a timestamp by calendar day in local time."""
    today = _local_day(now or datetime.now(timezone.utc))
    day = _local_day(parse_timestamp(ts))

    if day == today:
        return TODAY
    if day == today - timedelta(days=1):
        return YESTERDAY
    if day >= today - timedelta(days=7):
        return PREVIOUS_7_DAYS
    if day >= today - timedelta(days=30):
        return PREVIOUS_30_DAYS
    return OLDER


def matches_query(conv: Conversation, query: str) -> bool:
    if not query.strip():
        return True
    needle = query.lower()
    title = conv.title or DEFAULT_TITLE
    return needle in title.lower()


def sort_conversations(conversations: list[Conversation]) -> list[Conversation]:
    """Pinned first; within each partition most recently active first."""
    by_recency = sorted(
        conversations,
        key=lambda c: parse_timestamp(c.recency),
        reverse=True,
    )
    return sorted(by_recency, key=lambda c: not c.is_pinned)


def build_sidebar(
    conversations: list[Conversation],
    state: SidebarState | None = None,
    now: datetime | None = None,
) -> list[SidebarGroup]:
    """Derive the grouped, filtered, sorted list. Empty groups are omitted."""
    state = state or SidebarState()
    now = now or datetime.now(timezone.utc)

    visible = [
        c for c in conversations
        if c.is_archived == state.show_archived and matches_query(c, state.query)
    ]

    buckets: dict[str, list[Conversation]] = {label: [] for label in GROUP_ORDER}
    for conv in sort_conversations(visible):
        buckets[date_group(conv.recency, now)].append(conv)

    return [
        SidebarGroup(label=label, conversations=convs, collapsed=label in state.collapsed)
        for label, convs in buckets.items()
        if convs
    ]
