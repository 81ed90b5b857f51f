"""
Tests for cost tracking.
Run with: pytest tests/test_costs.py
"""

import pytest

from switchboard.costs import CostTracker
from switchboard.storage.conversations import ConversationRepository
from switchboard.storage.sqlite_store import SQLiteStore
from switchboard.storage.users import UsageRepository

PRICING = {
    "claude-sonnet": {"input": 3.0, "output": 15.0},
    "claude-haiku": {"input": 1.0, "output": 5.0},
}


@pytest.fixture
def store(tmp_path):
    """Create a fresh SQLite store."""
    s = SQLiteStore(str(tmp_path / "test.db"))
    yield s
    s.close()


@pytest.fixture
def tracker(store):
    """Create a CostTracker backed by the test store."""
    return CostTracker(store, PRICING)


@pytest.fixture
def usage(store):
    return UsageRepository(store)


@pytest.fixture
def conv_id(store):
    return ConversationRepository(store).create("u1").id


def _record(usage, conv_id, model, inp, out, cost):
    return usage.record("u1", conv_id, None, model, inp, out, cost)


# ---------------------------------------------------------------------------
# estimate
# ---------------------------------------------------------------------------

def test_estimate_known_model(tracker):
    assert tracker.estimate("claude-sonnet", 1_000_000, 0) == pytest.approx(3.0)
    assert tracker.estimate("claude-sonnet", 1000, 2000) == pytest.approx(0.033)


def test_estimate_unknown_model_is_free(tracker):
    assert tracker.estimate("mystery", 1000, 1000) == 0.0


def test_estimate_bad_pricing_entry(store):
    tracker = CostTracker(store, {"broken": {"input": "lots", "output": 1}})
    assert tracker.estimate("broken", 10, 10) == 0.0


def test_estimate_without_pricing(store):
    assert CostTracker(store).estimate("claude-sonnet", 10, 10) == 0.0


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def test_stats_empty(tracker):
    stats = tracker.get_stats(days=7)
    assert stats["total"] == 0
    assert stats["days_queried"] == 7
    assert stats["tokens"] == {"input": 0, "output": 0}
    assert stats["by_model"] == {}
    assert stats["by_day"] == {}
    assert stats["by_conversation"] == []


def test_stats_totals(tracker, usage, conv_id):
    _record(usage, conv_id, "claude-sonnet", 100, 200, 0.01)
    _record(usage, conv_id, "claude-sonnet", 50, 50, 0.02)
    _record(usage, conv_id, "claude-haiku", 10, 10, 0.005)

    stats = tracker.get_stats(days=30)
    assert stats["total"] == pytest.approx(0.035)
    assert stats["average_daily"] == pytest.approx(0.035 / 30, abs=1e-6)
    assert stats["tokens"] == {"input": 160, "output": 260}
    assert stats["by_model"]["claude-sonnet"]["exchanges"] == 2
    assert stats["by_model"]["claude-sonnet"]["cost"] == pytest.approx(0.03)
    assert stats["by_model"]["claude-haiku"]["exchanges"] == 1
    assert len(stats["by_day"]) == 1
    assert stats["by_conversation"][0]["conversation_id"] == conv_id
    assert stats["by_conversation"][0]["exchanges"] == 3


def test_stats_window_excludes_old_rows(store, tracker, usage, conv_id):
    old_id = _record(usage, conv_id, "claude-sonnet", 100, 100, 1.0)
    _record(usage, conv_id, "claude-sonnet", 1, 1, 0.5)
    with store._connect() as conn:
        conn.execute(
            "UPDATE usage_tracking SET created_at = '2020-01-01T00:00:00+00:00' WHERE id = ?",
            (old_id,),
        )
    assert tracker.get_stats(days=30)["total"] == pytest.approx(0.5)
    assert tracker.get_total() == pytest.approx(1.5)


def test_total_empty(tracker):
    assert tracker.get_total() == 0
