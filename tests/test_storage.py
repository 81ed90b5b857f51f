"""
Tests for the SQLite store and the user/usage repositories.
Uses a temp database for each test.
"""

import sqlite3

import pytest

from switchboard.storage.conversations import ConversationRepository
from switchboard.storage.messages import MessageRepository
from switchboard.storage.sqlite_store import SQLiteStore
from switchboard.storage.users import DEFAULT_PREFERENCES, UsageRepository, UserRepository
from switchboard.errors import NotFoundError


@pytest.fixture
def store(tmp_path):
    """Create a fresh SQLite store for each test."""
    s = SQLiteStore(str(tmp_path / "test.db"))
    yield s
    s.close()


@pytest.fixture
def convs(store):
    return ConversationRepository(store, default_model="claude-test")


@pytest.fixture
def msgs(store):
    return MessageRepository(store)


def test_schema_created(store):
    """All tables exist after construction."""
    with store._connect() as conn:
        names = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    for table in ("users", "conversations", "messages", "usage_tracking", "projects", "artifacts"):
        assert table in names


def test_pragmas(store):
    with store._connect() as conn:
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"


def test_init_idempotent(tmp_path):
    """Opening the same file twice doesn't crash."""
    db = str(tmp_path / "test.db")
    SQLiteStore(db).close()
    s2 = SQLiteStore(db)
    assert not s2.closed
    s2.close()


def test_creates_parent_directory(tmp_path):
    s = SQLiteStore(str(tmp_path / "nested" / "dir" / "test.db"))
    assert (tmp_path / "nested" / "dir" / "test.db").exists()
    s.close()


def test_close(store):
    store.close()
    assert store.closed
    with pytest.raises(sqlite3.ProgrammingError):
        with store._connect():
            pass
    store.close()  # second close is a no-op


def test_failed_statement_rolls_back(store, convs):
    conv = convs.create("u1", title="Keep")
    with pytest.raises(sqlite3.IntegrityError):
        with store._connect() as conn:
            conn.execute("UPDATE conversations SET title = 'Changed' WHERE id = ?", (conv.id,))
            conn.execute(
                "INSERT INTO messages (id, conversation_id, role, content, created_at) "
                "VALUES ('m1', ?, 'robot', 'x', '2026-01-01')",
                (conv.id,),
            )
    assert convs.get(conv.id).title == "Keep"


def test_message_requires_existing_conversation(msgs):
    with pytest.raises(sqlite3.IntegrityError):
        msgs.append("no-such-conv", "user", "hello")


def test_stats(store, convs, msgs):
    """Stats reflect stored data."""
    a = convs.create("u1")
    b = convs.create("u1")
    c = convs.create("u1", model="other-model")
    convs.set_archived(b.id, True)
    convs.soft_delete(c.id)
    msgs.append(a.id, "user", "hi")
    msgs.append(a.id, "assistant", "hello!")
    msgs.append(b.id, "user", "yo")
    convs.record_exchange(a.id, tokens=30)

    stats = store.get_stats()
    assert stats["conversations"] == {"total": 3, "active": 1, "archived": 1, "deleted": 1}
    assert stats["messages"] == 3
    assert stats["user_messages"] == 2
    assert stats["assistant_messages"] == 1
    assert stats["tokens"] == 30
    assert stats["models"]["claude-test"]["conversations"] == 2
    assert stats["models"]["claude-test"]["tokens"] == 30
    assert "other-model" not in stats["models"]


def test_stats_empty(store):
    stats = store.get_stats()
    assert stats["conversations"]["total"] == 0
    assert stats["messages"] == 0
    assert stats["tokens"] == 0
    assert stats["models"] == {}


def test_export_all_json(store, convs, msgs):
    conv = convs.create("u1", title="Exported")
    msgs.append(conv.id, "user", "first")
    msgs.append(conv.id, "assistant", "second")

    data = store.export_all_json()
    assert len(data) == 1
    exported = data[0]
    assert exported["conversation_id"] == conv.id
    assert exported["title"] == "Exported"
    assert exported["is_deleted"] is False
    assert [m["content"] for m in exported["messages"]] == ["first", "second"]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def test_ensure_default_user(store):
    users = UserRepository(store)
    user = users.ensure_default("default-user", "me@example.com", "Me")
    assert user.id == "default-user"
    assert user.email == "me@example.com"
    assert user.preferences == DEFAULT_PREFERENCES


def test_ensure_default_idempotent(store):
    users = UserRepository(store)
    users.ensure_default("default-user", "me@example.com", "Me")
    again = users.ensure_default("default-user", "other@example.com", "Other")
    assert again.name == "Me"


def test_get_missing_user(store):
    with pytest.raises(NotFoundError):
        UserRepository(store).get("ghost")


def test_malformed_preferences(store):
    users = UserRepository(store)
    users.ensure_default("default-user")
    with store._connect() as conn:
        conn.execute("UPDATE users SET preferences = 'not json' WHERE id = 'default-user'")
    assert users.get("default-user").preferences == {}


def test_usage_record(store, convs, msgs):
    conv = convs.create("u1")
    msg = msgs.append(conv.id, "assistant", "reply")
    usage_id = UsageRepository(store).record(
        user_id="u1",
        conversation_id=conv.id,
        message_id=msg.id,
        model="claude-test",
        input_tokens=10,
        output_tokens=20,
        cost_estimate=0.0012,
    )
    with store._connect() as conn:
        row = conn.execute("SELECT * FROM usage_tracking WHERE id = ?", (usage_id,)).fetchone()
    assert row["input_tokens"] == 10
    assert row["output_tokens"] == 20
    assert row["cost_estimate"] == pytest.approx(0.0012)
