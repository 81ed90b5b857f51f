"""
Tests for the message repository.
Uses a temp database for each test.
"""

import pytest

from switchboard.errors import NotFoundError
from switchboard.storage.conversations import ConversationRepository
from switchboard.storage.messages import MessageRepository
from switchboard.storage.sqlite_store import SQLiteStore


@pytest.fixture
def store(tmp_path):
    s = SQLiteStore(str(tmp_path / "test.db"))
    yield s
    s.close()


@pytest.fixture
def repo(store):
    return MessageRepository(store)


@pytest.fixture
def conv_id(store):
    return ConversationRepository(store).create("u1").id


def test_append_and_list(repo, conv_id):
    """Store messages and get them back in order."""
    repo.append(conv_id, "user", "hi")
    repo.append(conv_id, "assistant", "hello!")
    repo.append(conv_id, "user", "how are you?")

    listed = repo.list_by_conversation(conv_id)
    assert [m.role for m in listed] == ["user", "assistant", "user"]
    assert [m.content for m in listed] == ["hi", "hello!", "how are you?"]
    assert all(m.images == [] for m in listed)


def test_append_fields(repo, conv_id):
    msg = repo.append(conv_id, "assistant", "reply", tokens=42, finish_reason="end_turn")
    stored = repo.get(msg.id)
    assert stored.tokens == 42
    assert stored.finish_reason == "end_turn"
    assert stored.edited_at is None
    assert stored.conversation_id == conv_id


def test_images_round_trip(repo, conv_id):
    images = [{"type": "base64", "media_type": "image/png", "data": "iVBOR"}]
    msg = repo.append(conv_id, "user", "look", images=images)
    assert repo.get(msg.id).images == images


def test_malformed_images_read_as_empty(store, repo, conv_id):
    msg = repo.append(conv_id, "user", "look")
    with store._connect() as conn:
        conn.execute("UPDATE messages SET images = 'garbage' WHERE id = ?", (msg.id,))
    assert repo.list_by_conversation(conv_id)[0].images == []


def test_same_timestamp_keeps_insertion_order(store, repo, conv_id):
    for i in range(5):
        repo.append(conv_id, "user", f"m{i}")
    with store._connect() as conn:
        conn.execute("UPDATE messages SET created_at = '2026-01-01T00:00:00+00:00'")
    assert [m.content for m in repo.list_by_conversation(conv_id)] == [f"m{i}" for i in range(5)]


def test_separate_conversations(store, repo):
    """Messages in different conversations stay separate."""
    convs = ConversationRepository(store)
    a, b = convs.create("u1").id, convs.create("u1").id
    repo.append(a, "user", "msg1")
    repo.append(b, "user", "msg2")
    assert len(repo.list_by_conversation(a)) == 1
    assert len(repo.list_by_conversation(b)) == 1


def test_transcript_is_role_and_content_only(repo, conv_id):
    repo.append(conv_id, "user", "q", images=[{"x": 1}], tokens=3)
    repo.append(conv_id, "assistant", "a", finish_reason="end_turn")
    assert repo.transcript(conv_id) == [
        {"role": "user", "content": "q"},
        {"role": "assistant", "content": "a"},
    ]


def test_edit_sets_edited_at(repo, conv_id):
    msg = repo.append(conv_id, "user", "typo")
    edited = repo.edit(msg.id, "fixed")
    assert edited.content == "fixed"
    assert edited.edited_at is not None
    assert edited.role == "user"
    assert edited.conversation_id == conv_id


def test_edit_missing(repo):
    with pytest.raises(NotFoundError) as exc:
        repo.edit("missing", "x")
    assert exc.value.message == "Message not found"


def test_remove_is_hard_delete(store, repo, conv_id):
    msg = repo.append(conv_id, "user", "bye")
    repo.remove(msg.id)
    with pytest.raises(NotFoundError):
        repo.get(msg.id)
    with store._connect() as conn:
        assert conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0] == 0


def test_remove_missing(repo):
    with pytest.raises(NotFoundError):
        repo.remove("missing")


def test_messages_survive_conversation_soft_delete(store, repo, conv_id):
    msg = repo.append(conv_id, "user", "still here")
    ConversationRepository(store).soft_delete(conv_id)
    assert repo.get(msg.id).content == "still here"
