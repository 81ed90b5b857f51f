"""
Message repository: CRUD over the messages table.
Messages are hard-deleted, unlike conversations.
"""

from __future__ import annotations

import json
import logging

from switchboard.errors import NotFoundError
from switchboard.storage.models import Message, new_id, utc_now
from switchboard.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class MessageRepository:

    def __init__(self, store: SQLiteStore):
        self.store = store

    def list_by_conversation(self, conversation_id: str) -> list[Message]:
        """All messages of a conversation, oldest first."""
        with self.store._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM messages
                   WHERE conversation_id = ?
                   ORDER BY created_at ASC, rowid ASC""",
                (conversation_id,),
            ).fetchall()
        return [Message.from_row(r) for r in rows]

    def transcript(self, conversation_id: str) -> list[dict]:
        """The role/content pairs sent to the provider, in order."""
        return [m.to_provider_format() for m in self.list_by_conversation(conversation_id)]

    def get(self, message_id: str) -> Message:
        with self.store._connect() as conn:
            row = conn.execute(
                "SELECT * FROM messages WHERE id = ?", (message_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError("Message", message_id)
        return Message.from_row(row)

    def append(
        self,
        conversation_id: str,
        role: str,
        content: str,
        images: list | None = None,
        tokens: int = 0,
        finish_reason: str | None = None,
    ) -> Message:
        """
        Insert a message stamped now. The role is checked only by the
        table constraint; callers pass user, assistant or system.
        """
        msg = Message(
            id=new_id(),
            conversation_id=conversation_id,
            role=role,
            content=content,
            images=list(images or []),
            tokens=tokens,
            finish_reason=finish_reason,
            created_at=utc_now(),
        )
        with self.store._connect() as conn:
            conn.execute(
                """INSERT INTO messages
                   (id, conversation_id, role, content, images, tokens, finish_reason, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (msg.id, msg.conversation_id, msg.role, msg.content,
                 json.dumps(msg.images), msg.tokens, msg.finish_reason, msg.created_at),
            )
        logger.debug("Stored message %s (role=%s, conv=%s)", msg.id, role, conversation_id)
        return msg

    def edit(self, message_id: str, content: str) -> Message:
        with self.store._connect() as conn:
            cur = conn.execute(
                "UPDATE messages SET content = ?, edited_at = ? WHERE id = ?",
                (content, utc_now(), message_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError("Message", message_id)
            row = conn.execute(
                "SELECT * FROM messages WHERE id = ?", (message_id,)
            ).fetchone()
        return Message.from_row(row)

    def remove(self, message_id: str) -> None:
        with self.store._connect() as conn:
            cur = conn.execute("DELETE FROM messages WHERE id = ?", (message_id,))
            if cur.rowcount == 0:
                raise NotFoundError("Message", message_id)
        logger.info("Deleted message %s", message_id)
