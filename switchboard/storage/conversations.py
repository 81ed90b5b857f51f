"""
Conversation repository: CRUD over the conversations table.

Every read goes to the store. Settings are decoded into a dict on the way
out and encoded on the way in; a malformed stored value reads as {}.
"""

from __future__ import annotations

import json
import logging

from switchboard.errors import NotFoundError, ValidationError
from switchboard.storage.models import Conversation, DEFAULT_TITLE, new_id, utc_now
from switchboard.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)

# Fields a caller may change through update(), with their column encoders
UPDATABLE_FIELDS = {
    "title": lambda v: v,
    "model": lambda v: v,
    "settings": lambda v: json.dumps(v if v is not None else {}),
    "is_archived": lambda v: 1 if v else 0,
    "is_pinned": lambda v: 1 if v else 0,
}


class ConversationRepository:
    """Conversations owned by a user, soft-deleted rather than removed."""

    def __init__(self, store: SQLiteStore, default_model: str = ""):
        self.store = store
        self.default_model = default_model

    def list(
        self,
        user_id: str,
        include_deleted: bool = False,
        archived: bool | None = None,
    ) -> list[Conversation]:
        """
        Conversations for a user, most recently active first.
        Recency is last_message_at, falling back to created_at.
        """
        clauses = ["user_id = ?"]
        params: list = [user_id]
        if not include_deleted:
            clauses.append("is_deleted = 0")
        if archived is not None:
            clauses.append("is_archived = ?")
            params.append(1 if archived else 0)

        with self.store._connect() as conn:
            rows = conn.execute(
                f"""SELECT * FROM conversations
                    WHERE {' AND '.join(clauses)}
                    ORDER BY COALESCE(last_message_at, created_at) DESC, rowid DESC""",
                params,
            ).fetchall()
        return [Conversation.from_row(r) for r in rows]

    def get(self, conversation_id: str) -> Conversation:
        with self.store._connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ?",
                (conversation_id,),
            ).fetchone()
        if row is None:
            raise NotFoundError("Conversation", conversation_id)
        return Conversation.from_row(row)

    def create(
        self,
        user_id: str,
        title: str | None = None,
        model: str | None = None,
        project_id: str | None = None,
        settings: dict | None = None,
    ) -> Conversation:
        conv = Conversation(
            id=new_id(),
            user_id=user_id,
            project_id=project_id,
            title=title or DEFAULT_TITLE,
            model=model or self.default_model,
            settings=settings or {},
        )
        conv.updated_at = conv.created_at
        with self.store._connect() as conn:
            conn.execute(
                """INSERT INTO conversations
                   (id, user_id, project_id, title, model, settings, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (conv.id, conv.user_id, conv.project_id, conv.title, conv.model,
                 json.dumps(conv.settings), conv.created_at, conv.updated_at),
            )
        logger.debug("Created conversation %s (user=%s, model=%s)", conv.id, user_id, conv.model)
        return conv

    def update(self, conversation_id: str, fields: dict) -> Conversation:
        """
        Apply a partial update. Only recognized fields are written and
        updated_at is always refreshed. Nothing recognized is a caller error.
        """
        sets = []
        params = []
        for name, encode in UPDATABLE_FIELDS.items():
            if name in fields:
                sets.append(f"{name} = ?")
                params.append(encode(fields[name]))

        if not sets:
            raise ValidationError("No fields to update")

        sets.append("updated_at = ?")
        params.extend([utc_now(), conversation_id])
        return self._apply(conversation_id, ", ".join(sets), params)

    def set_archived(self, conversation_id: str, archived: bool) -> Conversation:
        return self._apply(
            conversation_id,
            "is_archived = ?, updated_at = ?",
            [1 if archived else 0, utc_now(), conversation_id],
        )

    def set_pinned(self, conversation_id: str, pinned: bool) -> Conversation:
        return self._apply(
            conversation_id,
            "is_pinned = ?, updated_at = ?",
            [1 if pinned else 0, utc_now(), conversation_id],
        )

    def set_title(self, conversation_id: str, title: str) -> Conversation:
        return self._apply(conversation_id, "title = ?", [title, conversation_id])

    def soft_delete(self, conversation_id: str) -> None:
        """Flag as deleted. Messages are left in place."""
        self._apply(
            conversation_id,
            "is_deleted = 1, updated_at = ?",
            [utc_now(), conversation_id],
            fetch=False,
        )
        logger.info("Soft-deleted conversation %s", conversation_id)

    def record_exchange(self, conversation_id: str, tokens: int, messages: int = 2) -> Conversation:
        """Bump the aggregates after a completed exchange, in a single statement."""
        now = utc_now()
        return self._apply(
            conversation_id,
            """message_count = message_count + ?,
               token_count = token_count + ?,
               last_message_at = ?,
               updated_at = ?""",
            [messages, tokens, now, now, conversation_id],
        )

    def _apply(self, conversation_id: str, set_clause: str, params: list, fetch: bool = True):
        with self.store._connect() as conn:
            cur = conn.execute(
                f"UPDATE conversations SET {set_clause} WHERE id = ?",
                params,
            )
            if cur.rowcount == 0:
                raise NotFoundError("Conversation", conversation_id)
            if not fetch:
                return None
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ?",
                (conversation_id,),
            ).fetchone()
        return Conversation.from_row(row)
