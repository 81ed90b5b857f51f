"""
User and usage repositories.

There is no authentication: a single default user owns everything and is
created on first start. Usage rows record one completed exchange each.
"""

from __future__ import annotations

import json
import logging

from switchboard.errors import NotFoundError
from switchboard.storage.models import User, new_id, utc_now
from switchboard.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "default-user"

DEFAULT_PREFERENCES = {
    "theme": "auto",
    "fontSize": 16,
    "messageDensity": "comfortable",
    "codeTheme": "okaidia",
}


class UserRepository:

    def __init__(self, store: SQLiteStore):
        self.store = store

    def get(self, user_id: str) -> User:
        with self.store._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFoundError("User", user_id)
        return User.from_row(row)

    def ensure_default(
        self,
        user_id: str = DEFAULT_USER_ID,
        email: str = "user@example.com",
        name: str = "Default User",
    ) -> User:
        """Create the default user if missing and return it."""
        with self.store._connect() as conn:
            cur = conn.execute(
                """INSERT OR IGNORE INTO users
                   (id, email, name, created_at, preferences, custom_instructions)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (user_id, email, name, utc_now(), json.dumps(DEFAULT_PREFERENCES), ""),
            )
            if cur.rowcount:
                logger.info("Default user created (%s)", user_id)
        return self.get(user_id)


class UsageRepository:
    """Append-only usage_tracking rows, aggregated by costs.CostTracker."""

    def __init__(self, store: SQLiteStore):
        self.store = store

    def record(
        self,
        user_id: str,
        conversation_id: str,
        message_id: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        cost_estimate: float = 0.0,
    ) -> str:
        usage_id = new_id()
        with self.store._connect() as conn:
            conn.execute(
                """INSERT INTO usage_tracking
                   (id, user_id, conversation_id, message_id, model,
                    input_tokens, output_tokens, cost_estimate, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (usage_id, user_id, conversation_id, message_id, model,
                 input_tokens, output_tokens, cost_estimate, utc_now()),
            )
        return usage_id
