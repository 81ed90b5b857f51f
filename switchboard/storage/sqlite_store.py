"""
SQLite storage for users, conversations and messages.
This is the source of truth. Single portable file. Query with SQL. Export to JSON.

One connection is opened when the store is constructed and reused by every
repository until close(). Statements are serialized through a lock; WAL mode
lets readers in other processes (the CLI) work while the server writes.
"""

import sqlite3
import logging
import threading
from pathlib import Path
from contextlib import contextmanager

logger = logging.getLogger(__name__)

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT UNIQUE,
    name TEXT,
    avatar_url TEXT,
    created_at TEXT NOT NULL,
    last_login TEXT,
    preferences TEXT DEFAULT '{}',
    custom_instructions TEXT
);

CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    color TEXT DEFAULT '#CC785C',
    custom_instructions TEXT,
    knowledge_base_path TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    is_archived INTEGER DEFAULT 0,
    is_pinned INTEGER DEFAULT 0,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    project_id TEXT,
    title TEXT,
    model TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_message_at TEXT,
    is_archived INTEGER DEFAULT 0,
    is_pinned INTEGER DEFAULT 0,
    is_deleted INTEGER DEFAULT 0,
    settings TEXT DEFAULT '{}',
    token_count INTEGER DEFAULT 0,
    message_count INTEGER DEFAULT 0,
    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    role TEXT NOT NULL CHECK(role IN ('user', 'assistant', 'system')),
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    edited_at TEXT,
    tokens INTEGER DEFAULT 0,
    finish_reason TEXT,
    images TEXT DEFAULT '[]',
    parent_message_id TEXT,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE,
    FOREIGN KEY (parent_message_id) REFERENCES messages(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS artifacts (
    id TEXT PRIMARY KEY,
    message_id TEXT NOT NULL,
    conversation_id TEXT NOT NULL,
    type TEXT NOT NULL CHECK(type IN ('code', 'html', 'svg', 'react', 'mermaid', 'text')),
    title TEXT,
    identifier TEXT,
    language TEXT,
    content TEXT NOT NULL,
    version INTEGER DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE CASCADE,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS shared_conversations (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    share_token TEXT UNIQUE NOT NULL,
    created_at TEXT NOT NULL,
    expires_at TEXT,
    view_count INTEGER DEFAULT 0,
    is_public INTEGER DEFAULT 1,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS prompt_library (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    prompt_template TEXT NOT NULL,
    category TEXT,
    tags TEXT DEFAULT '[]',
    is_public INTEGER DEFAULT 0,
    usage_count INTEGER DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS conversation_folders (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    project_id TEXT,
    name TEXT NOT NULL,
    parent_folder_id TEXT,
    created_at TEXT NOT NULL,
    position INTEGER DEFAULT 0,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
    FOREIGN KEY (parent_folder_id) REFERENCES conversation_folders(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS conversation_folder_items (
    id TEXT PRIMARY KEY,
    folder_id TEXT NOT NULL,
    conversation_id TEXT NOT NULL,
    FOREIGN KEY (folder_id) REFERENCES conversation_folders(id) ON DELETE CASCADE,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE,
    UNIQUE(folder_id, conversation_id)
);

CREATE TABLE IF NOT EXISTS usage_tracking (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    conversation_id TEXT,
    message_id TEXT,
    model TEXT NOT NULL,
    input_tokens INTEGER DEFAULT 0,
    output_tokens INTEGER DEFAULT 0,
    cost_estimate REAL DEFAULT 0.0,
    created_at TEXT NOT NULL,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE SET NULL,
    FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS api_keys (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    key_name TEXT,
    api_key_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    last_used_at TEXT,
    is_active INTEGER DEFAULT 1,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_conversations_user_id
    ON conversations(user_id);
CREATE INDEX IF NOT EXISTS idx_conversations_project_id
    ON conversations(project_id);
CREATE INDEX IF NOT EXISTS idx_conversations_last_message
    ON conversations(last_message_at DESC);
CREATE INDEX IF NOT EXISTS idx_messages_conversation_id
    ON messages(conversation_id);
CREATE INDEX IF NOT EXISTS idx_messages_created_at
    ON messages(created_at);
CREATE INDEX IF NOT EXISTS idx_artifacts_conversation_id
    ON artifacts(conversation_id);
CREATE INDEX IF NOT EXISTS idx_artifacts_message_id
    ON artifacts(message_id);
CREATE INDEX IF NOT EXISTS idx_usage_tracking_user_id
    ON usage_tracking(user_id);
CREATE INDEX IF NOT EXISTS idx_usage_tracking_created_at
    ON usage_tracking(created_at);
"""


class SQLiteStore:
    """Thread-safe handle on the switchboard database."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = sqlite3.connect(
            str(self.db_path), check_same_thread=False
        )
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self):
        self._conn.execute("PRAGMA foreign_keys = ON")
        mode = self._conn.execute("PRAGMA journal_mode = WAL").fetchone()[0]
        with self._connect() as conn:
            conn.executescript(CREATE_TABLES)
        logger.info("SQLite store initialized at %s (journal=%s)", self.db_path, mode)

    @contextmanager
    def _connect(self):
        with self._lock:
            if self._conn is None:
                raise sqlite3.ProgrammingError("SQLite store is closed")
            conn = self._conn
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def close(self):
        """Close the shared connection. The store is unusable afterwards."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("SQLite store closed (%s)", self.db_path)

    @property
    def closed(self) -> bool:
        return self._conn is None

    def export_all_json(self) -> list[dict]:
        """Export every conversation with its ordered transcript."""
        with self._connect() as conn:
            conversations = conn.execute(
                "SELECT id, user_id, title, model, created_at, is_archived, is_deleted "
                "FROM conversations ORDER BY created_at"
            ).fetchall()
            result = []
            for conv in conversations:
                messages = conn.execute(
                    """SELECT role, content, created_at, tokens FROM messages
                       WHERE conversation_id = ?
                       ORDER BY created_at ASC, rowid ASC""",
                    (conv["id"],),
                ).fetchall()
                result.append({
                    "conversation_id": conv["id"],
                    "user_id": conv["user_id"],
                    "title": conv["title"],
                    "model": conv["model"],
                    "created_at": conv["created_at"],
                    "is_archived": bool(conv["is_archived"]),
                    "is_deleted": bool(conv["is_deleted"]),
                    "messages": [dict(m) for m in messages],
                })
        return result

    def get_stats(self) -> dict:
        """Return stats about stored data including token usage."""
        with self._connect() as conn:
            conv = conn.execute(
                """SELECT COUNT(*) AS total,
                          COALESCE(SUM(is_deleted = 0 AND is_archived = 0), 0) AS active,
                          COALESCE(SUM(is_deleted = 0 AND is_archived = 1), 0) AS archived,
                          COALESCE(SUM(is_deleted = 1), 0) AS deleted,
                          COALESCE(SUM(token_count), 0) AS tokens
                   FROM conversations"""
            ).fetchone()
            msg_count = conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]
            role_rows = conn.execute(
                "SELECT role, COUNT(*) AS n FROM messages GROUP BY role"
            ).fetchall()
            by_role = {row["role"]: row["n"] for row in role_rows}

            # Per-model breakdown
            model_rows = conn.execute(
                """SELECT model,
                          COUNT(*) as conversations,
                          COALESCE(SUM(message_count), 0) as messages,
                          COALESCE(SUM(token_count), 0) as tokens
                   FROM conversations
                   WHERE is_deleted = 0 AND model IS NOT NULL AND model != ''
                   GROUP BY model
                   ORDER BY conversations DESC"""
            ).fetchall()
            models = {
                row["model"]: {
                    "conversations": row["conversations"],
                    "messages": row["messages"],
                    "tokens": row["tokens"],
                }
                for row in model_rows
            }

        return {
            "conversations": {
                "total": conv["total"],
                "active": conv["active"],
                "archived": conv["archived"],
                "deleted": conv["deleted"],
            },
            "messages": msg_count,
            "user_messages": by_role.get("user", 0),
            "assistant_messages": by_role.get("assistant", 0),
            "tokens": conv["tokens"],
            "models": models,
        }
