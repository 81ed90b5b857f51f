"""
Data models for conversation storage.
These define the shape of data flowing between the store, the relay and the API.
JSON columns are decoded here so callers never see serialized text.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from uuid import uuid4

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Conversation"
ROLES = ("user", "assistant", "system")


def new_id() -> str:
    return str(uuid4())


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def decode_json(raw, default, expected: type):
    """
    Decode a JSON column. Missing, malformed or wrongly-shaped values
    give back `default` instead of failing the read.
    """
    if raw is None or raw == "":
        return default
    if isinstance(raw, expected):
        return raw
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Malformed JSON column value, using default: %.60r", raw)
        return default
    if not isinstance(value, expected):
        return default
    return value


@dataclass
class User:
    """The identity that owns conversations. One default user without auth."""
    id: str = field(default_factory=new_id)
    email: str | None = None
    name: str | None = None
    preferences: dict = field(default_factory=dict)
    custom_instructions: str = ""
    created_at: str = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row) -> User:
        return cls(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            preferences=decode_json(row["preferences"], {}, dict),
            custom_instructions=row["custom_instructions"] or "",
            created_at=row["created_at"],
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Conversation:
    """A chat session and its running aggregates."""
    id: str = field(default_factory=new_id)
    user_id: str = ""
    project_id: str | None = None
    title: str = DEFAULT_TITLE
    model: str = ""
    settings: dict = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    last_message_at: str | None = None
    is_archived: bool = False
    is_pinned: bool = False
    is_deleted: bool = False
    token_count: int = 0
    message_count: int = 0

    @property
    def recency(self) -> str:
        """Timestamp used for ordering: last message, else creation."""
        return self.last_message_at or self.created_at

    @classmethod
    def from_row(cls, row) -> Conversation:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            project_id=row["project_id"],
            title=row["title"] or "",
            model=row["model"] or "",
            settings=decode_json(row["settings"], {}, dict),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_message_at=row["last_message_at"],
            is_archived=bool(row["is_archived"]),
            is_pinned=bool(row["is_pinned"]),
            is_deleted=bool(row["is_deleted"]),
            token_count=row["token_count"] or 0,
            message_count=row["message_count"] or 0,
        )

    @classmethod
    def from_dict(cls, data: dict) -> Conversation:
        """Build from an API payload (the JSON the server returns)."""
        return cls(
            id=data.get("id", ""),
            user_id=data.get("user_id", ""),
            project_id=data.get("project_id"),
            title=data.get("title") or "",
            model=data.get("model") or "",
            settings=decode_json(data.get("settings"), {}, dict),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or data.get("created_at") or utc_now(),
            last_message_at=data.get("last_message_at"),
            is_archived=bool(data.get("is_archived")),
            is_pinned=bool(data.get("is_pinned")),
            is_deleted=bool(data.get("is_deleted")),
            token_count=data.get("token_count") or 0,
            message_count=data.get("message_count") or 0,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Message:
    """A single turn in a conversation."""
    id: str = field(default_factory=new_id)
    conversation_id: str = ""
    role: str = ""           # "user", "assistant", "system"
    content: str = ""
    images: list = field(default_factory=list)
    tokens: int = 0
    finish_reason: str | None = None
    created_at: str = field(default_factory=utc_now)
    edited_at: str | None = None
    parent_message_id: str | None = None

    @classmethod
    def from_row(cls, row) -> Message:
        return cls(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=row["content"],
            images=decode_json(row["images"], [], list),
            tokens=row["tokens"] or 0,
            finish_reason=row["finish_reason"],
            created_at=row["created_at"],
            edited_at=row["edited_at"],
            parent_message_id=row["parent_message_id"],
        )

    def to_provider_format(self) -> dict:
        """The role/content pair sent to the completion provider."""
        return {"role": self.role, "content": self.content}

    def to_dict(self) -> dict:
        return asdict(self)
