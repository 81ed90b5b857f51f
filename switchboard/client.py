"""
HTTP client for a running switchboard instance.
Used by the CLI and the terminal UI; both only ever talk to the API.
"""

from __future__ import annotations

import json
import logging
from typing import Iterator

import httpx

from switchboard.storage.models import Conversation

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:3000"


def iter_sse_events(lines) -> Iterator[dict]:
    """Decode `data: <json>` lines of an event stream into dicts."""
    for line in lines:
        if not line.startswith("data:"):
            continue
        data_str = line[5:].strip()
        if not data_str:
            continue
        try:
            yield json.loads(data_str)
        except json.JSONDecodeError:
            logger.debug("Skipping undecodable event: %.80s", data_str)


class SwitchboardClient:
    """Thin synchronous wrapper over the REST surface."""

    def __init__(
        self,
        url: str = DEFAULT_URL,
        timeout: float = 10,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self._http = httpx.Client(base_url=self.url, timeout=timeout, transport=transport)

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _get(self, path: str, **params):
        resp = self._http.get(path, params={k: v for k, v in params.items() if v is not None})
        resp.raise_for_status()
        return resp.json()

    def health(self) -> dict:
        return self._get("/api/health")

    def stats(self) -> dict:
        return self._get("/api/stats")

    def usage(self, days: int = 30) -> dict:
        return self._get("/api/usage", days=days)

    def list_conversations(self, user_id: str | None = None) -> list[Conversation]:
        return [Conversation.from_dict(c) for c in self._get("/api/conversations", user_id=user_id)]

    def create_conversation(self, title: str | None = None, model: str | None = None) -> Conversation:
        body = {k: v for k, v in {"title": title, "model": model}.items() if v}
        resp = self._http.post("/api/conversations", json=body)
        resp.raise_for_status()
        return Conversation.from_dict(resp.json())

    def send(self, conversation_id: str, content: str, model: str | None = None) -> Iterator[dict]:
        """
        Send a message and yield the stream's events as they arrive.
        Non-2xx answers (404, 400, missing key) raise httpx.HTTPStatusError.
        """
        body = {"content": content}
        if model:
            body["model"] = model
        with self._http.stream(
            "POST",
            f"/api/conversations/{conversation_id}/messages",
            json=body,
            timeout=None,
        ) as resp:
            if resp.status_code >= 400:
                resp.read()
                resp.raise_for_status()
            yield from iter_sse_events(resp.iter_lines())
