"""
Anthropic backend — streaming Messages API over httpx.

The provider speaks SSE: `event:` lines name the event and `data:` lines
carry a JSON object whose "type" repeats it, so only `data:` lines are read.

    message_start        -> input token count
    content_block_delta  -> a text fragment
    message_delta        -> output token count and stop reason
    error                -> provider-side failure mid-stream
"""

from __future__ import annotations

import json
import logging

import httpx

from switchboard.backends.base import BaseBackend, StreamEvent
from switchboard.errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://api.anthropic.com"
DEFAULT_API_VERSION = "2023-06-01"


class AnthropicBackend(BaseBackend):
    """Backend for the Anthropic Messages API."""

    def __init__(
        self,
        name: str = "anthropic",
        url: str = DEFAULT_URL,
        api_key: str = "",
        api_version: str = DEFAULT_API_VERSION,
        timeout: int = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(name=name, url=url or DEFAULT_URL, timeout=timeout)
        self.api_key = api_key
        self.api_version = api_version or DEFAULT_API_VERSION
        self._transport = transport

    def _headers(self) -> dict:
        """Build request headers with auth."""
        return {
            "content-type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
        }

    @staticmethod
    def _error_message(payload: dict | None, fallback: str) -> str:
        """Pull the human-readable message out of a provider error body."""
        if isinstance(payload, dict):
            err = payload.get("error")
            if isinstance(err, dict) and err.get("message"):
                return err["message"]
            if isinstance(err, str) and err:
                return err
        return fallback

    @staticmethod
    def parse_event(data: dict) -> StreamEvent | None:
        """Map one decoded `data:` payload to a StreamEvent (or None to skip)."""
        etype = data.get("type")
        if etype == "message_start":
            usage = data.get("message", {}).get("usage", {})
            return StreamEvent(
                kind="usage",
                input_tokens=usage.get("input_tokens"),
                output_tokens=usage.get("output_tokens"),
            )
        if etype == "content_block_delta":
            text = data.get("delta", {}).get("text", "")
            if text:
                return StreamEvent(kind="text", text=text)
            return None
        if etype == "message_delta":
            usage = data.get("usage", {})
            stop_reason = data.get("delta", {}).get("stop_reason")
            return StreamEvent(
                kind="stop",
                output_tokens=usage.get("output_tokens"),
                stop_reason=stop_reason,
            )
        if etype == "error":
            raise UpstreamError(
                AnthropicBackend._error_message(data, "Provider reported an error")
            )
        # ping, content_block_start/stop, message_stop
        return None

    async def stream(self, body: dict):
        """Stream a completion, yielding StreamEvents as the provider sends them."""
        if not self.api_key:
            raise UpstreamError("No API key configured for the completion provider")

        payload = {
            "model": body["model"],
            "max_tokens": body.get("max_tokens", 4096),
            "temperature": body.get("temperature", 1.0),
            "messages": body["messages"],
            "stream": True,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                async with client.stream(
                    "POST",
                    f"{self.url}/v1/messages",
                    headers=self._headers(),
                    json=payload,
                ) as resp:
                    if resp.status_code >= 400:
                        raw = await resp.aread()
                        try:
                            err_body = json.loads(raw)
                        except ValueError:
                            err_body = None
                        message = self._error_message(
                            err_body, f"HTTP {resp.status_code}: {raw[:200].decode(errors='replace')}"
                        )
                        logger.warning(
                            "Backend '%s' returned HTTP %d: %s",
                            self.name, resp.status_code, message,
                        )
                        raise UpstreamError(message)

                    async for line in resp.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data_str = line[5:].strip()
                        if not data_str:
                            continue
                        try:
                            data = json.loads(data_str)
                        except json.JSONDecodeError:
                            logger.debug("Skipping undecodable stream line: %.80s", data_str)
                            continue
                        event = self.parse_event(data)
                        if event is not None:
                            yield event
        except httpx.TimeoutException:
            logger.warning("Backend '%s' stream timed out after %ss", self.name, self.timeout)
            raise UpstreamError(f"Completion provider timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            logger.warning("Backend '%s' stream failed: %s", self.name, e)
            raise UpstreamError(f"Completion provider request failed: {e}")
