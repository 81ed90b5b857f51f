"""
Base backend abstraction.
A backend turns a completion request into an async stream of events so the
relay never has to know which provider's wire format it is reading.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import AsyncIterator

logger = logging.getLogger(__name__)


@dataclass
class StreamEvent:
    """One normalized event from a provider stream."""
    kind: str                 # "text", "usage" or "stop"
    text: str = ""
    input_tokens: int | None = None
    output_tokens: int | None = None
    stop_reason: str | None = None


class BaseBackend(abc.ABC):
    """
    Abstract base for completion providers.
    Each backend knows how to open a streaming completion.
    """

    def __init__(self, name: str, url: str, timeout: int = 120):
        self.name = name
        self.url = url.rstrip("/")
        self.timeout = timeout

    @abc.abstractmethod
    def stream(self, body: dict) -> AsyncIterator[StreamEvent]:
        """
        Stream a completion.
        Body: {"model", "messages", "max_tokens", "temperature"}.
        Yields StreamEvents in provider order; raises UpstreamError on failure.
        """
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} url={self.url!r}>"
