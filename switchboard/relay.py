"""
Relay: the core of switchboard.
Turns one user utterance into a persisted, streamed assistant reply.

    begin()   checks the request, resolves the model and stores the user
              message before any provider call, so the turn survives a
              failed exchange.
    stream()  replays the transcript to the provider and relays each text
              fragment as an SSE frame the moment it arrives, then stores
              the reply, bumps the conversation aggregates and sends `done`.

Once streaming starts the response headers are committed, so failures are
reported as an in-stream `error` event rather than an HTTP status.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from contextlib import aclosing
from dataclasses import dataclass, field

from switchboard.backends.base import BaseBackend
from switchboard.costs import CostTracker
from switchboard.errors import ConfigurationError, UpstreamError, ValidationError, NotFoundError
from switchboard.storage.conversations import ConversationRepository
from switchboard.storage.messages import MessageRepository
from switchboard.storage.models import Conversation, Message
from switchboard.storage.users import UsageRepository

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 1.0


class ExchangeState(str, enum.Enum):
    IDLE = "idle"
    USER_MESSAGE_PERSISTED = "user_message_persisted"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Exchange:
    """One user turn on its way through the provider."""
    conversation: Conversation
    user_message: Message
    model: str
    state: ExchangeState = ExchangeState.IDLE
    text: list[str] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str | None = None
    assistant_message: Message | None = None
    error: str = ""

    @property
    def content(self) -> str:
        return "".join(self.text)


def sse(payload: dict) -> str:
    """Frame one event for a text/event-stream response."""
    return f"data: {json.dumps(payload)}\n\n"


def derive_title(content: str) -> str:
    """First 50 characters of the opening message, with an ellipsis if cut."""
    title = content[:TITLE_MAX_CHARS]
    if len(content) > TITLE_MAX_CHARS:
        title += "..."
    return title


class CompletionRelay:
    """Streams provider completions into conversations."""

    def __init__(
        self,
        conversations: ConversationRepository,
        messages: MessageRepository,
        backend: BaseBackend | None,
        usage: UsageRepository | None = None,
        cost_tracker: CostTracker | None = None,
        default_model: str = "",
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ):
        self.conversations = conversations
        self.messages = messages
        self.backend = backend
        self.usage = usage
        self.cost_tracker = cost_tracker
        self.default_model = default_model
        self.max_tokens = max_tokens
        self.temperature = temperature

    @property
    def configured(self) -> bool:
        return self.backend is not None

    def _resolve_model(self, requested: str | None, conversation: Conversation) -> str:
        """Request override, then the conversation's model, then the default."""
        return requested or conversation.model or self.default_model

    def _sampling(self, settings: dict) -> tuple[int, float]:
        max_tokens = settings.get("max_tokens")
        temperature = settings.get("temperature")
        return (
            max_tokens if max_tokens is not None else self.max_tokens,
            temperature if temperature is not None else self.temperature,
        )

    def begin(
        self,
        conversation_id: str,
        content,
        images: list | None = None,
        model: str | None = None,
    ) -> Exchange:
        """
        Validate the request and persist the user message.
        Raises ConfigurationError, NotFoundError or ValidationError; nothing
        is written when one of them is raised.
        """
        if not self.configured:
            raise ConfigurationError("API key not configured")

        conversation = self.conversations.get(conversation_id)
        if conversation.is_deleted:
            raise NotFoundError("Conversation", conversation_id)

        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content is required")
        if images is not None and not isinstance(images, list):
            raise ValidationError("images must be a list")

        resolved_model = self._resolve_model(model, conversation)
        user_message = self.messages.append(conversation_id, "user", content, images=images)
        exchange = Exchange(
            conversation=conversation,
            user_message=user_message,
            model=resolved_model,
            state=ExchangeState.USER_MESSAGE_PERSISTED,
        )
        logger.info(
            "Exchange started: conv=%s model=%s (%d chars)",
            conversation_id, exchange.model, len(content),
        )
        return exchange

    async def stream(self, exchange: Exchange):
        """Async generator of SSE frames for one exchange."""
        conversation = exchange.conversation
        transcript = self.messages.transcript(conversation.id)
        max_tokens, temperature = self._sampling(conversation.settings)
        body = {
            "model": exchange.model,
            "messages": transcript,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        exchange.state = ExchangeState.STREAMING
        try:
            async with aclosing(self.backend.stream(body)) as events:
                async for event in events:
                    if event.kind == "text":
                        exchange.text.append(event.text)
                        yield sse({"type": "content", "text": event.text})
                    elif event.kind == "usage":
                        if event.input_tokens is not None:
                            exchange.input_tokens = event.input_tokens
                        if event.output_tokens is not None:
                            exchange.output_tokens = event.output_tokens
                    elif event.kind == "stop":
                        if event.output_tokens is not None:
                            exchange.output_tokens = event.output_tokens
                        exchange.stop_reason = event.stop_reason

            self._complete(exchange, first_exchange=len(transcript) <= 2)
        except UpstreamError as e:
            logger.warning("Exchange failed for conv=%s: %s", conversation.id, e.message)
            exchange.state = ExchangeState.FAILED
            exchange.error = e.message
            yield sse({"type": "error", "error": e.message})
            return
        except (asyncio.CancelledError, GeneratorExit):
            # Client went away; the provider stream is already closed by aclosing.
            exchange.state = ExchangeState.FAILED
            exchange.error = "client disconnected"
            logger.info("Client disconnected mid-stream (conv=%s)", conversation.id)
            raise
        except Exception:
            logger.exception("Unexpected error relaying conv=%s", conversation.id)
            exchange.state = ExchangeState.FAILED
            exchange.error = "Internal server error"
            yield sse({"type": "error", "error": "Internal server error"})
            return

        yield sse({
            "type": "done",
            "messageId": exchange.assistant_message.id,
            "inputTokens": exchange.input_tokens,
            "outputTokens": exchange.output_tokens,
        })

    def _complete(self, exchange: Exchange, first_exchange: bool):
        """Persist the reply and update the conversation after a clean stream."""
        conv_id = exchange.conversation.id
        exchange.assistant_message = self.messages.append(
            conv_id,
            "assistant",
            exchange.content,
            tokens=exchange.output_tokens,
            finish_reason=exchange.stop_reason,
        )
        self.conversations.record_exchange(
            conv_id, exchange.input_tokens + exchange.output_tokens
        )
        # Always overwrites on the first exchange, even a title set at creation.
        if first_exchange:
            self.conversations.set_title(conv_id, derive_title(exchange.user_message.content))

        if self.usage is not None:
            cost = 0.0
            if self.cost_tracker is not None:
                cost = self.cost_tracker.estimate(
                    exchange.model, exchange.input_tokens, exchange.output_tokens
                )
            self.usage.record(
                user_id=exchange.conversation.user_id,
                conversation_id=conv_id,
                message_id=exchange.assistant_message.id,
                model=exchange.model,
                input_tokens=exchange.input_tokens,
                output_tokens=exchange.output_tokens,
                cost_estimate=cost,
            )

        exchange.state = ExchangeState.COMPLETED
        logger.info(
            "Exchange completed: conv=%s in=%d out=%d stop=%s",
            conv_id, exchange.input_tokens, exchange.output_tokens, exchange.stop_reason,
        )
