"""
FastAPI application — the switchboard entry point.
REST surface over conversations and messages, plus the streaming relay.

Errors from switchboard.errors map to their status with an {"error": ...}
body, as do request validation failures (400) and unknown routes. Anything
else is logged and answered with a generic 500.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from switchboard import __version__
from switchboard.backends import make_backend
from switchboard.config import get_config, resolve_api_key
from switchboard.costs import CostTracker
from switchboard.errors import SwitchboardError, ValidationError
from switchboard.relay import CompletionRelay
from switchboard.storage.conversations import ConversationRepository
from switchboard.storage.messages import MessageRepository
from switchboard.storage.sqlite_store import SQLiteStore
from switchboard.storage.users import DEFAULT_USER_ID, UsageRepository, UserRepository

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Globals, initialized at startup
# ---------------------------------------------------------------------------
sqlite_store: SQLiteStore | None = None
conversations: ConversationRepository | None = None
messages: MessageRepository | None = None
users: UserRepository | None = None
cost_tracker: CostTracker | None = None
relay: CompletionRelay | None = None
default_user_id: str = DEFAULT_USER_ID


def _setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {})
    level = getattr(logging, log_cfg.get("level", "INFO").upper(), logging.INFO)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        from pathlib import Path
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    global sqlite_store, conversations, messages, users, cost_tracker, relay
    global default_user_id

    cfg = get_config()
    _setup_logging(cfg)

    p_cfg = cfg.get("provider", {})
    u_cfg = cfg.get("users", {})
    default_model = p_cfg.get("default_model", "")

    # Storage
    sqlite_store = SQLiteStore(cfg["storage"]["sqlite_path"])
    conversations = ConversationRepository(sqlite_store, default_model=default_model)
    messages = MessageRepository(sqlite_store)
    users = UserRepository(sqlite_store)
    default_user_id = u_cfg.get("default_id", DEFAULT_USER_ID)
    users.ensure_default(
        user_id=default_user_id,
        email=u_cfg.get("default_email", "user@example.com"),
        name=u_cfg.get("default_name", "Default User"),
    )
    cost_tracker = CostTracker(sqlite_store, cfg.get("pricing", {}))

    # A missing key leaves the relay unconfigured; the server still starts
    api_key = resolve_api_key(cfg)
    backend = make_backend(p_cfg, api_key) if api_key else None

    relay = CompletionRelay(
        conversations=conversations,
        messages=messages,
        backend=backend,
        usage=UsageRepository(sqlite_store),
        cost_tracker=cost_tracker,
        default_model=default_model,
        max_tokens=p_cfg.get("max_tokens", 4096),
        temperature=p_cfg.get("temperature", 1.0),
    )

    logger.info(
        "Switchboard started — listening on %s:%s",
        cfg.get("server", {}).get("host", "localhost"),
        cfg.get("server", {}).get("port", 3000),
    )
    logger.info("Storage: SQLite=%s", cfg["storage"]["sqlite_path"])
    logger.info(
        "Provider: %s (%s), API key %s",
        p_cfg.get("name", "anthropic"),
        default_model or "no default model",
        "configured" if backend else "NOT configured — message sending disabled",
    )

    yield

    logger.info("Switchboard shutting down")
    sqlite_store.close()


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Switchboard",
    description="Self-hosted chat client backend.",
    version=__version__,
    lifespan=lifespan,
)

# Browser clients are served from another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().get("server", {}).get("cors_origins", ["*"]),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SwitchboardError)
async def switchboard_error_handler(request: Request, exc: SwitchboardError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"error": _validation_message(exc)}, status_code=400)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        {"error": exc.detail}, status_code=exc.status_code, headers=exc.headers,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def _validation_message(exc: RequestValidationError) -> str:
    """First validation problem as "archived: Input should be a valid boolean"."""
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    msg = first.get("msg", "invalid value")
    return f"{field}: {msg}" if field else msg


async def _json_body(request: Request) -> dict:
    """Request body as a dict. Empty bodies read as {}."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("invalid JSON")
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")
    return body


# ---------------------------------------------------------------------------
# Service endpoints
# ---------------------------------------------------------------------------

@app.get("/")
async def root():
    return JSONResponse({
        "name": "Switchboard",
        "version": __version__,
        "status": "running",
        "endpoints": {"health": "/health", "api": "/api/*"},
    })


@app.get("/health")
@app.get("/api/health")
async def health():
    """Health check."""
    return JSONResponse({
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "apiKeyConfigured": relay.configured if relay else False,
    })


@app.get("/api/stats")
async def stats():
    """Return storage statistics."""
    return JSONResponse(sqlite_store.get_stats())


@app.get("/api/usage")
async def usage(days: int = 30):
    """Token usage and estimated cost over the last N days."""
    return JSONResponse(cost_tracker.get_stats(days))


@app.get("/api/users/me")
async def current_user():
    """The default user (there is no authentication)."""
    return JSONResponse(users.get(default_user_id).to_dict())


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

@app.get("/api/conversations")
async def list_conversations(user_id: str | None = None, archived: bool | None = None):
    convs = conversations.list(user_id or default_user_id, archived=archived)
    return JSONResponse([c.to_dict() for c in convs])


@app.get("/api/conversations/{conversation_id}")
async def get_conversation(conversation_id: str):
    return JSONResponse(conversations.get(conversation_id).to_dict())


@app.post("/api/conversations")
async def create_conversation(request: Request):
    body = await _json_body(request)
    settings = body.get("settings")
    if settings is not None and not isinstance(settings, dict):
        raise ValidationError("settings must be an object")
    conv = conversations.create(
        user_id=body.get("user_id") or default_user_id,
        title=body.get("title"),
        model=body.get("model"),
        project_id=body.get("project_id"),
        settings=settings,
    )
    return JSONResponse(conv.to_dict(), status_code=201)


@app.put("/api/conversations/{conversation_id}")
async def update_conversation(conversation_id: str, request: Request):
    body = await _json_body(request)
    if "settings" in body and not isinstance(body["settings"], (dict, type(None))):
        raise ValidationError("settings must be an object")
    conv = conversations.update(conversation_id, body)
    return JSONResponse(conv.to_dict())


@app.delete("/api/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str):
    conversations.soft_delete(conversation_id)
    return JSONResponse({"success": True, "message": "Conversation deleted"})


@app.put("/api/conversations/{conversation_id}/archive")
async def archive_conversation(conversation_id: str, request: Request):
    body = await _json_body(request)
    conv = conversations.set_archived(conversation_id, bool(body.get("archived")))
    return JSONResponse(conv.to_dict())


@app.put("/api/conversations/{conversation_id}/pin")
async def pin_conversation(conversation_id: str, request: Request):
    body = await _json_body(request)
    conv = conversations.set_pinned(conversation_id, bool(body.get("pinned")))
    return JSONResponse(conv.to_dict())


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@app.get("/api/conversations/{conversation_id}/messages")
async def list_messages(conversation_id: str):
    return JSONResponse([m.to_dict() for m in messages.list_by_conversation(conversation_id)])


@app.post("/api/conversations/{conversation_id}/messages")
async def send_message(conversation_id: str, request: Request):
    """
    Send a user message and stream the assistant reply as SSE.
    Checks and the user-message write happen before the response starts,
    so they still surface as ordinary HTTP errors.
    """
    body = await _json_body(request)
    exchange = relay.begin(
        conversation_id,
        body.get("content"),
        images=body.get("images"),
        model=body.get("model"),
    )
    return StreamingResponse(
        relay.stream(exchange),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.put("/api/messages/{message_id}")
@app.put("/api/conversations/messages/{message_id}")
async def edit_message(message_id: str, request: Request):
    body = await _json_body(request)
    content = body.get("content")
    if not isinstance(content, str):
        raise ValidationError("content is required")
    return JSONResponse(messages.edit(message_id, content).to_dict())


@app.delete("/api/messages/{message_id}")
@app.delete("/api/conversations/messages/{message_id}")
async def delete_message(message_id: str):
    messages.remove(message_id)
    return JSONResponse({"success": True, "message": "Message deleted"})
