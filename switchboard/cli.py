#!/usr/bin/env python3
"""
Switchboard CLI — put the call through.

Every command has an operator name and a standard alias:

    OPERATOR        STANDARD        WHAT IT DOES
    --------        --------        ----------------------------------
    dial            start, serve    Start the switchboard API server
    ring            status, ping    Ping a running instance
    board           ls, list        Show the grouped conversation list
    call            send, chat      Send a message and stream the reply
    dump            export          Export conversations to JSON
    flash           info, stats     Show config, storage and usage at a glance
    jack            console, tui    Launch the terminal client
    tone            banner          Print the banner
"""

import argparse
import sys

from switchboard import __version__

BANNER = r"""
    ╔══════════════════════════════════════════════════╗
    ║                                                  ║
    ║   ┌─┐┬ ┬┬┌┬┐┌─┐┬ ┬┌┐ ┌─┐┌─┐┬─┐┌┬┐               ║
    ║   └─┐││││ │ │  ├─┤├┴┐│ │├─┤├┬┘ ││               ║
    ║   └─┘└┴┘┴ ┴ └─┘┴ ┴└─┘└─┘┴ ┴┴└──┴┘               ║
    ║                                                  ║
    ║   Put the call through.               v""" + __version__ + r"""    ║
    ║                                                  ║
    ╚══════════════════════════════════════════════════╝
"""

DEFAULT_URL = "http://localhost:3000"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_dial(args):
    """Start the switchboard API server."""
    import uvicorn
    from switchboard.config import get_config

    cfg = get_config()
    host = args.host or cfg["server"]["host"]
    port = args.port or cfg["server"]["port"]

    print(BANNER)
    print(f"  Dialing up on {host}:{port}")
    print(f"  Provider: {cfg['provider'].get('name', 'anthropic')} ({cfg['provider']['url']})")
    print(f"  Model: {cfg['provider']['default_model']}")
    print()

    uvicorn.run(
        "switchboard.main:app",
        host=host,
        port=port,
        reload=args.reload,
        log_level="info",
    )


def cmd_ring(args):
    """Ping a running switchboard instance."""
    import httpx
    from switchboard.client import SwitchboardClient

    url = args.url or DEFAULT_URL
    try:
        with SwitchboardClient(url, timeout=5) as client:
            health = client.health()
            print(f"  ☎  Ring ring... {url} is UP")
            key = "configured" if health.get("apiKeyConfigured") else "NOT configured"
            print(f"  🔑 Provider key: {key}")

            stats = client.stats()
            convs = stats.get("conversations", {})
            print(f"  📼 Conversations: {convs.get('active', 0)} active, "
                  f"{convs.get('archived', 0)} archived, {convs.get('deleted', 0)} deleted")
            print(f"  💬 Messages: {stats.get('messages', 0)} "
                  f"(user: {stats.get('user_messages', 0)}, assistant: {stats.get('assistant_messages', 0)})")
            if stats.get("tokens", 0) > 0:
                print(f"  📊 Tokens: {stats['tokens']:,} total")
    except (httpx.ConnectError, httpx.TimeoutException):
        print(f"  ✗  Dead line — nothing at {url}")
    except httpx.HTTPStatusError as e:
        print(f"  ✗  No answer — got HTTP {e.response.status_code}")


def render_board(groups) -> list[str]:
    """Format sidebar groups as printable lines."""
    lines = []
    for group in groups:
        marker = "▸" if group.collapsed else "▾"
        lines.append(f"  {marker} {group.label} ({len(group.conversations)})")
        if group.collapsed:
            continue
        for conv in group.conversations:
            pin = "📌 " if conv.is_pinned else "   "
            lines.append(f"    {pin}{conv.title or 'New Conversation'}  ({conv.id[:8]})")
    return lines


def cmd_board(args):
    """Show the conversation list grouped by recency."""
    import httpx
    from switchboard.client import SwitchboardClient
    from switchboard.sidebar import SidebarState, build_sidebar

    url = args.url or DEFAULT_URL
    try:
        with SwitchboardClient(url) as client:
            convs = client.list_conversations(user_id=args.user)
    except httpx.HTTPError as e:
        print(f"  ✗  Cannot reach {url}: {e}")
        sys.exit(1)

    state = SidebarState(
        query=" ".join(args.search or []),
        show_archived=args.archived,
        collapsed=set(args.collapse or []),
    )
    groups = build_sidebar(convs, state)
    title = "Archived" if args.archived else "Conversations"
    print(f"  {title}")
    print("  " + "─" * 56)
    if not groups:
        print("  (nothing here)")
        return
    for line in render_board(groups):
        print(line)


def cmd_call(args):
    """Send a message and stream the reply to the terminal."""
    import httpx
    from switchboard.client import SwitchboardClient

    url = args.url or DEFAULT_URL
    content = " ".join(args.message)
    try:
        with SwitchboardClient(url) as client:
            conv_id = args.conversation
            if not conv_id:
                conv_id = client.create_conversation(model=args.model).id
                print(f"  ☎  New conversation {conv_id}")
            print()
            for event in client.send(conv_id, content, model=args.model):
                etype = event.get("type")
                if etype == "content":
                    print(event.get("text", ""), end="", flush=True)
                elif etype == "done":
                    print()
                    print(f"\n  ✓  {event.get('inputTokens', 0)} in / "
                          f"{event.get('outputTokens', 0)} out")
                elif etype == "error":
                    print(f"\n  ✗  {event.get('error', 'unknown error')}")
                    sys.exit(1)
    except httpx.HTTPStatusError as e:
        try:
            detail = e.response.json().get("error", "")
        except ValueError:
            detail = e.response.text
        print(f"  ✗  HTTP {e.response.status_code}: {detail}")
        sys.exit(1)
    except httpx.HTTPError as e:
        print(f"  ✗  Cannot reach {url}: {e}")
        sys.exit(1)


def cmd_dump(args):
    """Export conversations to JSON."""
    import json
    from switchboard.config import get_config
    from switchboard.storage.sqlite_store import SQLiteStore

    cfg = get_config()
    store = SQLiteStore(cfg["storage"]["sqlite_path"])
    try:
        stats = store.get_stats()
        print(f"  📼 Database: {cfg['storage']['sqlite_path']}")
        print(f"  💬 Conversations: {stats['conversations']['total']} | Messages: {stats['messages']}")

        data = store.export_all_json()
    finally:
        store.close()

    if not args.include_deleted:
        data = [c for c in data if not c["is_deleted"]]
    indent = 2 if args.pretty else None

    with open(args.output, "w") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False)

    print(f"  📦 Dumped {len(data)} conversations to {args.output}")


def cmd_flash(args):
    """Show config, storage and usage at a glance."""
    from pathlib import Path
    from switchboard.config import get_config, resolve_api_key
    from switchboard.costs import CostTracker
    from switchboard.storage.sqlite_store import SQLiteStore

    cfg = get_config()
    p_cfg = cfg["provider"]

    print(BANNER)
    print("  Configuration")
    print(f"  ├─ Provider:  {p_cfg.get('name', 'anthropic')} ({p_cfg['url']})")
    print(f"  ├─ Model:     {p_cfg['default_model']}")
    print(f"  ├─ API key:   {'configured' if resolve_api_key(cfg) else 'missing'}")
    print(f"  ├─ SQLite:    {cfg['storage']['sqlite_path']}")
    print(f"  └─ Logging:   {cfg.get('logging', {}).get('level', 'INFO')}")

    if not Path(cfg["storage"]["sqlite_path"]).exists():
        print("\n  Storage: (no database yet — run 'switchboard dial' first)")
        return

    store = SQLiteStore(cfg["storage"]["sqlite_path"])
    try:
        stats = store.get_stats()
        usage = CostTracker(store, cfg.get("pricing", {})).get_stats(args.days)
    finally:
        store.close()

    convs = stats["conversations"]
    print()
    print("  Storage")
    print(f"  ├─ Conversations: {convs['active']} active, {convs['archived']} archived, {convs['deleted']} deleted")
    print(f"  ├─ Messages:      {stats['messages']}")
    print(f"  ├─ User msgs:     {stats['user_messages']}")
    print(f"  └─ Asst msgs:     {stats['assistant_messages']}")

    models = stats.get("models", {})
    if models:
        print()
        print("  Models")
        model_items = list(models.items())
        for i, (model, info) in enumerate(model_items):
            prefix = "└─" if i == len(model_items) - 1 else "├─"
            print(f"  {prefix} {model}: {info['conversations']} convs, "
                  f"{info['messages']} msgs, {info['tokens']:,} tokens")

    print()
    print(f"  Usage (last {usage['days_queried']} days)")
    print(f"  ├─ Tokens:    {usage['tokens']['input']:,} in / {usage['tokens']['output']:,} out")
    print(f"  └─ Est. cost: ${usage['total']:.4f}")


def cmd_jack(args):
    """Launch the switchboard terminal client."""
    from switchboard.tui.app import SwitchboardApp
    app = SwitchboardApp(url=args.url or DEFAULT_URL)
    app.run()


def cmd_tone(args):
    """Print the banner."""
    print(BANNER)


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under multiple names (operator + standard)."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="switchboard",
        description="Switchboard — put the call through.",
        epilog=(
            "Each command has an operator name and standard aliases.\n"
            "Example: 'switchboard dial' and 'switchboard start' do the same thing.\n"
            "Run 'switchboard <command> --help' for command-specific options."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"switchboard {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def add_url(p):
        p.add_argument("--url", "-u", default=None, help=f"Switchboard URL (default: {DEFAULT_URL})")

    # dial / start / serve / up
    def setup_dial(p):
        p.add_argument("--host", default=None, help="Override listen host")
        p.add_argument("--port", "-p", type=int, default=None, help="Override listen port")
        p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")

    _add_command(sub, ["dial", "start", "serve", "up"],
                 "Start the switchboard API server", cmd_dial, setup_dial)

    # ring / status / ping / health
    _add_command(sub, ["ring", "status", "ping", "health"],
                 "Ping a running switchboard instance", cmd_ring, add_url)

    # board / ls / list
    def setup_board(p):
        add_url(p)
        p.add_argument("--search", "-s", nargs="+", default=None, help="Filter by title")
        p.add_argument("--archived", "-a", action="store_true", help="Show archived conversations")
        p.add_argument("--collapse", "-c", action="append", default=None,
                       help="Collapse a group by label (can specify multiple times)")
        p.add_argument("--user", default=None, help="User id (default: server's default user)")

    _add_command(sub, ["board", "ls", "list"],
                 "Show the grouped conversation list", cmd_board, setup_board)

    # call / send / chat
    def setup_call(p):
        add_url(p)
        p.add_argument("message", nargs="+", help="Message to send")
        p.add_argument("--conversation", "-c", default=None,
                       help="Conversation id (default: start a new one)")
        p.add_argument("--model", "-m", default=None, help="Model override")

    _add_command(sub, ["call", "send", "chat"],
                 "Send a message and stream the reply", cmd_call, setup_call)

    # dump / export
    def setup_dump(p):
        p.add_argument("--output", "-o", default="conversations_export.json", help="Output file")
        p.add_argument("--pretty", action="store_true", help="Pretty-print JSON")
        p.add_argument("--include-deleted", action="store_true", help="Include soft-deleted conversations")

    _add_command(sub, ["dump", "export"],
                 "Export conversations to JSON", cmd_dump, setup_dump)

    # flash / info / stats
    def setup_flash(p):
        p.add_argument("--days", "-d", type=int, default=30,
                       help="Days of usage history to show (default: 30)")

    _add_command(sub, ["flash", "info", "stats"],
                 "Show config, storage and usage at a glance", cmd_flash, setup_flash)

    # jack / console / tui
    _add_command(sub, ["jack", "console", "tui"],
                 "Launch the terminal client", cmd_jack, add_url)

    # tone / banner
    _add_command(sub, ["tone", "banner"], "Print the banner", cmd_tone)

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()
    if not args.command:
        cmd_tone(args)
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
