"""
Conversations screen — the sidebar in TUI form.
Search box on top, conversations grouped by recency in a tree below.
Collapsing a group is remembered in SidebarState for the session, so a
refresh or a new search keeps it folded. `a` flips between the active
and archived views.
"""
from __future__ import annotations
from rich.markup import escape
from textual import work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.widgets import Input, Static, Tree

import httpx

from switchboard.sidebar import SidebarGroup, SidebarState, build_sidebar
from switchboard.storage.models import Conversation, DEFAULT_TITLE
from switchboard.tui.screens.base import SwitchboardPane


def _leaf_label(conv: Conversation) -> str:
    pin = "📌 " if conv.is_pinned else ""
    return f"{pin}{escape(conv.title or DEFAULT_TITLE)}"


def _detail_markup(conv: Conversation) -> str:
    lines = [
        f"[bold]{escape(conv.title or DEFAULT_TITLE)}[/bold]",
        SwitchboardPane.kv("id", conv.id, "dim"),
        SwitchboardPane.kv("model", conv.model),
        SwitchboardPane.kv("messages", conv.message_count),
        SwitchboardPane.kv("tokens", f"{conv.token_count:,}"),
        SwitchboardPane.kv("created", conv.created_at, "dim"),
        SwitchboardPane.kv("last message", conv.last_message_at or "never", "dim"),
    ]
    if conv.is_archived:
        lines.append("[yellow]archived[/yellow]")
    return "\n".join(lines)


class ConversationsScreen(SwitchboardPane):
    """Grouped, searchable conversation list."""

    BINDINGS = [
        Binding("a", "toggle_archived", "Archived"),
    ]

    def __init__(self, url: str, **kwargs):
        super().__init__(url, **kwargs)
        self.state = SidebarState()
        self._conversations: list[Conversation] = []

    def compose(self) -> ComposeResult:
        yield Input(placeholder="Search conversations…", id="conv-search")
        yield Static("", id="conv-status", markup=True)
        tree: Tree = Tree("Conversations", id="conv-tree")
        tree.show_root = False
        yield tree
        yield Static("", id="conv-detail", markup=True)

    def on_mount(self) -> None:
        self.refresh_content()

    # ── Data ─────────────────────────────────────────────────────────────────
    def refresh_content(self) -> None:
        self._fetch()

    @work(thread=True, exclusive=True)
    def _fetch(self) -> None:
        try:
            with self.client() as client:
                convs = client.list_conversations()
        except httpx.HTTPError as exc:
            self.app.call_from_thread(self._show_offline, str(exc))
            return
        self.app.call_from_thread(self._loaded, convs)

    def _loaded(self, convs: list[Conversation]) -> None:
        self._conversations = convs
        self._render()

    def _show_offline(self, reason: str) -> None:
        self.query_one("#conv-status", Static).update(
            f"[red]✗ Cannot reach {escape(self.url)}[/red]  [dim]{escape(reason)}[/dim]\n"
            "[dim]  Start switchboard first: [/dim][cyan]switchboard dial[/cyan]"
        )
        self.query_one("#conv-tree", Tree).clear()

    # ── Rendering ────────────────────────────────────────────────────────────
    def _render(self) -> None:
        groups = build_sidebar(self._conversations, self.state)
        view = "archived" if self.state.show_archived else "active"
        shown = sum(len(g.conversations) for g in groups)
        self.query_one("#conv-status", Static).update(
            f"[dim]{view}  │  {shown} shown of {len(self._conversations)}  │  "
            f"a: toggle archived  │  r: refresh[/dim]"
        )
        self._fill_tree(groups)

    def _fill_tree(self, groups: list[SidebarGroup]) -> None:
        tree = self.query_one("#conv-tree", Tree)
        tree.clear()
        for group in groups:
            node = tree.root.add(
                f"[bold]{group.label}[/bold] [dim]({len(group.conversations)})[/dim]",
                data=group.label,
                expand=not group.collapsed,
            )
            for conv in group.conversations:
                node.add_leaf(_leaf_label(conv), data=conv)
        if not groups:
            tree.root.add_leaf("[dim]No conversations[/dim]")

    def _sync_collapse(self, node, collapsed: bool) -> None:
        label = node.data
        if not isinstance(label, str):
            return
        if (label in self.state.collapsed) != collapsed:
            self.state.toggle_group(label)

    # ── Events ───────────────────────────────────────────────────────────────
    def on_input_changed(self, event: Input.Changed) -> None:
        self.state.query = event.value
        self._render()

    def on_tree_node_collapsed(self, event: Tree.NodeCollapsed) -> None:
        self._sync_collapse(event.node, True)

    def on_tree_node_expanded(self, event: Tree.NodeExpanded) -> None:
        self._sync_collapse(event.node, False)

    def on_tree_node_highlighted(self, event: Tree.NodeHighlighted) -> None:
        detail = self.query_one("#conv-detail", Static)
        if isinstance(event.node.data, Conversation):
            detail.update(_detail_markup(event.node.data))
        else:
            detail.update("")

    def action_toggle_archived(self) -> None:
        self.state.show_archived = not self.state.show_archived
        self._render()
