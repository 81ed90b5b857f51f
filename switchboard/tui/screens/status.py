"""
Status screen — `switchboard ring` in TUI form.
Health of the running instance, storage counts and recent usage.
Polls every few seconds.
"""
from __future__ import annotations
from rich.markup import escape
from textual import work
from textual.app import ComposeResult
from textual.containers import ScrollableContainer
from textual.timer import Timer
from textual.widgets import Static

import httpx

from switchboard.tui.screens.base import SwitchboardPane


def _status_markup(url: str, health: dict, stats: dict, usage: dict) -> str:
    kv = SwitchboardPane.kv
    key_ok = health.get("apiKeyConfigured")
    convs = stats.get("conversations", {})
    lines = [
        "[bold green]── Line ──[/bold green]",
        kv("instance", url),
        kv("status", health.get("status", "?"), "green"),
        kv("provider key", "configured" if key_ok else "NOT configured", "green" if key_ok else "yellow"),
        "",
        "[bold green]── Storage ──[/bold green]",
        kv("active", convs.get("active", 0)),
        kv("archived", convs.get("archived", 0)),
        kv("deleted", convs.get("deleted", 0), "dim"),
        kv("messages", stats.get("messages", 0)),
        kv("tokens", f"{stats.get('tokens', 0):,}"),
    ]
    models = stats.get("models", {})
    if models:
        lines += ["", "[bold green]── Models ──[/bold green]"]
        for model, info in models.items():
            lines.append(kv(model, f"{info['conversations']} convs, {info['tokens']:,} tokens"))

    tokens = usage.get("tokens", {})
    lines += [
        "",
        f"[bold green]── Usage (last {usage.get('days_queried', 30)} days) ──[/bold green]",
        kv("input", f"{tokens.get('input', 0):,}"),
        kv("output", f"{tokens.get('output', 0):,}"),
        kv("est. cost", f"${usage.get('total', 0.0):.4f}"),
    ]
    return "\n".join(lines)


class StatusScreen(SwitchboardPane):
    """Health, storage counts and usage of the running instance."""

    POLL_INTERVAL = 5.0

    def __init__(self, url: str, **kwargs):
        super().__init__(url, **kwargs)
        self._poller: Timer | None = None

    def compose(self) -> ComposeResult:
        with ScrollableContainer(id="status-scroll"):
            yield Static(id="status-body", markup=True)

    def on_mount(self) -> None:
        self.refresh_content()
        self._poller = self.set_interval(self.POLL_INTERVAL, self.refresh_content)

    def refresh_content(self) -> None:
        self._fetch()

    @work(thread=True, exclusive=True)
    def _fetch(self) -> None:
        try:
            with self.client() as client:
                body = _status_markup(self.url, client.health(), client.stats(), client.usage())
        except httpx.HTTPError as exc:
            body = (
                f"[red]✗ Dead line — nothing at {escape(self.url)}[/red]\n"
                f"[dim]  {escape(str(exc))}[/dim]"
            )
        self.app.call_from_thread(self._show, body)

    def _show(self, body: str) -> None:
        self.query_one("#status-body", Static).update(body)
