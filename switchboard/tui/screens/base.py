"""
Base class for all switchboard TUI panes.
Every pane talks to a running instance through SwitchboardClient and provides:
  - refresh_content() hook (called by the app-level refresh action)
  - small markup helpers for section headers and key-value rows
"""
from __future__ import annotations
from rich.markup import escape
from textual.widget import Widget
from textual.widgets import Static

from switchboard.client import SwitchboardClient


class SwitchboardPane(Widget):
    """
    Base widget for all TUI panel content.
    Subclass this, implement compose() and optionally refresh_content().
    The app calls refresh_content() on all panes when 'r' is pressed.
    """
    DEFAULT_CSS = """
    SwitchboardPane {
        height: 1fr;
        width: 1fr;
    }
    """

    def __init__(self, url: str, **kwargs):
        super().__init__(**kwargs)
        self.url = url

    def client(self) -> SwitchboardClient:
        return SwitchboardClient(self.url, timeout=5)

    def refresh_content(self) -> None:
        """Called by the app to request a data refresh. Override in subclasses."""
        self.refresh()

    # ── Helpers ──────────────────────────────────────────────────────────────
    @staticmethod
    def kv(key: str, value, style: str = "white") -> str:
        """Format a key-value pair as Rich markup."""
        return f"[cyan]{key:<16}[/cyan] [{style}]{escape(str(value))}[/{style}]"

    @staticmethod
    def section(title: str) -> Static:
        """Return a styled section header widget."""
        return Static(f"[bold green]── {title} ──[/bold green]", markup=True)
