"""
Switchboard Console — jack into the line.
Textual-based terminal client for a running switchboard instance.
Entry point: switchboard jack (alias: console, tui)
"""
from __future__ import annotations
from pathlib import Path
from typing import ClassVar
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, TabbedContent, TabPane

from switchboard.client import DEFAULT_URL
from switchboard.tui.screens.base import SwitchboardPane
from switchboard.tui.screens.conversations import ConversationsScreen
from switchboard.tui.screens.status import StatusScreen

# ---------------------------------------------------------------------------
# Screen registry: add new screens here to extend the TUI
# Each entry: (key, label, tab_id, pane_class)
# ---------------------------------------------------------------------------
SCREEN_REGISTRY: list[tuple[str, str, str, type[SwitchboardPane]]] = [
    ("1", "Conversations", "board", ConversationsScreen),
    ("2", "Status",        "ring",  StatusScreen),
]


class SwitchboardApp(App):
    """Switchboard terminal client."""
    CSS_PATH = str(Path(__file__).parent / "styles" / "main.tcss")
    TITLE = "Switchboard Console"
    SUB_TITLE = "put the call through"
    BINDINGS: ClassVar[list[Binding]] = [
        Binding("q", "quit", "Hang up"),
        Binding("1", "switch_tab('board')", "Conversations", show=True),
        Binding("2", "switch_tab('ring')",  "Status",        show=True),
        Binding("r", "refresh_all",         "Refresh",       show=True),
    ]

    def __init__(self, url: str = DEFAULT_URL, **kwargs):
        super().__init__(**kwargs)
        self.url = url

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with TabbedContent(initial="board"):
            for _key, label, tab_id, pane_cls in SCREEN_REGISTRY:
                with TabPane(label, id=tab_id):
                    yield pane_cls(self.url)
        yield Footer()

    def action_switch_tab(self, tab_id: str) -> None:
        self.query_one(TabbedContent).active = tab_id

    def action_refresh_all(self) -> None:
        for pane in self.query(SwitchboardPane):
            pane.refresh_content()
