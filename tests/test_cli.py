"""
Tests for the CLI parser and the commands that work without a server.
"""

import json
from argparse import Namespace

import pytest

from switchboard import cli
from switchboard import config as cfg_mod
from switchboard.sidebar import SidebarGroup, TODAY
from switchboard.storage.conversations import ConversationRepository
from switchboard.storage.messages import MessageRepository
from switchboard.storage.models import Conversation
from switchboard.storage.sqlite_store import SQLiteStore


@pytest.mark.parametrize("argv, func", [
    (["dial"], cli.cmd_dial),
    (["start"], cli.cmd_dial),
    (["serve", "--port", "3100"], cli.cmd_dial),
    (["ring"], cli.cmd_ring),
    (["status", "--url", "http://x"], cli.cmd_ring),
    (["ls", "--archived"], cli.cmd_board),
    (["list", "-s", "python"], cli.cmd_board),
    (["send", "hello", "world"], cli.cmd_call),
    (["export", "-o", "out.json"], cli.cmd_dump),
    (["info"], cli.cmd_flash),
    (["tui"], cli.cmd_jack),
    (["banner"], cli.cmd_tone),
])
def test_aliases(argv, func):
    args = cli.build_parser().parse_args(argv)
    assert args.func is func


def test_board_options():
    args = cli.build_parser().parse_args(["ls", "-c", "Today", "-c", "Older", "--search", "a", "b"])
    assert args.collapse == ["Today", "Older"]
    assert args.search == ["a", "b"]
    assert args.archived is False


def test_render_board():
    pinned = Conversation(id="abcdef1234", title="Pinned one", is_pinned=True)
    plain = Conversation(id="0123456789", title="")
    lines = cli.render_board([
        SidebarGroup(label=TODAY, conversations=[pinned, plain]),
        SidebarGroup(label="Older", conversations=[plain], collapsed=True),
    ])
    assert lines[0] == "  ▾ Today (2)"
    assert "Pinned one" in lines[1] and "abcdef12" in lines[1]
    assert "New Conversation" in lines[2]
    assert lines[3] == "  ▸ Older (1)"
    assert len(lines) == 4


def test_dump(tmp_path, monkeypatch, capsys):
    db = str(tmp_path / "cli.db")
    store = SQLiteStore(db)
    convs = ConversationRepository(store)
    kept = convs.create("u1", title="Kept")
    MessageRepository(store).append(kept.id, "user", "hello")
    convs.soft_delete(convs.create("u1", title="Gone").id)
    store.close()

    monkeypatch.setattr(cfg_mod, "_config", {"storage": {"sqlite_path": db}})
    out = tmp_path / "export.json"

    cli.cmd_dump(Namespace(output=str(out), pretty=True, include_deleted=False))
    data = json.loads(out.read_text())
    assert [c["title"] for c in data] == ["Kept"]
    assert data[0]["messages"][0]["content"] == "hello"
    assert "Dumped 1 conversations" in capsys.readouterr().out

    cli.cmd_dump(Namespace(output=str(out), pretty=False, include_deleted=True))
    assert len(json.loads(out.read_text())) == 2
