import subprocess
from pathlib import Path
from types import SimpleNamespace

import pytest
from conftest import FakeMux

from spawnagent.tmux import SpawnStrategy, TmuxClient, TmuxError, open_target, select_target

CWD = Path("/work/project")


def test_inside_tmux_uses_current_session_even_with_others():
    mux = FakeMux(inside=True, running=True, sessions=["dev", "build"])

    target = select_target(mux, CWD, "pi-spawn")

    assert target.strategy == SpawnStrategy.CURRENT_SESSION
    assert target.label == "new tmux window"
    assert open_target(mux, target, "pi") == "new tmux window"
    assert mux.commands == [("new-window", None, CWD, "pi")]


def test_running_server_uses_first_listed_session():
    mux = FakeMux(running=True, sessions=["dev", "build"])

    target = select_target(mux, CWD, "pi-spawn")

    assert target.strategy == SpawnStrategy.NAMED_SESSION
    assert target.session == "dev"
    assert target.label == 'new window in tmux session "dev"'
    open_target(mux, target, "pi")
    assert mux.commands == [("new-window", "dev", CWD, "pi")]


def test_no_server_creates_fixed_detached_session():
    mux = FakeMux()

    first = select_target(mux, CWD, "pi-spawn")
    second = select_target(mux, CWD, "pi-spawn")

    assert first == second
    assert first.strategy == SpawnStrategy.DETACHED_SESSION
    assert first.label == 'new tmux session "pi-spawn" (attach with: tmux attach -t pi-spawn)'
    open_target(mux, first, "pi")
    assert mux.commands == [("new-session", "pi-spawn", CWD, "pi")]


def test_server_without_sessions_falls_back_to_detached():
    target = select_target(FakeMux(running=True, sessions=[]), CWD, "pi-spawn")
    assert target.strategy == SpawnStrategy.DETACHED_SESSION


# ---------------------------------------------------------------------------
# TmuxClient against a fake subprocess
# ---------------------------------------------------------------------------

@pytest.fixture
def recorded(monkeypatch):
    calls = []
    replies = {}

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        reply = replies.get(cmd[1], (0, "", ""))
        if isinstance(reply, Exception):
            raise reply
        code, out, err = reply
        return SimpleNamespace(returncode=code, stdout=out, stderr=err)

    monkeypatch.setattr(subprocess, "run", fake_run)
    return SimpleNamespace(calls=calls, replies=replies)


def test_client_detects_tmux_env():
    assert TmuxClient(env={"TMUX": "/tmp/tmux-1000/default,1,0"}).inside_session()
    assert not TmuxClient(env={}).inside_session()


def test_client_lists_sessions_in_order(recorded):
    recorded.replies["list-sessions"] = (0, "dev\nbuild\n", "")

    client = TmuxClient(env={})

    assert client.server_running()
    assert client.list_sessions() == ["dev", "build"]
    assert recorded.calls[-1] == ["tmux", "list-sessions", "-F", "#{session_name}"]


def test_client_no_server(recorded):
    recorded.replies["list-sessions"] = (1, "", "no server running on /tmp/tmux-1000/default")
    assert not TmuxClient(env={}).server_running()

    recorded.replies["list-sessions"] = FileNotFoundError("tmux")
    assert not TmuxClient(env={}).server_running()


def test_client_builds_window_and_session_commands(recorded):
    client = TmuxClient(env={})

    client.new_window(CWD, "pi --model 'gpt-5'", session="dev")
    client.new_session("pi-spawn", CWD, "pi")

    assert recorded.calls == [
        ["tmux", "new-window", "-t", "=dev:", "-c", str(CWD), "pi --model 'gpt-5'"],
        ["tmux", "new-session", "-d", "-s", "pi-spawn", "-c", str(CWD), "pi"],
    ]


def test_client_raises_on_failed_command(recorded):
    recorded.replies["new-window"] = (1, "", "can't find session: dev")

    with pytest.raises(TmuxError, match="can't find session"):
        TmuxClient(env={}).new_window(CWD, "pi", session="dev")


def test_client_targets_numeric_session_exactly(recorded):
    mux = TmuxClient(env={})
    recorded.replies["list-sessions"] = (0, "0\n1\n", "")

    target = select_target(mux, CWD, "pi-spawn")
    open_target(mux, target, "pi")

    assert target.session == "0"
    assert recorded.calls[-1] == ["tmux", "new-window", "-t", "=0:", "-c", str(CWD), "pi"]


def test_current_session_window_has_no_target(recorded):
    TmuxClient(env={"TMUX": "/tmp/tmux-1000/default,1,0"}).new_window(CWD, "pi")

    assert recorded.calls == [["tmux", "new-window", "-c", str(CWD), "pi"]]
