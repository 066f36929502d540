from __future__ import annotations

import threading
from contextlib import nullcontext
from pathlib import Path
from typing import Any

import pytest

from spawnagent.config_loader import SpawnAgentConfig
from spawnagent.event_bus import EventBus
from spawnagent.host import ModelRef
from spawnagent.router import RouterResponse


def message_entry(role: str, text: str, **extra: Any) -> dict[str, Any]:
    return {"type": "message", "message": {"role": role, "content": [{"type": "text", "text": text}], **extra}}


class FakeSession:
    def __init__(self, entries: list[dict[str, Any]] | None = None, model: ModelRef | None = None):
        self.entries = entries or []
        self.model = model

    def get_branch(self) -> list[dict[str, Any]]:
        return list(self.entries)

    def current_model(self) -> ModelRef | None:
        return self.model


class FakeModels:
    def __init__(self, model: ModelRef | None = ModelRef(id="gpt-5", provider="openai"), api_key: str | None = "sk-test"):
        self.model = model
        self.api_key = api_key

    def selected_model(self) -> ModelRef | None:
        return self.model

    def get_api_key(self, model: ModelRef) -> str | None:
        return self.api_key


class FakeCompletion:
    """Records requests; replies with text, an abort, or an exception."""

    def __init__(self, content: str = "## Context\nWe built X.\n\n## Task\nDo X for teams.", stop_reason: str = "stop", error: Exception | None = None):
        self.content = content
        self.stop_reason = stop_reason
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def complete(self, model, messages, cancel=None, api_key=None, **kwargs) -> RouterResponse:
        self.calls.append({"model": model, "messages": messages, "cancel": cancel, "api_key": api_key})
        if self.error:
            raise self.error
        if self.stop_reason == "aborted":
            return RouterResponse(content="", model=model, stop_reason="aborted")
        return RouterResponse(content=self.content, model=model, stop_reason=self.stop_reason)


class FakeReviewer:
    def __init__(self, result: str | None | object = "unchanged"):
        self.result = result
        self.seen: list[str] = []

    def review(self, title: str, text: str) -> str | None:
        self.seen.append(text)
        if self.result == "unchanged":
            return text
        return self.result


class FakeNotifier:
    def __init__(self):
        self.notices: list[tuple[str, str]] = []
        self.working_messages: list[str] = []

    def notify(self, message: str, level: str = "info") -> None:
        self.notices.append((message, level))

    def working(self, message: str):
        self.working_messages.append(message)
        return nullcontext()


class FakeMux:
    def __init__(self, available: bool = True, inside: bool = False, running: bool = False, sessions: list[str] | None = None, fail_with: Exception | None = None):
        self.binary = "tmux"
        self._available = available
        self.inside = inside
        self.running = running
        self.sessions = sessions or []
        self.fail_with = fail_with
        self.commands: list[tuple] = []

    def available(self) -> bool:
        return self._available

    def inside_session(self) -> bool:
        return self.inside

    def server_running(self) -> bool:
        return self.running

    def list_sessions(self) -> list[str]:
        return list(self.sessions)

    def new_window(self, cwd: Path, command: str, session: str | None = None) -> None:
        self.commands.append(("new-window", session, cwd, command))
        if self.fail_with:
            raise self.fail_with

    def new_session(self, name: str, cwd: Path, command: str) -> None:
        self.commands.append(("new-session", name, cwd, command))
        if self.fail_with:
            raise self.fail_with


@pytest.fixture
def scratch(tmp_path: Path) -> Path:
    directory = tmp_path / "scratch"
    directory.mkdir()
    return directory


@pytest.fixture
def config(scratch: Path) -> SpawnAgentConfig:
    cfg = SpawnAgentConfig()
    cfg.artifact.base_dir = str(scratch)
    cfg.limits.poll_interval = 0.01
    return cfg


@pytest.fixture
def conversation() -> FakeSession:
    return FakeSession([
        {"type": "session", "id": "s1", "cwd": "/work"},
        message_entry("user", "Add a billing page for users"),
        {"type": "model_change", "provider": "openai", "modelId": "gpt-5"},
        message_entry("assistant", "Added src/billing.py and wired the route."),
    ])


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def cancel() -> threading.Event:
    return threading.Event()
