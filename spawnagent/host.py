"""
Host capabilities.

The handoff pipeline never talks to a concrete host. It only sees the
interfaces below: where the conversation comes from, which model is
selected, how the brief is reviewed, and how the user is told what
happened. Tests substitute fakes for every one of them.
"""

from __future__ import annotations

import os
import threading
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Any, Iterator, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict
from rich.console import Console

NoticeLevel = Literal["info", "warning", "error"]

# pi provider names → LiteLLM provider prefixes where they differ
_LITELLM_PROVIDERS = {
    "google": "gemini",
}

_PROVIDER_KEYS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GEMINI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "groq": "GROQ_API_KEY",
    "xai": "XAI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
}


class ModelRef(BaseModel):
    """A model as the host names it: optional provider plus model id."""
    model_config = ConfigDict(frozen=True)

    id: str
    provider: str | None = None

    @classmethod
    def parse(cls, value: str) -> "ModelRef":
        """Parse 'provider/id' or a bare 'id'."""
        value = value.strip()
        if "/" in value:
            provider, model_id = value.split("/", 1)
            return cls(id=model_id, provider=provider or None)
        return cls(id=value)

    @property
    def litellm_name(self) -> str:
        if not self.provider:
            return self.id
        provider = _LITELLM_PROVIDERS.get(self.provider, self.provider)
        return f"{provider}/{self.id}"

    def __str__(self) -> str:
        return f"{self.provider}/{self.id}" if self.provider else self.id


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

@runtime_checkable
class SessionSource(Protocol):
    def get_branch(self) -> list[dict[str, Any]]:
        """Entries on the active branch, oldest first."""
        ...

    def current_model(self) -> ModelRef | None:
        ...


class ModelRegistry(Protocol):
    def selected_model(self) -> ModelRef | None:
        ...

    def get_api_key(self, model: ModelRef) -> str | None:
        ...


class CompletionService(Protocol):
    def complete(
        self,
        model: str,
        messages: list[dict[str, str]],
        cancel: threading.Event | None = None,
        api_key: str | None = None,
    ) -> Any:
        """Return an object with `content: str` and `stop_reason: str`."""
        ...


class Reviewer(Protocol):
    def review(self, title: str, text: str) -> str | None:
        """Return the (possibly edited) text, or None when the human cancels."""
        ...


class Notifier(Protocol):
    def notify(self, message: str, level: NoticeLevel = "info") -> None:
        ...

    def working(self, message: str) -> AbstractContextManager[Any]:
        """Loading indicator shown while a stage is waiting."""
        ...


class Multiplexer(Protocol):
    binary: str

    def available(self) -> bool: ...

    def inside_session(self) -> bool: ...

    def server_running(self) -> bool: ...

    def list_sessions(self) -> list[str]: ...

    def new_window(self, cwd: Path, command: str, session: str | None = None) -> None: ...

    def new_session(self, name: str, cwd: Path, command: str) -> None: ...


# ---------------------------------------------------------------------------
# Concrete host pieces
# ---------------------------------------------------------------------------

class EnvModelRegistry:
    """Model selection from an explicit override or the session, keys from the environment."""

    def __init__(self, override: str | None = None, session: SessionSource | None = None):
        self._override = ModelRef.parse(override) if override and override.strip() else None
        self._session = session

    def selected_model(self) -> ModelRef | None:
        if self._override:
            return self._override
        if self._session is not None:
            return self._session.current_model()
        return None

    def get_api_key(self, model: ModelRef) -> str | None:
        env_var = _PROVIDER_KEYS.get(model.provider or "")
        if not env_var:
            return None
        return os.environ.get(env_var) or None


class ConsoleNotifier:
    _STYLES = {"info": "green", "warning": "yellow", "error": "red"}

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def notify(self, message: str, level: NoticeLevel = "info") -> None:
        style = self._STYLES.get(level, "white")
        self.console.print(f"[bold {style}]{message}[/]")

    @contextmanager
    def working(self, message: str) -> Iterator[None]:
        with self.console.status(f"[cyan]{message}[/] [dim](Ctrl-C to cancel)[/]"):
            yield
