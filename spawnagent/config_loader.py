"""
Configuration loader for spawn-agent.
Merges defaults with per-project .spawnagent/config.yaml overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class AgentConfig(BaseModel):
    binary: str = "pi"
    instruction: str = "Execute the task described in the system prompt context."


class MultiplexerConfig(BaseModel):
    binary: str = "tmux"
    fallback_session: str = "pi-spawn"


class ArtifactConfig(BaseModel):
    name: str = "context.md"
    prefix: str = "pi-spawn-agent-"
    base_dir: str | None = None


class LimitsConfig(BaseModel):
    max_tokens: int = 4096
    temperature: float = 0.2
    poll_interval: float = 0.1
    completion_retries: int = 0


class SessionsConfig(BaseModel):
    dir: str = "~/.pi/agent/sessions"

    @property
    def path(self) -> Path:
        return Path(self.dir).expanduser()


class ReviewConfig(BaseModel):
    auto_approve: bool = False


class SpawnAgentConfig(BaseModel):
    model: str | None = None
    agent: AgentConfig = Field(default_factory=AgentConfig)
    multiplexer: MultiplexerConfig = Field(default_factory=MultiplexerConfig)
    artifact: ArtifactConfig = Field(default_factory=ArtifactConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

MODEL_ENV_VAR = "SPAWN_AGENT_MODEL"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(cwd: Path | None = None) -> SpawnAgentConfig:
    """
    Load config by merging:
      1. Built-in defaults (spawnagent/config.yaml)
      2. Project-level overrides (<cwd>/.spawnagent/config.yaml)
      3. SPAWN_AGENT_MODEL environment override
    """
    # 1. Built-in defaults
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    # 2. Project overrides
    if cwd:
        project_config = cwd / ".spawnagent" / "config.yaml"
        if project_config.exists():
            with open(project_config, "r") as f:
                overrides: dict[str, Any] = yaml.safe_load(f) or {}
            base = _deep_merge(base, overrides)

    # 3. Env override for the model; API keys are read by LiteLLM directly
    env_model = os.environ.get(MODEL_ENV_VAR, "").strip()
    if env_model:
        base["model"] = env_model

    return SpawnAgentConfig(**base)


def validate_api_keys() -> dict[str, bool]:
    """Check which API keys are available."""
    return {
        "ANTHROPIC_API_KEY": bool(os.environ.get("ANTHROPIC_API_KEY")),
        "OPENAI_API_KEY":    bool(os.environ.get("OPENAI_API_KEY")),
        "GEMINI_API_KEY":    bool(os.environ.get("GEMINI_API_KEY")),
        "OPENROUTER_API_KEY": bool(os.environ.get("OPENROUTER_API_KEY")),
    }
