"""
tmux — Topology Selector and multiplexer client.

Decides where the new worker window opens, in this order:
  1. Inside tmux      → new window in the current session
  2. Server running   → new window in the first listed session
  3. No server at all → new detached session with a fixed name

A caller inside tmux always gets its own session, however many others
exist. The fallback name never changes between runs so there is always
one predictable thing to attach to.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from enum import Enum
from pathlib import Path
from typing import Mapping

from loguru import logger
from pydantic import BaseModel, ConfigDict

from spawnagent.host import Multiplexer


class TmuxError(Exception):
    pass


class TmuxClient:
    """Thin wrapper over the tmux CLI."""

    def __init__(self, binary: str = "tmux", env: Mapping[str, str] | None = None, timeout: int = 15):
        self.binary = binary
        self.timeout = timeout
        self._env = env if env is not None else os.environ

    def available(self) -> bool:
        """Is the tmux binary on PATH?"""
        return shutil.which(self.binary) is not None

    def inside_session(self) -> bool:
        return bool(self._env.get("TMUX"))

    def server_running(self) -> bool:
        try:
            result = subprocess.run(
                [self.binary, "list-sessions"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"[TMUX] list-sessions failed: {e}")
            return False
        return result.returncode == 0

    def list_sessions(self) -> list[str]:
        """Session names in the order tmux lists them."""
        out = self._run("list-sessions", "-F", "#{session_name}")
        return [line for line in out.splitlines() if line.strip()]

    def new_window(self, cwd: Path, command: str, session: str | None = None) -> None:
        args = ["new-window"]
        if session:
            # Exact session match; a bare name like "0" resolves as a window index
            args += ["-t", f"={session}:"]
        args += ["-c", str(cwd), command]
        self._run(*args)

    def new_session(self, name: str, cwd: Path, command: str) -> None:
        self._run("new-session", "-d", "-s", name, "-c", str(cwd), command)

    def _run(self, *args: str) -> str:
        cmd = [self.binary, *args]
        logger.debug(f"[TMUX] Running: {' '.join(cmd[:3])} ...")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TmuxError(f"{self.binary} {args[0]} failed: {e}") from e
        if result.returncode != 0:
            stderr = result.stderr.strip() or f"exit code {result.returncode}"
            raise TmuxError(f"{self.binary} {args[0]} failed: {stderr}")
        return result.stdout


# ---------------------------------------------------------------------------
# Topology
# ---------------------------------------------------------------------------

class SpawnStrategy(str, Enum):
    CURRENT_SESSION = "new_window_current_session"
    NAMED_SESSION = "new_window_named_session"
    DETACHED_SESSION = "new_detached_session"


class SpawnTarget(BaseModel):
    """Where the worker will open. Computed fresh for every handoff."""
    model_config = ConfigDict(frozen=True)

    strategy: SpawnStrategy
    label: str
    cwd: Path
    session: str | None = None


def select_target(mux: Multiplexer, cwd: Path, fallback_session: str) -> SpawnTarget:
    """Pick a spawn strategy from the multiplexer's current state. First match wins."""
    sessions: list[str] = []

    if mux.inside_session():
        target = SpawnTarget(
            strategy=SpawnStrategy.CURRENT_SESSION,
            label="new tmux window",
            cwd=cwd,
        )
    else:
        if mux.server_running():
            sessions = mux.list_sessions()

        if sessions:
            first = sessions[0]
            target = SpawnTarget(
                strategy=SpawnStrategy.NAMED_SESSION,
                label=f'new window in tmux session "{first}"',
                cwd=cwd,
                session=first,
            )
        else:
            # No server, or a server that just lost its last session
            target = SpawnTarget(
                strategy=SpawnStrategy.DETACHED_SESSION,
                label=f'new tmux session "{fallback_session}" (attach with: tmux attach -t {fallback_session})',
                cwd=cwd,
                session=fallback_session,
            )

    logger.debug(f"[TMUX] Target: {target.strategy.value} ({target.label})")
    return target


def open_target(mux: Multiplexer, target: SpawnTarget, command: str) -> str:
    """Run the one tmux command for `target`. Returns where the worker was opened."""
    if target.strategy == SpawnStrategy.CURRENT_SESSION:
        mux.new_window(target.cwd, command)
    elif target.strategy == SpawnStrategy.NAMED_SESSION:
        mux.new_window(target.cwd, command, session=target.session)
    else:
        mux.new_session(target.session or "", target.cwd, command)
    return target.label
