"""
Launcher — materialize the brief and start the worker.

The brief goes to a 0600 file in a fresh 0700 scratch directory and
the worker gets the file's path, never the brief itself: large
handoffs would otherwise hit command-line length limits.

On success the file is left for the worker to read at startup.
On failure it is discarded, best-effort.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from loguru import logger
from pydantic import BaseModel

from spawnagent.config_loader import SpawnAgentConfig
from spawnagent.host import Multiplexer
from spawnagent.state import ErrorKind, Outcome
from spawnagent.tmux import SpawnTarget, TmuxError, open_target, select_target


def shell_escape(value: str) -> str:
    """Single-quote `value` for a POSIX shell, always."""
    return "'" + value.replace("'", "'\\''") + "'"


def build_worker_command(binary: str, model_id: str, artifact_path: Path, instruction: str) -> str:
    return " ".join([
        binary,
        "--model", shell_escape(model_id),
        "--append-system-prompt", shell_escape(str(artifact_path)),
        shell_escape(instruction),
    ])


class TemporaryArtifact(BaseModel):
    directory: Path
    path: Path

    def discard(self) -> None:
        """
        Best-effort cleanup: delete the file, then the directory if it is
        now empty. Failures are logged and never raised, so they cannot
        replace the error that triggered the cleanup.
        """
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"[CLEANUP] Could not remove {self.path}: {e}")

        try:
            self.directory.rmdir()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug(f"[CLEANUP] Left {self.directory} in place: {e}")


def write_artifact(
    text: str,
    name: str = "context.md",
    prefix: str = "pi-spawn-agent-",
    base_dir: Path | None = None,
) -> TemporaryArtifact:
    """Write `text` to a new owner-only file in a uniquely named scratch directory."""
    directory = Path(tempfile.mkdtemp(prefix=prefix, dir=base_dir))
    path = directory / name
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError:
        TemporaryArtifact(directory=directory, path=path).discard()
        raise
    return TemporaryArtifact(directory=directory, path=path.resolve())


class SpawnReceipt(BaseModel):
    target: SpawnTarget
    location: str
    command: str
    artifact: TemporaryArtifact


class Launcher:
    """
    Writes the artifact, builds the worker command, picks the tmux target
    and runs the one tmux command. Fire-and-forget: nothing is tracked
    after tmux returns.
    """

    def __init__(self, config: SpawnAgentConfig, multiplexer: Multiplexer):
        self.config = config
        self.mux = multiplexer

    def launch(self, brief: str, model_id: str, cwd: Path) -> Outcome[SpawnReceipt]:
        artifact_cfg = self.config.artifact
        base_dir = Path(artifact_cfg.base_dir).expanduser() if artifact_cfg.base_dir else None

        try:
            artifact = write_artifact(brief, artifact_cfg.name, artifact_cfg.prefix, base_dir)
        except OSError as e:
            logger.error(f"[LAUNCH] Could not write brief: {e}")
            return Outcome.fail(ErrorKind.SPAWN_FAILED, f"Failed to spawn agent: {e}", detail=repr(e))

        logger.info(f"[LAUNCH] Brief written to {artifact.path}")

        command = build_worker_command(
            self.config.agent.binary,
            model_id,
            artifact.path,
            self.config.agent.instruction,
        )

        try:
            target = select_target(self.mux, cwd, self.config.multiplexer.fallback_session)
            location = open_target(self.mux, target, command)
        except (TmuxError, OSError) as e:
            logger.error(f"[LAUNCH] Spawn failed: {e}")
            artifact.discard()
            return Outcome.fail(ErrorKind.SPAWN_FAILED, f"Failed to spawn agent: {e}", detail=str(e))

        logger.info(f"[LAUNCH] Worker opened in {location}")
        return Outcome.ok(SpawnReceipt(
            target=target,
            location=location,
            command=command,
            artifact=artifact,
        ))
