"""
spawn-agent CLI — The Interface

  spawn-agent run <goal...>     (hand off the current session)
  spawn-agent status            (check tools, keys, and where a worker would open)

Examples:
  spawn-agent run now implement this for teams as well
  spawn-agent run execute phase one of the plan
  spawn-agent run check other places that need this fix
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.table import Table

from spawnagent.config_loader import load_config, validate_api_keys
from spawnagent.controller import HandoffController
from spawnagent.host import ConsoleNotifier, EnvModelRegistry
from spawnagent.identity import BANNER, __codename__, __tagline__, __version__
from spawnagent.review import TerminalReviewer
from spawnagent.session import JsonlSessionSource, find_latest_session
from spawnagent.state import PipelineState
from spawnagent.tmux import TmuxClient, TmuxError, select_target

# Load .env from current directory or the agent home
load_dotenv()
load_dotenv(Path.home() / ".pi" / "agent" / ".env")

app = typer.Typer(
    name="spawn-agent",
    help=f"{__codename__} — {__tagline__}\nSpawn a new agent in tmux with context from the current session.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_cyan]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def run(
    goal: Optional[List[str]] = typer.Argument(None, help="What the new agent should do next"),
    session: Optional[Path] = typer.Option(None, "--session", "-s", help="Session file to hand off (default: latest for --cwd)"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model for the brief and the worker (provider/id)"),
    cwd: Optional[Path] = typer.Option(None, "--cwd", "-C", help="Working directory for the new agent"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the review step and spawn the generated prompt as-is"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Distill this session into a brief and spawn a new agent with it."""
    _configure_logging(verbose)

    work_dir = (cwd or Path.cwd()).resolve()
    if not work_dir.is_dir():
        console.print(f"[red]Directory not found: {work_dir}[/]")
        raise typer.Exit(1)

    config = load_config(work_dir)
    if model:
        config.model = model

    session_path = session.expanduser().resolve() if session else find_latest_session(work_dir, config.sessions.path)
    if session_path is None or not session_path.is_file():
        console.print(f"[red]No session found for {work_dir}. Pass --session <file>.[/]")
        raise typer.Exit(1)
    logger.debug(f"[CLI] Session: {session_path}")

    source = JsonlSessionSource(session_path)
    controller = HandoffController(
        config=config,
        session=source,
        models=EnvModelRegistry(config.model, source),
        reviewer=TerminalReviewer(console, auto_approve=yes or config.review.auto_approve),
        notifier=ConsoleNotifier(console),
        multiplexer=TmuxClient(config.multiplexer.binary),
        cwd=work_dir,
    )

    if verbose:
        controller.events.subscribe(
            lambda e: logger.debug(f"[EVENTS] {e.event_type} ({e.stage}) {e.payload}")
        )

    result = controller.run(" ".join(goal or []))

    if verbose and result.tokens_used:
        console.print(f"[dim]Brief: {result.tokens_used} tokens, ${result.cost:.4f}[/]")

    if result.state == PipelineState.SPAWNED:
        console.print(f"[dim]Context prompt: {result.artifact_path}[/]")
    elif result.state == PipelineState.FAILED:
        raise typer.Exit(1)


@app.command()
def status(
    cwd: Optional[Path] = typer.Option(None, "--cwd", "-C", help="Working directory to check"),
):
    """Check spawn-agent configuration and readiness."""
    _print_banner()

    work_dir = (cwd or Path.cwd()).resolve()
    config = load_config(work_dir)

    # API Keys
    keys = validate_api_keys()
    key_table = Table(title="API Keys", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")

    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)

    console.print(key_table)

    # Tools
    tools_table = Table(title="System Tools", border_style="cyan")
    tools_table.add_column("Tool")
    tools_table.add_column("Status")

    for tool in [config.multiplexer.binary, config.agent.binary]:
        found = shutil.which(tool)
        s = f"[green]✓ {found}[/]" if found else "[red]✗ Not found[/]"
        tools_table.add_row(tool, s)

    console.print(tools_table)

    # Session + model
    session_path = find_latest_session(work_dir, config.sessions.path)
    source = JsonlSessionSource(session_path) if session_path else None
    selected = EnvModelRegistry(config.model, source).selected_model()

    console.print("\n[bold]Handoff:[/]")
    console.print(f"  Session: {session_path or '[dim]none found[/]'}")
    console.print(f"  Model:   {selected or '[red]none selected[/]'}")
    console.print(f"  Worker:  {config.agent.binary}")

    # Where a worker would open right now
    mux = TmuxClient(config.multiplexer.binary)
    if mux.available():
        try:
            target = select_target(mux, work_dir, config.multiplexer.fallback_session)
            console.print(f"  Target:  {target.label}")
        except TmuxError as e:
            console.print(f"  Target:  [red]{e}[/]")
    else:
        console.print(f"  Target:  [red]{config.multiplexer.binary} not installed[/]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{msg}[/]", highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"[dim]{msg}[/]", highlight=False),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
