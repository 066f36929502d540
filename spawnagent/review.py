"""
Review Gate — the human looks at the brief before anything is spawned.

The reviewer returns the brief (edited or not) or None for cancel.
It makes no decisions of its own.
"""

from __future__ import annotations

from typing import Callable, Optional

import click
from loguru import logger
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt

EditFn = Callable[..., Optional[str]]


class TerminalReviewer:
    """
    Shows the brief and asks: spawn it, edit it first, or cancel.

    Editing opens $EDITOR once; whatever is saved is the final brief.
    Ctrl-C or EOF at the prompt, or an editor that fails to run,
    counts as cancel.
    """

    def __init__(
        self,
        console: Console | None = None,
        auto_approve: bool = False,
        edit: EditFn | None = None,
    ):
        self.console = console or Console()
        self.auto_approve = auto_approve
        self._edit = edit or click.edit

    def review(self, title: str, text: str) -> str | None:
        if self.auto_approve:
            logger.debug("[REVIEW] Auto-approved")
            return text

        self.console.print(Panel(Markdown(text), title=title, border_style="cyan"))

        try:
            choice = Prompt.ask(
                "[bold]Spawn agent with this prompt?[/] [dim](y = spawn, e = edit, n = cancel)[/]",
                choices=["y", "e", "n"],
                default="y",
                console=self.console,
            )
        except (KeyboardInterrupt, EOFError):
            logger.debug("[REVIEW] Prompt interrupted")
            return None

        if choice == "n":
            return None
        if choice == "y":
            return text

        try:
            edited = self._edit(text, extension=".md", require_save=False)
        except click.ClickException as e:
            logger.warning(f"[REVIEW] Editor failed: {e.format_message()}")
            return None
        if edited is None:
            logger.debug("[REVIEW] Editor returned nothing")
            return None
        return edited
