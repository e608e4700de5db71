"""Interactive choice collaborators used by the workflows."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import typer
from rich.console import Console


@dataclass(frozen=True, slots=True)
class Choice:
    """A selectable option: the returned *value* and its display *label*."""

    value: str
    label: str


class ChoiceProvider(Protocol):
    """Source of operator decisions."""

    def choose_one(self, prompt: str, options: Sequence[Choice]) -> str | None:
        """Return the chosen option value, or ``None`` when nothing was picked."""
        ...

    def confirm(self, prompt: str, *, default: bool) -> bool:
        """Return the operator's yes/no answer."""
        ...


def require_choice(chooser: ChoiceProvider, prompt: str, options: Sequence[Choice]) -> str:
    """Ask *chooser* until it returns exactly one valid option value."""
    if not options:
        raise ValueError("At least one option is required.")
    allowed = {option.value for option in options}
    while True:
        value = chooser.choose_one(prompt, options)
        if value and value in allowed:
            return value


class ConsoleChoiceProvider:
    """Prompt on the terminal using a numbered menu.

    With ``use_stderr`` set, menus and prompts go to standard error so standard
    output carries nothing but the command's JSON result.
    """

    def __init__(self, console: Console, err_console: Console | None = None) -> None:
        self.console = console
        self.err_console = err_console or Console(stderr=True)
        self.use_stderr = False

    @property
    def output(self) -> Console:
        """Return the console menus are printed on."""
        return self.err_console if self.use_stderr else self.console

    def choose_one(self, prompt: str, options: Sequence[Choice]) -> str | None:
        out = self.output
        out.print(f"\n[bold]{prompt}[/bold]")
        for index, option in enumerate(options, start=1):
            out.print(f"  [cyan]{index}[/cyan]) {option.label}")
        raw = typer.prompt(
            "Enter a number",
            default="",
            show_default=False,
            err=self.use_stderr,
        )
        try:
            index = int(str(raw).strip())
        except ValueError:
            out.print("[yellow]Please select exactly one option.[/yellow]")
            return None
        if not 1 <= index <= len(options):
            out.print("[yellow]Please select exactly one option.[/yellow]")
            return None
        return options[index - 1].value

    def confirm(self, prompt: str, *, default: bool) -> bool:
        return typer.confirm(prompt, default=default, err=self.use_stderr)


__all__ = ["Choice", "ChoiceProvider", "ConsoleChoiceProvider", "require_choice"]
