"""Rich rendering for workflow progress, tables and the startup banner."""
from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.table import Table

from . import __version__
from .catalog import ArchiveDescriptor
from .remnants import Remnant
from .workflows import VolumeSize

_LEVEL_STYLE = {
    "info": "blue",
    "success": "green",
    "warning": "yellow",
    "error": "red",
}


def render_banner(console: Console) -> None:
    """Print the startup banner."""
    console.print(f"[bold #FD366E]abrctl[/bold #FD366E] [dim]{__version__}[/dim]")
    console.print("[bold blue]Appwrite Backup Restore[/bold blue]")
    console.print(
        "[yellow]Complete backups and clean restorations of an Appwrite stack, "
        "keeping data consistent.[/yellow]"
    )
    console.rule(style="blue")


def format_size(size_bytes: int) -> str:
    """Return *size_bytes* in a compact binary unit."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    value = size_bytes / 1024
    for unit in ("KiB", "MiB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GiB"


def remnants_table(remnants: Sequence[Remnant]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    for remnant in remnants:
        table.add_row(remnant.name, remnant.kind.value)
    return table


def volume_sizes_table(sizes: Sequence[VolumeSize]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Volume Name", style="bold")
    table.add_column("Size")
    for entry in sizes:
        table.add_row(entry.name, entry.size if entry.size else "[red]n/a[/red]")
    return table


def catalog_table(entries: Sequence[ArchiveDescriptor]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Archive", style="bold")
    table.add_column("Created")
    table.add_column("Size", justify="right")
    if not entries:
        table.add_row("(none)", "", "")
    for entry in entries:
        table.add_row(entry.name, entry.display_time, format_size(entry.size_bytes))
    return table


class ConsolePresenter:
    """Render workflow progress on a Rich console."""

    def __init__(self, console: Console, *, quiet: bool = False) -> None:
        self.console = console
        self.quiet = quiet

    def status(self, message: str, *, level: str = "info") -> None:
        if self.quiet:
            return
        style = _LEVEL_STYLE.get(level, "white")
        self.console.print(f"[{style}]{message}[/{style}]")

    def show_remnants(self, remnants: Sequence[Remnant]) -> None:
        if self.quiet:
            return
        self.console.print("[yellow]Remnants from a previous installation:[/yellow]")
        self.console.print(remnants_table(remnants))

    def show_volume_sizes(self, sizes: Sequence[VolumeSize]) -> None:
        if self.quiet:
            return
        self.console.print(volume_sizes_table(sizes))


__all__ = [
    "ConsolePresenter",
    "catalog_table",
    "format_size",
    "remnants_table",
    "render_banner",
    "volume_sizes_table",
]
