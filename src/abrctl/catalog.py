"""Catalog of archives available for restore."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .archive import is_archive_name, parse_archive_timestamp
from .prompts import Choice, ChoiceProvider, require_choice

UNKNOWN_TIME = "Unknown"


def format_display_time(moment: datetime) -> str:
    """Return ``DD/MM/YYYY @ H:MM AM|PM`` for *moment*."""
    period = "PM" if moment.hour >= 12 else "AM"
    hour = (moment.hour + 11) % 12 + 1
    return f"{moment:%d/%m/%Y} @ {hour}:{moment:%M} {period}"


def display_time_for(name: str) -> str:
    """Return the display time embedded in archive *name*, or ``Unknown``."""
    moment = parse_archive_timestamp(name)
    return format_display_time(moment) if moment is not None else UNKNOWN_TIME


@dataclass(frozen=True, slots=True)
class ArchiveDescriptor:
    """An archive in the catalog."""

    name: str
    path: Path
    created_at: datetime | None
    display_time: str
    size_bytes: int

    def label(self) -> str:
        """Return the label used in selection menus."""
        return f"{self.name} ({self.display_time})"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "name": self.name,
            "path": str(self.path),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "display_time": self.display_time,
            "size_bytes": self.size_bytes,
        }


class BackupCatalog:
    """Enumerate archives under *root*; nothing is cached between calls."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def list_archives(self) -> list[ArchiveDescriptor]:
        """Return archives newest first; unparseable names sort last by name."""
        if not self.root.is_dir():
            return []
        entries: list[ArchiveDescriptor] = []
        for path in self.root.iterdir():
            if not path.is_file() or not is_archive_name(path.name):
                continue
            created_at = parse_archive_timestamp(path.name)
            try:
                size = path.stat().st_size
            except OSError:
                size = 0
            entries.append(
                ArchiveDescriptor(
                    name=path.name,
                    path=path,
                    created_at=created_at,
                    display_time=(
                        format_display_time(created_at) if created_at else UNKNOWN_TIME
                    ),
                    size_bytes=size,
                )
            )
        dated = sorted(
            (entry for entry in entries if entry.created_at is not None),
            key=lambda entry: (entry.created_at, entry.name),
            reverse=True,
        )
        undated = sorted(
            (entry for entry in entries if entry.created_at is None),
            key=lambda entry: entry.name,
        )
        return dated + undated

    def find(self, name: str) -> ArchiveDescriptor | None:
        """Return the catalog entry called *name*, if present."""
        wanted = Path(name).name
        for entry in self.list_archives():
            if entry.name == wanted:
                return entry
        return None

    def select(self, chooser: ChoiceProvider) -> ArchiveDescriptor | None:
        """Ask *chooser* for exactly one archive; ``None`` when the catalog is empty."""
        entries = self.list_archives()
        if not entries:
            return None
        options = [Choice(value=entry.name, label=entry.label()) for entry in entries]
        chosen = require_choice(chooser, "Select a backup file to restore", options)
        return next(entry for entry in entries if entry.name == chosen)


__all__ = [
    "ArchiveDescriptor",
    "BackupCatalog",
    "UNKNOWN_TIME",
    "display_time_for",
    "format_display_time",
]
