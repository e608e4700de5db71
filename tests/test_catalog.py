"""Tests for the backup catalog."""
from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from abrctl.catalog import BackupCatalog, display_time_for, format_display_time

if TYPE_CHECKING:
    from conftest import ScriptedChooser


def _touch(root: Path, *names: str) -> None:
    root.mkdir(parents=True, exist_ok=True)
    for name in names:
        (root / name).write_bytes(b"x" * 10)


def test_catalog_filters_and_formats(tmp_path: Path) -> None:
    """Only archive files are listed, with a 12-hour display time."""
    _touch(tmp_path, "backup-2025-03-02T14-05-09.tar.gz", "notes.txt")

    entries = BackupCatalog(tmp_path).list_archives()

    assert len(entries) == 1
    entry = entries[0]
    assert entry.name == "backup-2025-03-02T14-05-09.tar.gz"
    assert entry.display_time == "02/03/2025 @ 2:05 PM"
    assert entry.size_bytes == 10
    assert entry.label() == "backup-2025-03-02T14-05-09.tar.gz (02/03/2025 @ 2:05 PM)"


def test_catalog_missing_root_is_empty(tmp_path: Path) -> None:
    """A missing backups folder is an empty catalog, not an error."""
    assert BackupCatalog(tmp_path / "absent").list_archives() == []


def test_catalog_orders_newest_first_and_unknown_last(tmp_path: Path) -> None:
    """Dated archives sort newest first; unparseable names trail by name."""
    _touch(
        tmp_path,
        "backup-2024-01-01T00-00-00.tar.gz",
        "backup-zeta.tar.gz",
        "backup-2025-06-01T08-30-00.tar.gz",
        "backup-alpha.tar.gz",
    )
    (tmp_path / "backup-dir.tar.gz").mkdir()

    entries = BackupCatalog(tmp_path).list_archives()

    assert [entry.name for entry in entries] == [
        "backup-2025-06-01T08-30-00.tar.gz",
        "backup-2024-01-01T00-00-00.tar.gz",
        "backup-alpha.tar.gz",
        "backup-zeta.tar.gz",
    ]
    assert entries[-1].display_time == "Unknown"
    assert entries[-1].to_dict()["created_at"] is None


@pytest.mark.parametrize(
    ("moment", "expected"),
    [
        (datetime(2025, 3, 2, 0, 7, tzinfo=UTC), "02/03/2025 @ 12:07 AM"),
        (datetime(2025, 3, 2, 11, 59, tzinfo=UTC), "02/03/2025 @ 11:59 AM"),
        (datetime(2025, 3, 2, 12, 0, tzinfo=UTC), "02/03/2025 @ 12:00 PM"),
        (datetime(2025, 12, 31, 23, 1, tzinfo=UTC), "31/12/2025 @ 11:01 PM"),
    ],
)
def test_format_display_time_boundaries(moment: datetime, expected: str) -> None:
    """Midnight and noon use 12, never 0."""
    assert format_display_time(moment) == expected


def test_display_time_for_unknown_name() -> None:
    """Names without a timestamp display as Unknown."""
    assert display_time_for("backup-manual.tar.gz") == "Unknown"


@pytest.mark.parametrize(
    "name",
    [
        "backup-2025-03-02T14-05-09 (1).tar.gz",
        "backup-2025-03-02T14-05-09-copy.tar.gz",
    ],
)
def test_display_time_ignores_text_after_timestamp(name: str) -> None:
    """Renamed copies of an archive still show when they were taken."""
    assert display_time_for(name) == "02/03/2025 @ 2:05 PM"


def test_find_accepts_bare_or_path_names(tmp_path: Path) -> None:
    """Lookups compare the file name only."""
    _touch(tmp_path, "backup-2025-03-02T14-05-09.tar.gz")
    catalog = BackupCatalog(tmp_path)

    assert catalog.find("backup-2025-03-02T14-05-09.tar.gz") is not None
    assert catalog.find("elsewhere/backup-2025-03-02T14-05-09.tar.gz") is not None
    assert catalog.find("backup-missing.tar.gz") is None


def test_select_prompts_until_one_archive(
    tmp_path: Path,
    scripted_chooser: type[ScriptedChooser],
) -> None:
    """The chooser is asked until it names exactly one listed archive."""
    _touch(tmp_path, "backup-2025-03-02T14-05-09.tar.gz", "backup-2025-03-03T09-00-00.tar.gz")
    chooser = scripted_chooser(choices=[None, "backup-2025-03-02T14-05-09.tar.gz"])

    selected = BackupCatalog(tmp_path).select(chooser)

    assert selected is not None
    assert selected.name == "backup-2025-03-02T14-05-09.tar.gz"
    prompt, values = chooser.prompts[0]
    assert prompt == "Select a backup file to restore"
    assert values[0] == "backup-2025-03-03T09-00-00.tar.gz"


def test_select_empty_catalog_returns_none(
    tmp_path: Path,
    scripted_chooser: type[ScriptedChooser],
) -> None:
    """An empty catalog never prompts."""
    chooser = scripted_chooser()

    assert BackupCatalog(tmp_path).select(chooser) is None
    assert chooser.prompts == []
