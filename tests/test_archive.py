"""Tests for archive naming and extraction helpers."""
from __future__ import annotations

import shutil
import tarfile
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest

from abrctl.archive import (
    archive_name,
    extract_archive,
    is_archive_name,
    parse_archive_timestamp,
)
from abrctl.errors import StepFailure


def test_archive_name_uses_utc() -> None:
    """Local timestamps are normalised to UTC before formatting."""
    moment = datetime(2025, 3, 2, 16, 5, 9, tzinfo=timezone(timedelta(hours=2)))

    assert archive_name(moment) == "backup-2025-03-02T14-05-09.tar.gz"


def test_parse_round_trip() -> None:
    """Every generated name parses back to the same instant."""
    moment = datetime(2024, 12, 31, 23, 59, 58, tzinfo=UTC)

    assert parse_archive_timestamp(archive_name(moment)) == moment


@pytest.mark.parametrize(
    "name",
    [
        "backup-latest.tar.gz",
        "backup-2025-13-02T14-05-09.tar.gz",
        "backup-2025-03-02 14-05-09.tar.gz",
        "snapshot-2025-03-02T14-05-09.tar.gz",
    ],
)
def test_parse_rejects_other_names(name: str) -> None:
    """Names that do not carry a valid timestamp yield ``None``."""
    assert parse_archive_timestamp(name) is None


def test_parse_tolerates_suffix_after_timestamp() -> None:
    """Only the leading timestamp matters, as for copies saved by a browser."""
    assert parse_archive_timestamp("backup-2025-03-02T14-05-09 (1).tar.gz") == datetime(
        2025, 3, 2, 14, 5, 9, tzinfo=UTC
    )


def test_is_archive_name() -> None:
    """Only ``backup-*.tar.gz`` files belong to the catalog."""
    assert is_archive_name("backup-latest.tar.gz")
    assert not is_archive_name("notes.txt")
    assert not is_archive_name("backup-2025.tar")


def test_extract_requires_tar_binary(tmp_path: Path) -> None:
    """A missing archive tool fails the extract step."""
    with pytest.raises(StepFailure) as excinfo:
        extract_archive(tmp_path / "a.tar.gz", tmp_path / "out", tar_bin="tar-does-not-exist")

    assert excinfo.value.step == "extract"


@pytest.mark.skipif(shutil.which("tar") is None, reason="tar not available")
def test_extract_with_system_tar(tmp_path: Path) -> None:
    """The archive's ``backup/`` folder lands under the destination."""
    source = tmp_path / "src" / "backup" / "appwrite_appwrite-uploads"
    source.mkdir(parents=True)
    (source / "file.txt").write_text("payload", encoding="utf-8")
    archive = tmp_path / "backup-2025-03-02T14-05-09.tar.gz"
    with tarfile.open(archive, "w:gz") as bundle:
        bundle.add(tmp_path / "src" / "backup", arcname="backup")

    extract_archive(archive, tmp_path / "tmp")

    extracted = tmp_path / "tmp" / "backup" / "appwrite_appwrite-uploads" / "file.txt"
    assert extracted.read_text(encoding="utf-8") == "payload"


@pytest.mark.skipif(shutil.which("tar") is None, reason="tar not available")
def test_extract_corrupt_archive_fails(tmp_path: Path) -> None:
    """A corrupt archive is a failed extract step."""
    archive = tmp_path / "backup.tar.gz"
    archive.write_bytes(b"definitely not gzip")

    with pytest.raises(StepFailure) as excinfo:
        extract_archive(archive, tmp_path / "tmp")

    assert excinfo.value.step == "extract"
