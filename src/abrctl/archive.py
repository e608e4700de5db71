"""Archive naming and extraction helpers shared by capture and restore."""
from __future__ import annotations

import re
import shutil
import subprocess
from datetime import UTC, datetime
from pathlib import Path

from .errors import StepFailure

ARCHIVE_PREFIX = "backup-"
ARCHIVE_SUFFIX = ".tar.gz"
ARCHIVE_NAME_PATTERN = re.compile(
    r"^backup-(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
    r"T(?P<hour>\d{2})-(?P<minute>\d{2})-(?P<second>\d{2})"
)
DEFAULT_FILENAME_TEMPLATE = "backup-%Y-%m-%dT%H-%M-%S.tar.gz"


def archive_name(moment: datetime | None = None, template: str = DEFAULT_FILENAME_TEMPLATE) -> str:
    """Return the archive filename for *moment* (UTC now when omitted)."""
    stamp = moment or datetime.now(tz=UTC)
    if stamp.tzinfo is not None:
        stamp = stamp.astimezone(UTC)
    return stamp.strftime(template)


def is_archive_name(name: str) -> bool:
    """Return ``True`` when *name* looks like a catalogued archive."""
    return name.startswith(ARCHIVE_PREFIX) and name.endswith(ARCHIVE_SUFFIX)


def parse_archive_timestamp(name: str) -> datetime | None:
    """Return the UTC timestamp embedded in *name*, or ``None``."""
    match = ARCHIVE_NAME_PATTERN.match(name)
    if match is None:
        return None
    parts = {key: int(value) for key, value in match.groupdict().items()}
    try:
        return datetime(tzinfo=UTC, **parts)
    except ValueError:
        return None


def extract_archive(
    archive_path: Path,
    destination: Path,
    *,
    tar_bin: str = "tar",
    timeout: float | None = None,
) -> None:
    """Extract the gzip tarball *archive_path* into *destination*."""
    resolved = shutil.which(tar_bin)
    if resolved is None:
        raise StepFailure("extract", f"The '{tar_bin}' command is required to extract archives.")

    destination.mkdir(parents=True, exist_ok=True)
    cmd = [resolved, "-C", str(destination), "-xzf", str(archive_path)]
    try:
        result = subprocess.run(  # noqa: S603 - controlled command execution
            cmd,
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise StepFailure("extract", f"tar timed out after {timeout}s") from exc
    if result.returncode != 0:
        message = result.stderr or result.stdout or "tar command failed"
        raise StepFailure("extract", message.strip())


__all__ = [
    "ARCHIVE_NAME_PATTERN",
    "DEFAULT_FILENAME_TEMPLATE",
    "archive_name",
    "extract_archive",
    "is_archive_name",
    "parse_archive_timestamp",
]
