"""Configuration loader for abrctl.

Values are read from several sources, later ones winning:

1. Built-in defaults.
2. ``/etc/abrctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``ABRCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export ABRCTL_DOCKER__COMMAND_TIMEOUT=600
    export ABRCTL_RESTORE__KEEP_STAGING_ON_FAILURE=true

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. Relative paths (install folder, backups folder, staged
archive) resolve against ``work_dir``, which defaults to the current working
directory. The result is exposed as immutable ``dataclasses``.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load abrctl configuration. Install with "
        "`pip install abrctl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "ABRCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

APPWRITE_VOLUMES: tuple[str, ...] = (
    "appwrite_appwrite-redis",
    "appwrite_appwrite-cache",
    "appwrite_appwrite-builds",
    "appwrite_appwrite-config",
    "appwrite_appwrite-executor",
    "appwrite_appwrite-mariadb",
    "appwrite_appwrite-uploads",
    "appwrite_appwrite-functions",
    "appwrite_appwrite-certificates",
)


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class StackConfig:
    """Identity of the managed stack on the Docker host."""

    project: str
    install_dir: Path
    image_namespace: str
    volumes: tuple[str, ...]

    @property
    def compose_file(self) -> Path:
        """Return the compose definition inside the install folder."""
        return self.install_dir / "docker-compose.yml"

    @property
    def env_file(self) -> Path:
        """Return the stack's ``.env`` file inside the install folder."""
        return self.install_dir / ".env"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "project": self.project,
            "install_dir": str(self.install_dir),
            "image_namespace": self.image_namespace,
            "volumes": list(self.volumes),
        }


@dataclass(frozen=True)
class DockerConfig:
    """External tool locations and call limits."""

    docker_bin: str = "docker"
    tar_bin: str = "tar"
    command_timeout: float | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "docker_bin": self.docker_bin,
            "tar_bin": self.tar_bin,
            "command_timeout": self.command_timeout,
        }


@dataclass(frozen=True)
class BackupConfig:
    """Archive destination and the image that writes archives."""

    root: Path
    image: str = "offen/docker-volume-backup:latest"
    filename_template: str = "backup-%Y-%m-%dT%H-%M-%S.tar.gz"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "root": str(self.root),
            "image": self.image,
            "filename_template": self.filename_template,
        }


@dataclass(frozen=True)
class RestoreConfig:
    """Staging locations and helper container settings for restores."""

    staging_archive: Path
    staging_dir: Path
    helper_name: str = "temp_restore_container"
    helper_image: str = "alpine"
    keep_staging_on_failure: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "staging_archive": str(self.staging_archive),
            "staging_dir": str(self.staging_dir),
            "helper_name": self.helper_name,
            "helper_image": self.helper_image,
            "keep_staging_on_failure": self.keep_staging_on_failure,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for abrctl."""

    config_file: Path
    work_dir: Path
    logs_dir: Path
    runtime_dir: Path
    lock_timeout: float
    stack: StackConfig
    docker: DockerConfig
    backups: BackupConfig
    restore: RestoreConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "work_dir": str(self.work_dir),
            "logs_dir": str(self.logs_dir),
            "runtime_dir": str(self.runtime_dir),
            "lock_timeout": self.lock_timeout,
            "stack": self.stack.to_dict(),
            "docker": self.docker.to_dict(),
            "backups": self.backups.to_dict(),
            "restore": self.restore.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/abrctl/config.yml",
    "work_dir": None,  # current working directory when absent
    "logs_dir": "~/.local/state/abrctl/logs",
    "runtime_dir": "/run/lock/abrctl",  # shared by every user on the host
    "lock_timeout": 30.0,
    "stack": {
        "project": "appwrite",
        "install_dir": "appwrite",
        "image_namespace": "appwrite/*",
        "volumes": list(APPWRITE_VOLUMES),
    },
    "docker": {
        "docker_bin": "docker",
        "tar_bin": "tar",
        "command_timeout": None,
    },
    "backups": {
        "root": "backups",
        "image": "offen/docker-volume-backup:latest",
        "filename_template": "backup-%Y-%m-%dT%H-%M-%S.tar.gz",
    },
    "restore": {
        "staging_archive": "backup.tar.gz",
        "staging_dir": "/tmp/backup",
        "helper_name": "temp_restore_container",
        "helper_image": "alpine",
        "keep_staging_on_failure": False,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
_SECTION_KEYS: dict[str, set[str]] = {
    section: set(cast(Mapping[str, object], DEFAULTS[section]).keys())
    for section in ("stack", "docker", "backups", "restore")
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in _SECTION_KEYS.items():
        section_map = _as_dict(raw.get(section), section)
        unknown = set(section_map.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    stack_map = _as_dict(raw.get("stack"), "stack")
    volumes = stack_map.get("volumes")
    if volumes is not None:
        entries = _as_sequence(volumes, "stack.volumes")
        if not entries:
            raise ConfigError("stack.volumes must list at least one volume.")
        for index, entry in enumerate(entries):
            if not isinstance(entry, str) or not entry.strip():
                raise ConfigError(f"stack.volumes[{index}] must be a non-empty string.")

    template = _as_dict(raw.get("backups"), "backups").get("filename_template")
    if template is not None and not str(template).endswith(".tar.gz"):
        raise ConfigError("backups.filename_template must end with '.tar.gz'.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    work_dir_value = raw.get("work_dir")
    work_dir = _to_path(work_dir_value) if work_dir_value else Path.cwd()

    def _resolve(value: object) -> Path:
        path = _to_path(value)
        return path if path.is_absolute() else work_dir / path

    lock_timeout = _expect_positive_float(raw.get("lock_timeout"), "lock_timeout", default=30.0)

    stack_mapping = _as_dict(raw.get("stack"), "stack")
    project = str(stack_mapping.get("project", "appwrite")).strip()
    if not project:
        raise ConfigError("stack.project must be a non-empty string.")
    volumes_raw = stack_mapping.get("volumes") or list(APPWRITE_VOLUMES)
    stack = StackConfig(
        project=project,
        install_dir=_resolve(stack_mapping.get("install_dir", project)),
        image_namespace=str(stack_mapping.get("image_namespace", f"{project}/*")),
        volumes=tuple(str(item).strip() for item in _as_sequence(volumes_raw, "stack.volumes")),
    )

    docker_mapping = _as_dict(raw.get("docker"), "docker")
    timeout_raw = docker_mapping.get("command_timeout")
    command_timeout = (
        None
        if timeout_raw is None
        else _expect_positive_float(timeout_raw, "docker.command_timeout", default=60.0)
    )
    docker = DockerConfig(
        docker_bin=str(docker_mapping.get("docker_bin", "docker")),
        tar_bin=str(docker_mapping.get("tar_bin", "tar")),
        command_timeout=command_timeout,
    )

    backups_mapping = _as_dict(raw.get("backups"), "backups")
    backups = BackupConfig(
        root=_resolve(backups_mapping.get("root", "backups")),
        image=str(backups_mapping.get("image", "offen/docker-volume-backup:latest")),
        filename_template=str(
            backups_mapping.get("filename_template", "backup-%Y-%m-%dT%H-%M-%S.tar.gz")
        ),
    )

    restore_mapping = _as_dict(raw.get("restore"), "restore")
    keep_raw = restore_mapping.get("keep_staging_on_failure", False)
    if not isinstance(keep_raw, bool):
        raise ConfigError("restore.keep_staging_on_failure must be a boolean.")
    restore = RestoreConfig(
        staging_archive=_resolve(restore_mapping.get("staging_archive", "backup.tar.gz")),
        staging_dir=_resolve(restore_mapping.get("staging_dir", "/tmp/backup")),
        helper_name=str(restore_mapping.get("helper_name", "temp_restore_container")),
        helper_image=str(restore_mapping.get("helper_image", "alpine")),
        keep_staging_on_failure=keep_raw,
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        work_dir=work_dir,
        logs_dir=_to_path(raw.get("logs_dir")),
        runtime_dir=_to_path(raw.get("runtime_dir")),
        lock_timeout=lock_timeout,
        stack=stack,
        docker=docker,
        backups=backups,
        restore=restore,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "APPWRITE_VOLUMES",
    "AppConfig",
    "BackupConfig",
    "ConfigError",
    "DockerConfig",
    "RestoreConfig",
    "StackConfig",
    "load_config",
]
