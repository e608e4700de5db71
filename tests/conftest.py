"""Shared fixtures: a recording docker stand-in, scripted prompts and config."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from abrctl.config import AppConfig, load_config
from abrctl.locking import LockManager
from abrctl.prompts import Choice
from abrctl.providers.docker import DockerProvider
from abrctl.restore import Extractor

Responder = Callable[[list[str]], "subprocess.CompletedProcess[str] | None"]


@dataclass
class FakeDocker:
    """Record docker invocations and answer them from prefix rules."""

    calls: list[tuple[list[str], Path | None]] = field(default_factory=list)
    rules: list[tuple[tuple[str, ...], Responder]] = field(default_factory=list)

    def on(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        effect: Callable[[list[str]], None] | None = None,
    ) -> None:
        """Answer commands starting with *prefix*; later rules win."""

        def respond(args: list[str]) -> subprocess.CompletedProcess[str]:
            if effect is not None:
                effect(args)
            return subprocess.CompletedProcess(args, returncode, stdout, stderr)

        self.rules.append((prefix, respond))

    def respond(self, *prefix: str, responder: Responder) -> None:
        """Answer commands starting with *prefix* with a custom *responder*."""
        self.rules.append((prefix, responder))

    def __call__(
        self,
        command: Sequence[str],
        cwd: Path | None,
    ) -> subprocess.CompletedProcess[str]:
        args = list(command)[1:]
        self.calls.append((args, cwd))
        for prefix, responder in reversed(self.rules):
            if tuple(args[: len(prefix)]) == prefix:
                result = responder(args)
                if result is not None:
                    return result
        return subprocess.CompletedProcess(args, 0, "", "")

    @property
    def commands(self) -> list[list[str]]:
        """Return the recorded argument lists without the docker binary."""
        return [args for args, _ in self.calls]

    def matching(self, *prefix: str) -> list[list[str]]:
        """Return recorded commands starting with *prefix*."""
        return [args for args in self.commands if tuple(args[: len(prefix)]) == prefix]


@pytest.fixture
def fake_docker(monkeypatch: pytest.MonkeyPatch) -> FakeDocker:
    """Route every ``DockerProvider`` subprocess call through a recorder."""
    fake = FakeDocker()

    def _execute(
        self: DockerProvider,
        command: Sequence[str],
        cwd: Path | None,
    ) -> subprocess.CompletedProcess[str]:
        return fake(command, cwd)

    monkeypatch.setattr(DockerProvider, "_execute", _execute)
    return fake


class ScriptedChooser:
    """Answer prompts from pre-recorded values and remember what was asked."""

    def __init__(
        self,
        choices: Sequence[str | None] = (),
        confirms: Sequence[bool] = (),
    ) -> None:
        """Queue the answers handed out in order."""
        self.choices = list(choices)
        self.confirms = list(confirms)
        self.prompts: list[tuple[str, list[str]]] = []
        self.confirmations: list[str] = []

    def choose_one(self, prompt: str, options: Sequence[Choice]) -> str | None:
        self.prompts.append((prompt, [option.value for option in options]))
        if not self.choices:
            raise AssertionError(f"unexpected prompt: {prompt}")
        return self.choices.pop(0)

    def confirm(self, prompt: str, *, default: bool) -> bool:
        self.confirmations.append(prompt)
        if not self.confirms:
            raise AssertionError(f"unexpected confirmation: {prompt}")
        return self.confirms.pop(0)


class RecordingPresenter:
    """Collect everything the workflows would show."""

    def __init__(self) -> None:
        """Start with empty buffers."""
        self.messages: list[tuple[str, str]] = []
        self.remnants: list[object] = []
        self.sizes: list[object] = []

    def status(self, message: str, *, level: str = "info") -> None:
        self.messages.append((level, message))

    def show_remnants(self, remnants: Sequence[object]) -> None:
        self.remnants.extend(remnants)

    def show_volume_sizes(self, sizes: Sequence[object]) -> None:
        self.sizes.extend(sizes)


@pytest.fixture
def scripted_chooser() -> type[ScriptedChooser]:
    """Return the scripted chooser type; call it with the answers to hand out."""
    return ScriptedChooser


@pytest.fixture
def presenter() -> RecordingPresenter:
    """Return a presenter that records instead of printing."""
    return RecordingPresenter()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Return a config rooted under *tmp_path* with no file or env input."""
    return load_config(
        config_file=tmp_path / "missing.yml",
        env={},
        overrides={
            "work_dir": str(tmp_path / "work"),
            "logs_dir": str(tmp_path / "logs"),
            "runtime_dir": str(tmp_path / "run"),
            "lock_timeout": 1.0,
            "restore": {"staging_dir": str(tmp_path / "tmp" / "backup")},
        },
    )


@pytest.fixture
def locks(app_config: AppConfig) -> LockManager:
    """Return a lock manager using the config's runtime directory."""
    return LockManager(app_config.runtime_dir, app_config.lock_timeout)


@pytest.fixture
def installed_stack(app_config: AppConfig) -> Path:
    """Create a minimal install folder with compose and env files."""
    install_dir = app_config.stack.install_dir
    install_dir.mkdir(parents=True, exist_ok=True)
    app_config.stack.compose_file.write_text("services: {}\n", encoding="utf-8")
    app_config.stack.env_file.write_text("_APP_ENV=production\n", encoding="utf-8")
    return install_dir


@pytest.fixture
def archive_writer(app_config: AppConfig) -> Callable[..., Path]:
    """Return a callable placing an archive file in the backups folder."""

    def write(name: str, content: bytes = b"archive") -> Path:
        root = app_config.backups.root
        root.mkdir(parents=True, exist_ok=True)
        path = root / name
        path.write_bytes(content)
        return path

    return write


@pytest.fixture
def extractor_factory() -> Callable[..., Extractor]:
    """Return a factory for extractors that lay out ``backup/`` instead of running tar."""

    def factory(
        calls: list[tuple[Path, Path]] | None = None,
        *,
        fail: BaseException | None = None,
    ) -> Extractor:
        def extractor(
            archive: Path,
            destination: Path,
            *,
            tar_bin: str = "tar",
            timeout: float | None = None,
        ) -> None:
            if calls is not None:
                calls.append((archive, destination))
            if fail is not None:
                raise fail
            payload = destination / "backup" / "appwrite"
            payload.mkdir(parents=True, exist_ok=True)
            (payload / ".env").write_text("_APP_ENV=production\n", encoding="utf-8")

        return extractor

    return factory
