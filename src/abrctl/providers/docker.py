"""Docker provider wrapping the ``docker`` CLI for abrctl workflows."""
from __future__ import annotations

import json
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path


class DockerError(RuntimeError):
    """Raised when a docker invocation fails."""

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """Keep the captured output so callers can classify the failure."""
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class DockerNotInstalledError(DockerError):
    """Raised when the docker binary cannot be found."""


@dataclass(frozen=True, slots=True)
class DockerStatus:
    """Result of probing the Docker daemon."""

    available: bool
    installed: bool
    detail: str = ""


@dataclass(frozen=True, slots=True)
class Mount:
    """A ``-v source:target`` mapping for ``docker run``."""

    source: str
    target: str

    def as_arg(self) -> str:
        """Return the ``source:target`` string docker expects."""
        return f"{self.source}:{self.target}"


@dataclass(slots=True)
class DockerProvider:
    """Run docker and docker compose commands for the managed stack."""

    docker_bin: str = "docker"
    timeout: float | None = None

    # Daemon ---------------------------------------------------------
    def probe(self) -> DockerStatus:
        """Return whether docker is installed and its daemon reachable."""
        try:
            self._run_command(["info"], check=True, error_prefix="docker info")
        except DockerNotInstalledError as exc:
            return DockerStatus(available=False, installed=False, detail=str(exc))
        except DockerError as exc:
            return DockerStatus(available=False, installed=True, detail=str(exc))
        return DockerStatus(available=True, installed=True)

    def is_available(self) -> bool:
        """Return ``True`` when the docker daemon answers ``docker info``."""
        return self.probe().available

    def volume_usage(self) -> list[dict[str, object]]:
        """Return the per-volume entries reported by ``docker system df -v``."""
        result = self._run_command(
            ["system", "df", "-v", "--format", "{{ json .Volumes }}"],
            check=True,
            error_prefix="docker system df",
        )
        text = (result.stdout or "").strip()
        if not text:
            return []
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DockerError(f"docker system df returned invalid JSON: {exc}") from exc
        if not isinstance(payload, list):
            return []
        return [dict(item) for item in payload if isinstance(item, Mapping)]

    # Queries --------------------------------------------------------
    def container_names(self, name_filter: str) -> list[str]:
        """Return names of all containers (any state) matching *name_filter*."""
        return self._lines(
            ["ps", "-a", "--filter", f"name={name_filter}", "--format", "{{.Names}}"],
            "docker ps",
        )

    def container_ids_by_label(self, label: str) -> list[str]:
        """Return ids of all containers carrying *label*."""
        return self._lines(
            ["ps", "-a", "--filter", f"label={label}", "--format", "{{.ID}}"],
            "docker ps",
        )

    def volume_names(self, name_filter: str) -> list[str]:
        """Return names of volumes matching *name_filter*."""
        return self._lines(
            ["volume", "ls", "--filter", f"name={name_filter}", "--format", "{{.Name}}"],
            "docker volume ls",
        )

    def image_ids(self, reference: str) -> list[str]:
        """Return ids of images whose reference matches *reference*."""
        return self._lines(
            ["images", "--filter", f"reference={reference}", "--format", "{{.ID}}"],
            "docker images",
        )

    # Removal --------------------------------------------------------
    def remove_containers(self, ids: Sequence[str]) -> None:
        """Force-remove the given containers."""
        if ids:
            self._run_command(["rm", "-f", *ids], check=True, error_prefix="docker rm")

    def remove_volumes(self, names: Sequence[str]) -> None:
        """Force-remove the given volumes."""
        if names:
            self._run_command(
                ["volume", "rm", "-f", *names],
                check=True,
                error_prefix="docker volume rm",
            )

    def remove_images(self, ids: Sequence[str]) -> None:
        """Force-remove the given images."""
        if ids:
            self._run_command(["rmi", "-f", *ids], check=True, error_prefix="docker rmi")

    # Compose --------------------------------------------------------
    def compose(self, project_dir: Path, *args: str) -> subprocess.CompletedProcess[str]:
        """Run ``docker compose <args>`` inside *project_dir*."""
        joined = " ".join(args)
        return self._run_command(
            ["compose", *args],
            check=True,
            error_prefix=f"docker compose {joined}",
            cwd=project_dir,
        )

    def compose_container_ids(self, project_dir: Path, status: str) -> list[str]:
        """Return ids of the stack's containers currently in *status*."""
        return self._lines(
            ["compose", "ps", "--all", "--status", status, "--quiet"],
            "docker compose ps",
            cwd=project_dir,
        )

    # Helper containers ----------------------------------------------
    def run(
        self,
        image: str,
        *,
        mounts: Sequence[Mount] = (),
        env: Mapping[str, str] | None = None,
        entrypoint: str | None = None,
        name: str | None = None,
        detach: bool = False,
        remove: bool = False,
        command: Sequence[str] = (),
    ) -> subprocess.CompletedProcess[str]:
        """Start a container from *image* with the given mounts."""
        args: list[str] = ["run"]
        if detach:
            args.append("-d")
        if remove:
            args.append("--rm")
        if name:
            args.extend(["--name", name])
        for mount in mounts:
            args.extend(["-v", mount.as_arg()])
        for key, value in (env or {}).items():
            args.extend(["--env", f"{key}={value}"])
        if entrypoint:
            args.extend(["--entrypoint", entrypoint])
        args.append(image)
        args.extend(command)
        return self._run_command(args, check=True, error_prefix="docker run")

    def copy_to_container(self, source: Path, container: str, destination: str) -> None:
        """Copy the contents of *source* into *container* at *destination*."""
        self._run_command(
            ["cp", f"{source}/.", f"{container}:{destination}"],
            check=True,
            error_prefix="docker cp",
        )

    def stop_container(self, name: str) -> None:
        """Stop the container *name*."""
        self._run_command(["stop", name], check=True, error_prefix="docker stop")

    def remove_container(self, name: str, *, force: bool = False) -> None:
        """Remove the container *name*."""
        args = ["rm", "-f", name] if force else ["rm", name]
        self._run_command(args, check=True, error_prefix="docker rm")

    def container_exists(self, name: str) -> bool:
        """Return ``True`` when a container named exactly *name* exists."""
        return name in self.container_names(name)

    # ------------------------------------------------------------------
    def _lines(
        self,
        args: Sequence[str],
        error_prefix: str,
        *,
        cwd: Path | None = None,
    ) -> list[str]:
        result = self._run_command(args, check=True, error_prefix=error_prefix, cwd=cwd)
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
        cwd: Path | None = None,
    ) -> subprocess.CompletedProcess[str]:
        command = [self.docker_bin, *args]
        try:
            result = self._execute(command, cwd)
        except FileNotFoundError as exc:
            raise DockerNotInstalledError(f"{self.docker_bin} not found: {exc}") from exc
        except subprocess.TimeoutExpired as exc:
            raise DockerError(
                f"{error_prefix} timed out after {self.timeout}s",
            ) from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise DockerError(
                f"{error_prefix} failed (exit {result.returncode}): {message}",
                returncode=result.returncode,
                stdout=stdout,
                stderr=stderr,
            )
        return result

    def _execute(
        self,
        command: Sequence[str],
        cwd: Path | None,
    ) -> subprocess.CompletedProcess[str]:
        return subprocess.run(  # noqa: S603 - controlled command execution
            list(command),
            capture_output=True,
            text=True,
            check=False,
            cwd=str(cwd) if cwd is not None else None,
            timeout=self.timeout,
        )


__all__ = ["DockerError", "DockerNotInstalledError", "DockerProvider", "DockerStatus", "Mount"]
