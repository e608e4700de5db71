"""Typer-powered command line for ``abrctl``.

Commands wire the configuration, Docker provider, lock manager and structured
logger into the backup and restore workflows. Expected failures surface as a
red message, an ``operations.jsonl`` error record and a documented exit code.
"""
from __future__ import annotations

import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console

from . import __version__
from .catalog import BackupCatalog
from .config import AppConfig, ConfigError, load_config
from .consistency import ConsistencyLevel, parse_level
from .display import ConsolePresenter, catalog_table, render_banner, volume_sizes_table
from .errors import AbrError
from .exit_codes import ExitCode
from .locking import LockManager
from .logging import OperationScope, StructuredLogger
from .prompts import ConsoleChoiceProvider
from .providers import DockerError, DockerProvider
from .workflows import Workflows

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to abrctl's YAML config file.",
)

WORK_DIR_OPTION = typer.Option(
    None,
    "--work-dir",
    file_okay=False,
    dir_okay=True,
    help="Directory holding the install folder and backups (defaults to the current directory).",
)

LOCK_TIMEOUT_OPTION = typer.Option(
    None,
    "--lock-timeout",
    help="Override lock acquisition timeout in seconds.",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit the result as JSON.",
)

LEVEL_OPTION = typer.Option(
    None,
    "--level",
    "-l",
    help="Backup type: hot, semi-cold or cold. Prompts when omitted.",
    metavar="LEVEL",
)

ARCHIVE_OPTION = typer.Option(
    None,
    "--archive",
    "-a",
    help="Archive file name in the backups folder. Prompts when omitted.",
    metavar="NAME",
)

YES_OPTION = typer.Option(
    False,
    "--yes",
    "-y",
    help="Remove remnants of a previous installation without asking.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Appwrite Backup Restore CLI.

        Captures every Appwrite volume plus its configuration into a timestamped
        archive, and restores an archive onto a clean host.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    docker: DockerProvider
    locks: LockManager
    logger: StructuredLogger
    presenter: ConsolePresenter
    chooser: ConsoleChoiceProvider
    workflows: Workflows


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    work_dir: Path | None = None,
    lock_timeout_override: float | None = None,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    overrides: dict[str, object] = {}
    if work_dir is not None:
        overrides["work_dir"] = str(work_dir)
    if lock_timeout_override is not None:
        overrides["lock_timeout"] = lock_timeout_override

    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc

    docker = DockerProvider(
        docker_bin=config.docker.docker_bin,
        timeout=config.docker.command_timeout,
    )
    locks = LockManager(config.runtime_dir, config.lock_timeout)
    logger = StructuredLogger(config.logs_dir)
    presenter = ConsolePresenter(console)
    chooser = ConsoleChoiceProvider(console)
    runtime = RuntimeContext(
        config=config,
        docker=docker,
        locks=locks,
        logger=logger,
        presenter=presenter,
        chooser=chooser,
        workflows=Workflows(config, docker, locks, chooser, presenter),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the abrctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    work_dir: Path | None = WORK_DIR_OPTION,
    lock_timeout: float | None = LOCK_TIMEOUT_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file, work_dir, lock_timeout)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"abrctl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file, work_dir, lock_timeout)

    if ctx.invoked_subcommand is None:
        render_banner(console)
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _workflow_error(op: OperationScope, exc: AbrError) -> NoReturn:
    _command_error(op, str(exc), rc=exc.exit_code)


@app.command()
def backup(
    ctx: typer.Context,
    level: str | None = LEVEL_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Capture every managed volume plus configuration into a new archive."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "backup",
        args={"level": level, "json": json_output},
        target={"kind": "stack", "project": runtime.config.stack.project},
    ) as op:
        preset: ConsistencyLevel | None = None
        if level is not None:
            try:
                preset = parse_level(level)
            except ValueError as exc:
                _command_error(op, str(exc), rc=ExitCode.VALIDATION)

        runtime.presenter.quiet = json_output
        runtime.chooser.use_stderr = json_output
        if not json_output:
            render_banner(console)
        try:
            result = runtime.workflows.run_backup(level=preset, op=op)
        except AbrError as exc:
            _workflow_error(op, exc)

        summary = {
            "level": result.level.value,
            "archive": str(result.archive) if result.archive else None,
            "error": result.error,
            "before": result.before.outcome.value if result.before else None,
            "after": result.after.outcome.value if result.after else None,
        }
        if json_output:
            console.print_json(data={"backup": summary})

        if not result.ok:
            message = f"Backup failed: {result.error}"
            if not json_output:
                console.print(f"[red]{message}[/red]")
            op.warning(message, errors=[result.error or message], context=summary)
            return

        backups = [str(result.archive)]
        if result.after is not None and not result.after.ok:
            op.warning(
                "Backup written; stack did not return to running.",
                warnings=[result.after.detail],
                changed=1,
                backups=backups,
                context=summary,
            )
            return
        if not json_output:
            console.print(f"[green]Backup completed successfully: {result.archive}[/green]")
        op.success("Backup created.", changed=1, backups=backups, context=summary)


@app.command()
def restore(
    ctx: typer.Context,
    archive: str | None = ARCHIVE_OPTION,
    yes: bool = YES_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Restore an archive onto a clean installation and restart the stack."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "restore",
        args={"archive": archive, "yes": yes, "json": json_output},
        target={"kind": "stack", "project": runtime.config.stack.project},
    ) as op:
        runtime.presenter.quiet = json_output
        runtime.chooser.use_stderr = json_output
        if not json_output:
            render_banner(console)
        try:
            result = runtime.workflows.run_restore(
                archive_name=archive,
                assume_yes=yes,
                op=op,
            )
        except AbrError as exc:
            _workflow_error(op, exc)

        summary = {
            "archive": str(result.archive),
            "restored": result.restored,
            "restarted": bool(result.restart and result.restart.ok),
            "warnings": list(result.warnings),
            "trace": [state.value for state in result.trace],
        }
        if json_output:
            console.print_json(data={"restore": summary})

        if result.warnings:
            if not json_output:
                for warning in result.warnings:
                    console.print(f"[yellow]{warning}[/yellow]")
            op.warning(
                "Restore completed with warnings.",
                warnings=result.warnings,
                changed=1,
                context=summary,
            )
            return
        if not json_output:
            console.print(
                f"[green]Restore of {result.archive.name} completed successfully.[/green]"
            )
        op.success("Restore completed.", changed=1, context=summary)


@app.command()
def catalog(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """List archives available for restore, newest first."""
    runtime = _get_runtime(ctx)
    root = runtime.config.backups.root
    with runtime.logger.operation(
        "catalog",
        args={"json": json_output},
        target={"kind": "backups", "root": str(root)},
    ) as op:
        entries = BackupCatalog(root).list_archives()
        if json_output:
            console.print_json(
                data={"root": str(root), "archives": [entry.to_dict() for entry in entries]}
            )
            op.success("Reported backup catalog (JSON).", changed=0)
            return
        console.print(catalog_table(entries))
        op.success("Reported backup catalog.", changed=0)


@app.command()
def volumes(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show the disk usage of each managed volume."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "volumes",
        args={"json": json_output},
        target={"kind": "stack", "project": runtime.config.stack.project},
    ) as op:
        try:
            sizes = runtime.workflows.volume_sizes()
        except DockerError as exc:
            _command_error(op, f"Error retrieving volume sizes: {exc}", rc=ExitCode.PROVIDER)

        if json_output:
            console.print_json(
                data={"volumes": [{"name": item.name, "size": item.size} for item in sizes]}
            )
        else:
            console.print(volume_sizes_table(sizes))
        op.success("Reported volume sizes.", changed=0)


def main() -> None:
    """Console script entry point."""
    app(prog_name="abrctl")


__all__ = ["RuntimeContext", "app", "main"]
