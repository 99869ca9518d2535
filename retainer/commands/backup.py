"""CLI commands under `retainer backup`."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Optional

import typer
from rich.table import Table

from ..config.constants import (
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_NAME_PREFIX,
    DEFAULT_PROVIDER,
    DEFAULT_RETENTION_LIMIT,
)
from ..exceptions import ConfigurationError, RetainerError
from ..utils.output import console, print_json

logger = logging.getLogger(__name__)

app = typer.Typer(help="Create backups on a schedule and prune the oldest", no_args_is_help=True)

_CLI_ERRORS = (RetainerError, ValueError, RuntimeError)


@app.callback()
def backup_callback(
    ctx: typer.Context,
    provider: str = typer.Option(
        DEFAULT_PROVIDER,
        "--provider", "-p",
        envvar="RETAINER_PROVIDER",
        help="Backup provider (disk, s3)",
    ),
    path: Optional[Path] = typer.Option(
        None, "--path", envvar="RETAINER_BACKUP_DIR", help="Backup directory (disk)"
    ),
    bucket: Optional[str] = typer.Option(
        None, "--bucket", envvar="RETAINER_S3_BUCKET", help="Bucket name (s3)"
    ),
    region: Optional[str] = typer.Option(
        None, "--region", envvar="RETAINER_S3_REGION", help="Bucket region (s3)"
    ),
    prefix: str = typer.Option("", "--prefix", help="Object key prefix (s3)"),
    endpoint_url: Optional[str] = typer.Option(
        None,
        "--endpoint-url",
        envvar="RETAINER_S3_ENDPOINT_URL",
        help="Endpoint for S3-compatible stores (s3)",
    ),
    source: Optional[Path] = typer.Option(
        None, "--source", "-s", help="File to snapshot on every backup"
    ),
    command: Optional[str] = typer.Option(
        None, "--command", "-c", help="Shell command whose output becomes the backup"
    ),
    name_prefix: str = typer.Option(
        DEFAULT_NAME_PREFIX, "--name-prefix", help="Prefix for generated backup names"
    ),
    suffix: str = typer.Option("", "--suffix", help="Suffix for generated backup names, e.g. .db"),
) -> None:
    """Back up a file or command output to disk or S3 and keep the newest N.

    Examples:
        retainer backup --path ./backups --source app.db --suffix .db run --interval 3600 --limit 24
        retainer backup --path ./backups --command "pg_dump app" cycle --limit 7
        retainer backup -p s3 --bucket my-backups --region eu-west-1 list
    """
    ctx.ensure_object(dict)
    ctx.obj.update(
        provider=provider,
        path=path,
        bucket=bucket,
        region=region,
        prefix=prefix,
        endpoint_url=endpoint_url,
        source=source,
        command=command,
        name_prefix=name_prefix,
        suffix=suffix,
    )


_SOURCE_REQUIRED = "A backup source is required: pass --source or --command"


def _missing_source(target: Any) -> None:
    raise ConfigurationError(_SOURCE_REQUIRED, setting="source")


def _build_backend(options: dict[str, Any], require_source: bool = True) -> Any:
    """Build the configured provider from the callback options.

    Listing never calls prepare, so `list` passes require_source=False.
    """
    from ..config.settings import get_env_var
    from ..services.backup_providers import get_provider
    from ..services.backup_sources import copy_file, run_command, timestamped_name

    if options["source"] is not None and options["command"]:
        raise ConfigurationError("--source and --command are mutually exclusive", setting="source")

    if options["source"] is not None:
        prepare = copy_file(options["source"])
    elif options["command"]:
        prepare = run_command(options["command"])
    elif require_source:
        raise ConfigurationError(_SOURCE_REQUIRED, setting="source")
    else:
        prepare = _missing_source

    name = timestamped_name(options["name_prefix"], options["suffix"])
    provider = options["provider"].lower()

    if provider == "disk":
        if options["path"] is None:
            raise ConfigurationError("The disk provider requires --path", setting="path")
        return get_provider("disk", path=options["path"], name=name, prepare=prepare)

    if provider == "s3":
        if not options["bucket"]:
            raise ConfigurationError("The s3 provider requires --bucket", setting="bucket")
        return get_provider(
            "s3",
            bucket=options["bucket"],
            name=name,
            prepare=prepare,
            region=options["region"],
            prefix=options["prefix"],
            endpoint_url=options["endpoint_url"],
            access_key_id=get_env_var("RETAINER_S3_ACCESS_KEY_ID"),
            secret_access_key=get_env_var("RETAINER_S3_SECRET_ACCESS_KEY"),
        )

    return get_provider(provider)


def _fail(error: Exception) -> typer.Exit:
    console.print(f"[red]Error: {error}[/red]")
    return typer.Exit(1)


def _print_cycle_error(error: BaseException) -> None:
    console.print(f"[red]Backup cycle failed:[/red] {error}")


@app.command()
def run(
    ctx: typer.Context,
    interval: float = typer.Option(
        DEFAULT_INTERVAL_SECONDS,
        "--interval", "-i",
        envvar="RETAINER_INTERVAL",
        help="Seconds between backups",
    ),
    limit: int = typer.Option(
        DEFAULT_RETENTION_LIMIT,
        "--limit", "-l",
        envvar="RETAINER_LIMIT",
        help="Number of backups to keep",
    ),
    now: bool = typer.Option(False, "--now", help="Run a cycle immediately on start"),
) -> None:
    """Run the backup scheduler in the foreground until interrupted."""
    from ..services.backup_scheduler import BackupScheduler

    try:
        backend = _build_backend(ctx.obj)
        scheduler = BackupScheduler(backend, interval=interval, limit=limit)
    except _CLI_ERRORS as e:
        raise _fail(e) from None

    scheduler.on_error(_print_cycle_error)
    console.print(
        f"Backing up to [cyan]{ctx.obj['provider']}[/cyan] every {interval:g}s, "
        f"keeping {limit}. Press Ctrl+C to stop."
    )

    try:
        if now and scheduler.cycle():
            console.print(f"[green]Backup complete[/green] at {time.strftime('%H:%M:%S')}")
        while not scheduler.join(timeout=1.0):
            pass
    except KeyboardInterrupt:
        console.print("Stopping backup scheduler...")
    finally:
        scheduler.destroy()


@app.command()
def cycle(
    ctx: typer.Context,
    limit: int = typer.Option(
        DEFAULT_RETENTION_LIMIT,
        "--limit", "-l",
        envvar="RETAINER_LIMIT",
        help="Number of backups to keep",
    ),
) -> None:
    """Create one backup now and prune the oldest beyond the limit."""
    from ..services.backup_scheduler import BackupScheduler

    try:
        backend = _build_backend(ctx.obj)
        # The timer never fires before the scheduler is destroyed on exit
        scheduler = BackupScheduler(backend, interval=DEFAULT_INTERVAL_SECONDS, limit=limit)
    except _CLI_ERRORS as e:
        raise _fail(e) from None

    with scheduler:
        scheduler.on_error(_print_cycle_error)
        ok = scheduler.cycle()

    if not ok:
        raise typer.Exit(1)
    console.print("[green]Backup cycle complete[/green]")


@app.command(name="list")
def list_backups(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List current backups, oldest first."""
    try:
        backend = _build_backend(ctx.obj, require_source=False)
        # A limit of 0 never short-circuits, so every backup is enumerated
        backups = sorted(backend.list(0), key=lambda b: b.created_at)
    except _CLI_ERRORS as e:
        raise _fail(e) from None

    if json_output:
        print_json(
            [{"id": b.id, "created_at": b.created_at, "created": b.created.isoformat()} for b in backups]
        )
        return

    if not backups:
        console.print(f"No backups found on {ctx.obj['provider']}.")
        return

    table = Table(title=f"Backups on {ctx.obj['provider']}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="cyan")
    table.add_column("Created (UTC)")

    for index, b in enumerate(backups, start=1):
        table.add_row(str(index), b.id, b.created.strftime("%Y-%m-%d %H:%M:%S"))

    console.print(table)
