#!/usr/bin/env python3
"""
Main CLI entry point for retainer
"""

import typer
from rich.table import Table

from retainer import __version__
from retainer.commands.backup import app as backup_app
from retainer.config.settings import get_env_info, validate_all_env_vars
from retainer.utils.logging_utils import setup_cli_logging
from retainer.utils.output import console

app = typer.Typer(
    name="retainer",
    help="Periodic backups with count-based retention",
    no_args_is_help=True,
)
app.add_typer(backup_app, name="backup")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-error output"),
):
    """
    retainer - create backups on a schedule and keep only the newest N.

    [bold]Examples:[/bold]

    Snapshot a database every hour, keep a day's worth:
        [cyan]retainer backup --path ./backups --source app.db run --interval 3600 --limit 24[/cyan]

    One backup right now:
        [cyan]retainer backup --path ./backups --source app.db cycle --limit 24[/cyan]
    """
    if verbose and quiet:
        typer.echo("Error: --verbose and --quiet are mutually exclusive", err=True)
        raise typer.Exit(1)

    setup_cli_logging(verbose=verbose, quiet=quiet)


@app.command()
def version():
    """Show retainer version"""
    typer.echo(f"retainer version {__version__}")


@app.command()
def env():
    """Show RETAINER_* environment variables and whether they are valid"""
    table = Table(title="Environment")
    table.add_column("Variable", style="cyan")
    table.add_column("Value")
    table.add_column("Default", style="dim")
    table.add_column("Description")

    for name, info in get_env_info().items():
        if info["is_set"]:
            value = info["value"] if info["valid"] else f"[red]{info['value']}[/red]"
        else:
            value = "[dim]unset[/dim]"
        table.add_row(name, value, str(info["default"] or ""), info["description"])

    console.print(table)

    errors = validate_all_env_vars()
    for error in errors:
        console.print(f"[red]{error}[/red]")
    if errors:
        raise typer.Exit(1)


def run():
    """Console script entry point."""
    app()


if __name__ == "__main__":
    run()
