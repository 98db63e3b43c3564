"""Database CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import List

import click
from rich.table import Table

from dbaccess.cli.utils import console, print_exception
from dbaccess.config import get_config
from dbaccess.db import ConnectionHandle
from dbaccess.exceptions import ConfigurationError, DatabaseError


def split_script(script: str, delimiter: str = ";") -> List[str]:
    """Split a SQL script into non-empty statements."""
    return [stmt.strip() for stmt in script.split(delimiter) if stmt.strip()]


def _open_handle(ctx: click.Context) -> ConnectionHandle:
    config = get_config(ctx.obj.get('config'), reload=True)
    handle = ConnectionHandle(config)
    if not handle.connect():
        error = handle.last_error
        handle.close()
        raise DatabaseError(str(error) if error else "Connection failed")
    return handle


@click.group(name="db")
@click.pass_context
def db_group(ctx: click.Context) -> None:
    """🗄️  Database connection tools."""
    pass


@db_group.command(name="check")
@click.pass_context
def check_command(ctx: click.Context) -> None:
    """Connect to the configured database and show its dialect details."""
    try:
        handle = _open_handle(ctx)
    except (ConfigurationError, DatabaseError) as exc:
        print_exception("Connection check failed", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc

    try:
        alive = handle.ping()
        status = handle.status()

        table = Table(show_header=False, box=None)
        table.add_column("Property", style="cyan", width=20)
        table.add_column("Value", style="green")
        table.add_row("Engine:", status['engine'])
        table.add_row("Connected:", "yes" if status['connected'] else "no")
        table.add_row("Probe query:", "ok" if alive else "failed")
        table.add_row("Multi-row insert:", "yes" if status['multi_row_insert'] else "no")
        table.add_row("String comparer:", repr(handle.string_comparer))
        table.add_row("Update limiter:", repr(handle.update_limiter))
        console.print(table)

        if not alive:
            raise SystemExit(1)
    finally:
        handle.close()


@db_group.command(name="exec")
@click.argument("script_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--delimiter", default=";", show_default=True, help="Statement delimiter")
@click.pass_context
def exec_command(ctx: click.Context, script_file: str, delimiter: str) -> None:
    """Run a SQL script as a single transaction."""
    statements = split_script(Path(script_file).read_text(encoding='utf-8'), delimiter)
    if not statements:
        console.print("[yellow]No statements found[/yellow]")
        return

    try:
        handle = _open_handle(ctx)
    except (ConfigurationError, DatabaseError) as exc:
        print_exception("Cannot run script", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc

    try:
        with handle.transaction() as txn:
            if not txn.begin():
                console.print(f"[red]Could not start transaction: {handle.last_error}[/red]")
                raise SystemExit(1)

            for i, statement in enumerate(statements, start=1):
                if not handle.execute(statement):
                    console.print(f"[red]Statement {i} failed, rolling back: {handle.last_error}[/red]")
                    raise SystemExit(1)

            if not txn.commit():
                console.print(f"[red]Commit failed: {handle.last_error}[/red]")
                raise SystemExit(1)

        console.print(f"[green]✅ Executed {len(statements)} statement(s)[/green]")
    finally:
        handle.close()
