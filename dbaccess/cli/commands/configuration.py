"""Configuration management CLI commands."""

from __future__ import annotations

from pathlib import Path

import click
from rich.table import Table

from dbaccess.cli.utils import console
from dbaccess.config import DBAccessConfig, DatabaseType, create_sample_config, get_config
from dbaccess.exceptions import ConfigurationError


def describe_target(config: DBAccessConfig) -> str:
    """Human readable location of the configured database."""
    db = config.database
    if db.type == DatabaseType.SQLITE:
        return db.path
    if db.unix_socket:
        return f"{db.username}@{db.unix_socket}/{db.database}"
    port = f":{db.port}" if db.port else ""
    return f"{db.username}@{db.host}{port}/{db.database}"


@click.group(name="config")
def config_group() -> None:
    """⚙️  Configuration management."""
    pass


@config_group.command(name="validate")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def validate_command(config_file: str) -> None:
    """Check a configuration file and summarize what it connects to."""
    try:
        config = get_config(config_file, reload=True)
    except ConfigurationError as exc:
        console.print(f"[red]❌ Configuration validation failed: {exc}[/red]")
        raise SystemExit(1) from exc

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="cyan", width=22)
    table.add_column("Value", style="green")
    table.add_row("Database type:", config.database.type.value)
    table.add_row("Target:", describe_target(config))
    table.add_row(
        "Retry:",
        f"{config.retry.retry_attempts} attempt(s), {config.retry.retry_delay}s apart",
    )
    table.add_row("Max INSERT size:", f"{config.batch.max_statement_size} bytes")

    console.print(f"[green]✅ {config_file} is valid[/green]")
    console.print(table)


@config_group.command(name="sample")
@click.argument("output_file", type=click.Path(dir_okay=False))
@click.option("--force", is_flag=True, help="Replace an existing file")
def sample_command(output_file: str, force: bool) -> None:
    """Write a sample MySQL configuration to OUTPUT_FILE."""
    output_path = Path(output_file)
    if output_path.exists() and not force:
        console.print(f"[red]{output_file} already exists, pass --force to replace it[/red]")
        raise SystemExit(1)

    try:
        create_sample_config(output_path)
    except OSError as exc:
        console.print(f"[red]Cannot write {output_file}: {exc}[/red]")
        raise SystemExit(1) from exc

    console.print(f"[green]✅ Wrote {output_file}[/green]")
    console.print("Set DB_PASSWORD or edit the password entry, then run "
                  f"[cyan]dbaccess config validate {output_file}[/cyan]")
