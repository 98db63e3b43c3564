"""Shared CLI utilities for dbaccess."""

from __future__ import annotations

import logging

from rich.console import Console

from dbaccess.config import EnvironmentSettings

# Single console instance reused across CLI modules
console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging for CLI runs.

    Args:
        verbose: Force DEBUG level regardless of ``DBACCESS_LOG_LEVEL``.
    """
    level_name = "DEBUG" if verbose else EnvironmentSettings().log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def print_exception(message: str, error: Exception, verbose: bool = False) -> None:
    """Render a formatted exception message.

    Args:
        message: Friendly context message to display before the exception.
        error: Original exception instance.
        verbose: When True, render the full traceback for debugging.
    """
    console.print(f"[red]{message}: {error}[/red]")
    if verbose:
        import traceback

        console.print(f"[dim]{traceback.format_exc()}[/dim]")
