"""Configuration CLI commands."""

from __future__ import annotations

import click
from rich.table import Table

from dialogsync.cli.ui import console
from dialogsync.config import settings


@click.group()
def config() -> None:
    """Inspect configuration."""


@config.command("show")
def config_show() -> None:
    """Show the effective client settings."""
    table = Table(title="dialogsync Configuration", show_lines=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Environment", settings.environment)
    table.add_row("API Base URL", settings.api_base_url)
    table.add_row("Auth Key", "set" if settings.auth_key else "(none)")
    table.add_row("Request Timeout (s)", f"{settings.request_timeout_s:g}")
    table.add_row("Run-control Debounce (s)", f"{settings.run_control_debounce_s:g}")
    table.add_row("Deep Link", settings.deep_link or "(none)")
    table.add_row("Log Level", settings.log_level)

    console.print(table)


def register(cli: click.Group) -> None:
    cli.add_command(config)
