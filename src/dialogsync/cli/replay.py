"""Offline replay of a recorded message log."""

from __future__ import annotations

from pathlib import Path

import anyio
import click

from dialogsync.cli.ui import console, render_dialogs_table, render_q4h_groups, render_run_control
from dialogsync.client import SyncClient
from dialogsync.config import settings
from dialogsync.errors import SyncError
from dialogsync.services.api import DialogApi, DialogApiClient, FixtureDialogApi
from dialogsync.services.notifications import ConsoleNotifier
from dialogsync.services.transport import JsonlReplayTransport


@click.command()
@click.argument("log_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--dialogs",
    "dialogs_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON fixture serving the dialog list and hierarchies (default: live API).",
)
@click.option("--deep-link", default=None, help="Navigation target to resolve during replay.")
def replay(log_path: Path, dialogs_path: Path | None, deep_link: str | None) -> None:
    """Replay LOG_PATH (one JSON message per line) through the sync client."""
    api: DialogApi = (
        FixtureDialogApi.from_file(dialogs_path) if dialogs_path is not None else DialogApiClient()
    )
    client = SyncClient(
        transport=JsonlReplayTransport(log_path),
        api=api,
        notifier=ConsoleNotifier(console),
        deep_link=deep_link if deep_link is not None else settings.deep_link,
        debounce_s=settings.run_control_debounce_s,
    )

    async def _run() -> None:
        try:
            await client.run()
        finally:
            await client.teardown()

    try:
        anyio.run(_run)
    except SyncError as exc:
        raise click.ClickException(f"{exc.error}: {exc}") from exc

    render_dialogs_table(client.registry.nodes())
    render_run_control(client.counts)
    render_q4h_groups(client.visible_q4h_groups())
    if client.resolver is not None:
        console.print(f"[bold]Deep link[/bold] {client.resolver.state.value}")


def register(cli: click.Group) -> None:
    cli.add_command(replay)
