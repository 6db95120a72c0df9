"""Deep link CLI commands."""

from __future__ import annotations

import click

from dialogsync.cli.ui import console
from dialogsync.deeplink import build_deep_link, parse_deep_link
from dialogsync.errors import InvalidDeepLink


@click.group()
def link() -> None:
    """Inspect deep links."""


@link.command("parse")
@click.argument("url")
def link_parse(url: str) -> None:
    """Parse a /dl/... URL and print the navigation intent."""
    try:
        intent = parse_deep_link(url)
    except InvalidDeepLink as exc:
        raise click.ClickException(str(exc)) from exc
    if intent is None:
        raise click.ClickException(f"Not a deep link: {url}")

    console.print_json(data=intent.model_dump(mode="json", exclude_none=True))
    console.print(f"[grey62]canonical[/grey62] {build_deep_link(intent)}")


def register(cli: click.Group) -> None:
    cli.add_command(link)
