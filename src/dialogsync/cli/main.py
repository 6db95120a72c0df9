"""dialogsync command-line interface.

Sub-commands live in `dialogsync.cli.*` modules and register themselves on the
root group.
"""

from __future__ import annotations

import click

from dialogsync.app_version import get_app_version
from dialogsync.observability import init_observability


@click.group()
@click.version_option(version=get_app_version(), prog_name="dialogsync")
def cli() -> None:
    """dialogsync - dialog workspace sync engine."""
    init_observability()


def _register_commands() -> None:
    from dialogsync.cli import config, link, replay

    config.register(cli)
    link.register(cli)
    replay.register(cli)


_register_commands()


if __name__ == "__main__":
    cli()
