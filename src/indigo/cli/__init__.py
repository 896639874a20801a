"""
Indigo CLI: local data and encrypted cloud sync from the terminal.

The main Click group is defined here and every command group is
registered from its own module.

Entry point: indigo.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="indigo")
@click.option("--verbose", "-v", is_flag=True, help="Log progress to stderr.")
def main(verbose):
    """Indigo: your AI companion's data, synced end-to-end encrypted."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


from .data_cmd import register_data_commands
from .sync_cmd import register_sync_commands

register_sync_commands(main)
register_data_commands(main)
