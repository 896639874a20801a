"""Shared utilities for all CLI command modules.

Provides the Rich console instance, status formatting helpers,
and the factories every command group uses to reach the sync core.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from .. import INDIGO_HOME
from ..sync.backends import RemoteStoreError
from ..sync.engine import SyncEngine
from ..sync.models import SyncStatus
from ..sync.session import SyncSession

console = Console()
logger = logging.getLogger("indigo.cli")

home_option = click.option(
    "--home", default=INDIGO_HOME, type=click.Path(), help="Indigo home directory.",
)
user_option = click.option(
    "--user", "user_id", envvar="INDIGO_USER_ID", default=None,
    help="Authenticated user id (or INDIGO_USER_ID).",
)
passphrase_option = click.option(
    "--passphrase", envvar="INDIGO_SYNC_PASSPHRASE", default=None,
    help="Sync passphrase (or INDIGO_SYNC_PASSPHRASE). Defaults to the stored one.",
)


def status_icon(status: SyncStatus) -> str:
    """Map a sync status to Rich markup.

    Args:
        status: Sync status.

    Returns:
        str: Rich markup string for the status.
    """
    return {
        SyncStatus.IDLE: "[dim]IDLE[/]",
        SyncStatus.SYNCING: "[bold cyan]SYNCING[/]",
        SyncStatus.SUCCESS: "[bold green]SUCCESS[/]",
        SyncStatus.ERROR: "[bold red]ERROR[/]",
        SyncStatus.CONFLICT: "[bold yellow]CONFLICT[/]",
    }.get(status, "[dim]UNKNOWN[/]")


def format_millis(ts: int) -> str:
    """Render epoch millis for humans, or 'never' for 0."""
    if not ts:
        return "[dim]never[/]"
    return datetime.fromtimestamp(ts / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def open_session(home: str, user_id: Optional[str]) -> SyncSession:
    """Build a sync session from the config under ``home``.

    Exits with status 1 when the remote backend is not configured.
    """
    home_path = Path(home).expanduser()
    try:
        engine = SyncEngine.from_home(home_path)
    except RemoteStoreError as exc:
        console.print(f"[bold red]Sync backend not configured:[/] {exc}")
        sys.exit(1)
    return SyncSession(engine, user_id=user_id, on_progress=lambda m: console.print(f"  [dim]{m}[/]"))
