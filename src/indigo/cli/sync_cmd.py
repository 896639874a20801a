"""Sync commands: now, push, pull, delete, status, enable, disable, configure, verify, auto."""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.panel import Panel
from rich.table import Table

from ..audit import read_audit_log
from ._common import (
    console,
    format_millis,
    home_option,
    open_session,
    passphrase_option,
    status_icon,
    user_option,
)
from ..sync.backends import RemoteStoreError
from ..sync.engine import load_config, save_config
from ..sync.local import LocalState
from ..sync.models import SYNC_CATEGORIES, BackendType, SyncConfig, SyncResult, SyncStatus
from ..sync.session import (
    AutoSyncer,
    SyncInProgressError,
    SyncNotConfiguredError,
    SyncSession,
    enable_sync,
    update_sync_state,
)

RECENT_AUDIT_ENTRIES = 5


def _print_result(result: SyncResult) -> None:
    console.print(f"\n  {status_icon(result.status)} {result.message}")
    if result.conflicts:
        console.print(
            "  [red]Failed:[/] " + ", ".join(c.value for c in result.conflicts)
        )
    console.print()


def _run(session: SyncSession, op: str, passphrase: Optional[str]) -> None:
    try:
        result = getattr(session, op)(passphrase)
    except (SyncNotConfiguredError, SyncInProgressError) as exc:
        console.print(f"[bold red]Cannot sync:[/] {exc}")
        sys.exit(1)

    _print_result(result)
    if result.status != SyncStatus.SUCCESS:
        sys.exit(1)


def register_sync_commands(main: click.Group) -> None:
    """Register the sync command group."""

    @main.group()
    def sync():
        """End-to-end encrypted cloud sync.

        Every category is encrypted on this device with your passphrase
        before upload. Lose the passphrase and the cloud copy is gone.
        """

    @sync.command("now")
    @home_option
    @user_option
    @passphrase_option
    def sync_now(home, user_id, passphrase):
        """Sync every category, last write wins."""
        _run(open_session(home, user_id), "sync", passphrase)

    @sync.command("push")
    @home_option
    @user_option
    @passphrase_option
    def sync_push(home, user_id, passphrase):
        """Overwrite the cloud copy with this device's data."""
        _run(open_session(home, user_id), "push", passphrase)

    @sync.command("pull")
    @home_option
    @user_option
    @passphrase_option
    def sync_pull(home, user_id, passphrase):
        """Overwrite this device's data with the cloud copy."""
        _run(open_session(home, user_id), "pull", passphrase)

    @sync.command("delete")
    @home_option
    @user_option
    @click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
    def sync_delete(home, user_id, yes):
        """Delete all of your cloud data. Irreversible."""
        if not yes:
            click.confirm("Delete ALL cloud data for this account?", abort=True)

        session = open_session(home, user_id)
        try:
            session.delete_cloud_data()
        except (SyncNotConfiguredError, SyncInProgressError, RemoteStoreError) as exc:
            console.print(f"[bold red]Delete failed:[/] {exc}")
            sys.exit(1)
        console.print("\n  [green]Cloud data deleted.[/] Local data is untouched.\n")

    @sync.command("status")
    @home_option
    def sync_status(home):
        """Show sync settings and per-category sync times."""
        home_path = Path(home).expanduser()
        local = LocalState(home_path)
        state = local.load_sync_state()
        config = load_config(home_path)

        console.print()
        console.print(
            Panel(
                f"Enabled: {'[green]yes[/]' if state.enabled else '[yellow]no[/]'}\n"
                f"Passphrase: {'[green]set[/]' if state.encryption_passphrase else '[yellow]not set[/]'}\n"
                f"Auto-sync: {'on' if state.auto_sync else 'off'}"
                f" (every {config.auto_sync_interval_minutes} min)\n"
                f"Backend: [cyan]{config.backend.value}[/]\n"
                f"Last sync: {format_millis(state.last_sync_at)}",
                title="Cloud Sync",
                border_style="magenta",
            )
        )

        table = Table(show_header=True, header_style="bold")
        table.add_column("Category")
        table.add_column("Last synced")
        for category in SYNC_CATEGORIES:
            table.add_row(category.value, format_millis(local.get_sync_timestamp(category)))
        console.print(table)

        entries = read_audit_log(home_path, limit=RECENT_AUDIT_ENTRIES)
        if entries:
            console.print("\n  [bold]Recent activity[/]")
            for entry in entries:
                console.print(
                    f"  [dim]{entry.timestamp[:19]}[/] [cyan]{entry.event_type}[/] {entry.detail}"
                )
        console.print()

    @sync.command("enable")
    @home_option
    @click.option(
        "--passphrase", prompt=True, hide_input=True, confirmation_prompt=True,
        envvar="INDIGO_SYNC_PASSPHRASE", help="Encryption passphrase.",
    )
    @click.option("--auto/--no-auto", default=False, help="Sync automatically.")
    def sync_enable(home, passphrase, auto):
        """Turn on sync and store the passphrase on this device."""
        local = LocalState(Path(home).expanduser())
        try:
            enable_sync(local, passphrase, auto_sync=auto)
        except ValueError as exc:
            console.print(f"[bold red]Cannot enable sync:[/] {exc}")
            sys.exit(1)
        console.print("\n  [green]Sync enabled.[/]")
        console.print(
            "  [yellow]Remember this passphrase. It cannot be recovered and "
            "every device needs it.[/]\n"
        )

    @sync.command("disable")
    @home_option
    def sync_disable(home):
        """Turn off sync on this device."""
        update_sync_state(LocalState(Path(home).expanduser()), enabled=False)
        console.print("\n  Sync disabled.\n")

    @sync.command("configure")
    @home_option
    @click.option("--backend", type=click.Choice([b.value for b in BackendType]), default=None)
    @click.option("--url", "supabase_url", default=None, help="Supabase project URL.")
    @click.option("--local-path", type=click.Path(), default=None, help="Directory for the local backend.")
    @click.option("--timeout", type=float, default=None, help="Network timeout in seconds.")
    @click.option("--strict/--lenient", default=None, help="Fail on remote lookup errors.")
    @click.option("--interval", type=int, default=None, help="Auto-sync interval in minutes.")
    def sync_configure(home, backend, supabase_url, local_path, timeout, strict, interval):
        """Choose and configure the remote backend."""
        home_path = Path(home).expanduser()
        config = load_config(home_path)

        updates = {
            "backend": BackendType(backend) if backend else None,
            "supabase_url": supabase_url,
            "local_path": Path(local_path).expanduser() if local_path else None,
            "timeout_seconds": timeout,
            "strict_remote_lookup": strict,
            "auto_sync_interval_minutes": interval,
        }
        try:
            config = SyncConfig.model_validate({
                **config.model_dump(),
                **{k: v for k, v in updates.items() if v is not None},
            })
        except ValidationError as exc:
            console.print(f"[bold red]Invalid setting:[/] {exc}")
            sys.exit(1)
        path = save_config(home_path, config)
        console.print(f"\n  [green]Saved[/] {path}\n")

    @sync.command("verify")
    @home_option
    @user_option
    @passphrase_option
    def sync_verify(home, user_id, passphrase):
        """Check a passphrase against the existing cloud data."""
        session = open_session(home, user_id)
        try:
            ok = session.verify_passphrase(passphrase)
        except (SyncNotConfiguredError, RemoteStoreError) as exc:
            console.print(f"[bold red]Cannot verify:[/] {exc}")
            sys.exit(1)

        if ok:
            console.print("\n  [green]Passphrase OK.[/]\n")
        else:
            console.print("\n  [bold red]Passphrase does not match the cloud data.[/]\n")
            sys.exit(1)

    @sync.command("auto")
    @home_option
    @user_option
    def sync_auto(home, user_id):
        """Run auto-sync in the foreground until interrupted."""
        session = open_session(home, user_id)
        if not session.state.auto_sync:
            console.print("[yellow]Auto-sync is off.[/] Run [cyan]indigo sync enable --auto[/] first.")
            sys.exit(1)

        config = load_config(Path(home).expanduser())
        syncer = AutoSyncer(session, interval=config.auto_sync_interval_minutes * 60)
        console.print(
            f"\n  Auto-sync every {config.auto_sync_interval_minutes} min. Ctrl+C to stop.\n"
        )
        syncer.tick()
        syncer.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
        finally:
            syncer.stop()
