"""Data commands: export, import, reset, clear-chat."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from ._common import console, home_option
from ..backup import clear_chat_history, import_all_data, reset_all_data, write_backup
from ..sync.local import LocalState


def register_data_commands(main: click.Group) -> None:
    """Register the data command group."""

    @main.group()
    def data():
        """Local data: export, import and reset."""

    @data.command("export")
    @home_option
    @click.option("--out", "out_dir", default=".", type=click.Path(), help="Output directory.")
    def data_export(home, out_dir):
        """Write every category to a JSON backup file (includes API keys)."""
        local = LocalState(Path(home).expanduser())
        path = write_backup(local, Path(out_dir))
        console.print(f"\n  [green]Exported[/] {path}\n")

    @data.command("import")
    @home_option
    @click.argument("backup_file", type=click.Path(exists=True, dir_okay=False))
    def data_import(home, backup_file):
        """Restore categories from a JSON backup file."""
        local = LocalState(Path(home).expanduser())
        try:
            imported = import_all_data(local, Path(backup_file).read_text(encoding="utf-8"))
        except ValueError as exc:
            console.print(f"[bold red]Not a valid backup:[/] {exc}")
            sys.exit(1)

        names = ", ".join(c.value for c in imported) or "nothing"
        console.print(f"\n  [green]Imported:[/] {names}\n")

    @data.command("clear-chat")
    @home_option
    def data_clear_chat(home):
        """Delete the chat history on this device."""
        clear_chat_history(LocalState(Path(home).expanduser()))
        console.print("\n  Chat history cleared.\n")

    @data.command("reset")
    @home_option
    @click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
    def data_reset(home, yes):
        """Erase every category on this device."""
        if not yes:
            click.confirm("Erase ALL local data?", abort=True)
        reset_all_data(LocalState(Path(home).expanduser()))
        console.print("\n  [green]Local data reset.[/]\n")
