"""Sync commands: update, expand."""

from __future__ import annotations

from typing import Optional

import click
from rich.table import Table

from ._common import console, get_passphrase, passphrase_option, root_option, run_command
from ..engine import SyncEngine


def register_sync_commands(main: click.Group) -> None:
    """Register the update and expand commands."""

    @main.command("update")
    @root_option
    def update(root: str):
        """Tar, compress and encrypt all directories, then push them.

        Bundles are written next to the directories, .gitignore is
        regenerated, and everything is committed and pushed to the
        configured remote branch.
        """
        with run_command(root) as config:
            result = SyncEngine(config).update()
            if result.nothing_to_do:
                console.print("  [yellow]No directories to encrypt[/]")
                return

            table = Table(title="Sealed directories")
            table.add_column("Directory", style="cyan")
            table.add_column("Bundle")
            for name in result.items:
                table.add_row(name, f"{name}{config.bundle_suffix}")
            console.print(table)
            console.print(
                f"  [green]Successfully updated[/] "
                f"({config.remote}/{config.branch})"
            )

    @main.command("expand")
    @root_option
    @passphrase_option
    def expand(root: str, passphrase: Optional[str]):
        """Decrypt all bundles back into directories.

        Existing directories with the same names are overwritten.
        """
        with run_command(root) as config:
            engine = SyncEngine(config)
            if not engine.list_bundles():
                console.print("  [yellow]No bundles to decrypt[/]")
                return

            result = engine.expand(get_passphrase(passphrase))
            for name in result.items:
                console.print(f"  [green]expanded[/] [cyan]{name}/[/]")
            console.print(f"  [green]{len(result.items)} bundle(s) expanded[/]")
