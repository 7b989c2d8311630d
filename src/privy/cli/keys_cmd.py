"""Key commands: init, generate-key, decrypt-key, create-pub."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click
from rich.markup import escape
from rich.panel import Panel

from ._common import console, get_passphrase, passphrase_option, root_option, run_command
from ..errors import PrivyError
from ..keys import KeyStore
from ..project import init_project


def register_key_commands(main: click.Group) -> None:
    """Register project and key lifecycle commands."""

    @main.command("init")
    @root_option
    @click.option("--branch", default=None, help="Branch to push bundles to.")
    @click.option("--remote", default=None, help="Remote to push bundles to.")
    @click.option("--key-name", default=None, help="Base name of the key files.")
    def init(root: str, branch: Optional[str], remote: Optional[str], key_name: Optional[str]):
        """Mark a directory as a privy project (writes privy.yaml)."""
        try:
            config = init_project(
                Path(root).expanduser(), branch=branch, remote=remote, key_name=key_name
            )
        except (PrivyError, OSError, ValueError) as exc:
            console.print(f"[bold red]Error:[/] {escape(str(exc))}")
            raise SystemExit(1)
        console.print(
            f"  Initialized privy project at [cyan]{config.project_root}[/]\n"
            f"  Pushing to [cyan]{config.remote}/{config.branch}[/]"
        )

    @main.command("generate-key")
    @root_option
    @passphrase_option
    @click.option("--force", is_flag=True, help="Replace an existing encrypted key.")
    def generate_key(root: str, passphrase: Optional[str], force: bool):
        """Generate a passphrase-protected key pair (key.enc + key.pub)."""
        with run_command(root) as config:
            store = KeyStore(config)
            store.ensure_can_generate(force)
            store.generate_key(get_passphrase(passphrase, confirm=True), force=force)
            console.print(Panel(
                f"[bold green]Key pair generated[/]\n"
                f"Encrypted key: [cyan]{config.encrypted_key_path.name}[/]\n"
                f"Public key: [cyan]{config.public_key_path.name}[/]",
                title="generate-key",
                border_style="green",
            ))

    @main.command("decrypt-key")
    @root_option
    @passphrase_option
    def decrypt_key(root: str, passphrase: Optional[str]):
        """Decrypt the key into an unencrypted key file.

        The file is removed again by the next privy command.
        """
        with run_command(root, purge=False) as config:
            store = KeyStore(config)
            private_key = store.decrypt_private_key(get_passphrase(passphrase))
            path = store.write_plaintext_key(private_key)
            console.print(f"  [yellow]Unencrypted key written to[/] {path}")
            console.print("  [dim]It is deleted by the next privy command.[/]")

    @main.command("create-pub")
    @root_option
    @passphrase_option
    def create_pub(root: str, passphrase: Optional[str]):
        """Recreate key.pub from the encrypted key."""
        with run_command(root) as config:
            path = KeyStore(config).create_public_key(get_passphrase(passphrase))
            console.print(f"  [green]Public key written to[/] {path}")
