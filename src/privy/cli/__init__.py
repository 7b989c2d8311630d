"""
Privy CLI — encrypted directories in a git repository.

The main Click group is defined here; command groups live in their own
modules and are attached via register functions.

Entry point: privy.cli:main
"""

from __future__ import annotations

import logging
import signal

import click

from .. import __version__


def _terminate(signum, frame):
    raise SystemExit(128 + signum)


@click.group()
@click.version_option(version=__version__, prog_name="privy")
@click.option("--verbose", "-v", is_flag=True, help="Log every step.")
def main(verbose: bool):
    """Privy — encrypt every top-level directory of a git repository.

    Directories are packed, sealed to the project key and pushed as
    bundles. The plaintext never reaches git.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    # SIGTERM unwinds like Ctrl-C so the plaintext key is still purged.
    signal.signal(signal.SIGTERM, _terminate)


@main.command("help")
@click.pass_context
def help_cmd(ctx: click.Context):
    """Show this message and exit."""
    click.echo(ctx.parent.get_help())


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .keys_cmd import register_key_commands
from .sync_cmd import register_sync_commands

register_key_commands(main)
register_sync_commands(main)
