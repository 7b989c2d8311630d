"""Shared utilities for all CLI command modules.

Provides the Rich console instance, project loading, passphrase
prompting and the error/cleanup wrapper every command runs inside.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

import click
from rich.console import Console
from rich.markup import escape

from .. import PROJECT_DIR
from ..errors import PrivyError
from ..keys import KeyStore
from ..models import PrivyConfig
from ..project import load_config

console = Console()
logger = logging.getLogger("privy.cli")

PASSPHRASE_ENV = "PRIVY_PASSPHRASE"

root_option = click.option(
    "--root",
    default=PROJECT_DIR,
    type=click.Path(file_okay=False),
    help="Project directory (default: $PRIVY_PROJECT_DIR or the current directory).",
)

passphrase_option = click.option(
    "--passphrase",
    "-p",
    default=None,
    envvar=PASSPHRASE_ENV,
    help=f"Key passphrase (default: ${PASSPHRASE_ENV}, else prompt).",
)


def get_passphrase(passphrase: Optional[str], confirm: bool = False) -> str:
    """Return the passphrase, prompting (hidden) when none was supplied."""
    if passphrase:
        return passphrase
    return click.prompt(
        "Key passphrase", hide_input=True, confirmation_prompt=confirm
    )


@contextmanager
def run_command(root: str, purge: bool = True) -> Iterator[PrivyConfig]:
    """Load the project, report errors, and purge the plaintext key.

    Yields the project configuration. A ``PrivyError`` or ``OSError``
    becomes a red console message and exit status 1. Unless ``purge``
    is False, the plaintext key file is destroyed on the way out.
    """
    config: Optional[PrivyConfig] = None
    try:
        config = load_config(os.path.expanduser(root))
        yield config
    except (PrivyError, OSError) as exc:
        console.print(f"[bold red]Error:[/] {escape(str(exc))}")
        raise SystemExit(1)
    finally:
        if purge and config is not None:
            KeyStore(config).purge_plaintext_key()
