"""
Ignore list -- what git must never see in plaintext.

The ``.gitignore`` is rewritten from scratch on every update: the
plaintext key file first, then one ``<dir>/`` line per directory.

Names are written as literal patterns. A leading ``#`` or ``!``, the
glob characters ``*?[``, backslashes and trailing spaces are escaped
with a backslash, so ``#private`` is ignored instead of read as a
comment.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

from .errors import IgnoreListError

logger = logging.getLogger("privy.ignore")

_GLOB_CHARS = re.compile(r"([\\*?\[])")
_ESCAPED = re.compile(r"\\(.)")


def escape_pattern(name: str) -> str:
    """Turn a file name into a gitignore pattern that matches only itself.

    Raises:
        IgnoreListError: If the name cannot be expressed in a gitignore
            file (empty, or holding a line break).
    """
    if not name or "\n" in name or "\r" in name:
        raise IgnoreListError(f"Cannot write {name!r} to .gitignore")

    pattern = _GLOB_CHARS.sub(r"\\\1", name)
    if pattern[0] in "#!":
        pattern = "\\" + pattern
    stripped = pattern.rstrip(" ")
    return stripped + "\\ " * (len(pattern) - len(stripped))


def unescape_pattern(pattern: str) -> str:
    """Inverse of ``escape_pattern``."""
    return _ESCAPED.sub(r"\1", pattern)


def build_ignore_list(key_name: str, directories: Iterable[str]) -> list[str]:
    """Return the ``.gitignore`` lines for a key file and directory names."""
    return [escape_pattern(key_name)] + [
        f"{escape_pattern(name)}/" for name in sorted(directories)
    ]


def write_ignore_file(path: Path, entries: list[str]) -> Path:
    """Replace ``path`` with one entry per line."""
    path.write_text("".join(f"{entry}\n" for entry in entries), encoding="utf-8")
    logger.info("Wrote %s (%d entries)", path.name, len(entries))
    return path


def read_ignore_names(path: Path) -> set[str]:
    """Names listed in an ignore file, with trailing slashes stripped.

    Blank lines and comments are skipped. A missing file is empty.
    """
    if not path.exists():
        return set()
    names = set()
    for line in path.read_text(encoding="utf-8").splitlines():
        # unescaped trailing spaces are not part of the pattern
        while line.endswith(" ") and not line.endswith("\\ "):
            line = line[:-1]
        if not line or line.startswith("#"):
            continue
        if line.endswith("/"):
            line = line[:-1]
        names.add(unescape_pattern(line))
    return names
