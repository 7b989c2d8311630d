"""
Archive codec -- directory <-> gzip-compressed tar stream.

Both directions stream: ``pack`` writes into any object with ``write``
and ``unpack`` reads from any object with ``read``, so the codec can sit
directly on top of the seal writer/reader without a plaintext archive
ever being written out.

Packing is deterministic: entries are added in sorted order with owner
fields cleared and mtimes truncated to seconds, and the gzip header
carries no timestamp or file name. Packing an unchanged directory twice
yields identical bytes.
"""

from __future__ import annotations

import gzip
import logging
import tarfile
import zlib
from pathlib import Path
from typing import BinaryIO

from .errors import CorruptArchiveError

logger = logging.getLogger("privy.archive")

COMPRESS_LEVEL = 9
DRAIN_CHUNK = 64 * 1024


def _normalize(tarinfo: tarfile.TarInfo) -> tarfile.TarInfo:
    """Strip host-specific metadata from an archive entry."""
    tarinfo.uid = 0
    tarinfo.gid = 0
    tarinfo.uname = ""
    tarinfo.gname = ""
    tarinfo.mtime = int(tarinfo.mtime)
    return tarinfo


def pack(directory: Path, sink: BinaryIO) -> None:
    """Write ``directory`` as a tar.gz stream into ``sink``.

    Member names are relative to the directory's parent, so packing
    ``root/alpha`` yields ``alpha``, ``alpha/notes.txt``, ...

    The sink is flushed but not closed.

    Args:
        directory: Directory to archive.
        sink: Writable binary stream.
    """
    directory = Path(directory)
    with gzip.GzipFile(
        filename="", mode="wb", fileobj=sink,
        compresslevel=COMPRESS_LEVEL, mtime=0,
    ) as gz:
        with tarfile.open(fileobj=gz, mode="w|", format=tarfile.PAX_FORMAT) as tar:
            tar.add(str(directory), arcname=directory.name, filter=_normalize)
    logger.debug("Packed %s", directory)


def unpack(source: BinaryIO, destination_root: Path) -> list[str]:
    """Extract a tar.gz stream under ``destination_root``.

    Existing files at the same paths are overwritten; nothing is merged
    or backed up. Members that would land outside the destination are
    rejected by tarfile's ``data`` filter.

    After extraction the source is read to its end, so an authenticating
    reader underneath gets to verify every byte.

    Args:
        source: Readable binary stream.
        destination_root: Directory to extract into.

    Returns:
        Names of the extracted members, in archive order.

    Raises:
        CorruptArchiveError: If the stream is not a valid tar.gz archive.
    """
    destination_root = Path(destination_root)
    names: list[str] = []
    try:
        with gzip.GzipFile(fileobj=source, mode="rb") as gz:
            with tarfile.open(fileobj=gz, mode="r|") as tar:
                for member in tar:
                    checked = tarfile.data_filter(member, str(destination_root))
                    _clear_conflict(destination_root, checked)
                    tar.extract(member, path=destination_root, filter="data")
                    names.append(member.name)
            while gz.read(DRAIN_CHUNK):
                pass
        while source.read(DRAIN_CHUNK):
            pass
    except (tarfile.TarError, gzip.BadGzipFile, zlib.error, EOFError) as exc:
        raise CorruptArchiveError(f"Malformed archive: {exc}") from exc

    if not names:
        raise CorruptArchiveError("Archive is empty")

    logger.debug("Unpacked %d entries into %s", len(names), destination_root)
    return names


def _clear_conflict(destination_root: Path, member: tarfile.TarInfo) -> None:
    """Remove a plain file standing where the archive wants a directory.

    Without this, extracting ``alpha/`` over a file called ``alpha``
    fails instead of overwriting it. ``member`` must already have passed
    the ``data`` filter; targets outside the destination are left alone.
    """
    if not member.isdir():
        return
    root = destination_root.resolve()
    target = destination_root / member.name
    if not target.parent.resolve().is_relative_to(root):
        return
    if target.is_file() or target.is_symlink():
        target.unlink()
