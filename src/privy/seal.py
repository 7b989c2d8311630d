"""
CryptoSeal -- public-key sealing of byte streams.

A sealed stream can be opened by whoever holds the private half of the
recipient key and by nobody else. Nothing but the key pair is shared.

Wire format:
    b"privy-seal/v1\\n"
    ephemeral X25519 public key               32 bytes
    wrapped file key (ChaCha20-Poly1305)      32 bytes
    header MAC (HMAC-SHA256)                  32 bytes
    payload nonce                             16 bytes
    STREAM chunks                             64 KiB plaintext + 16 byte tag each

The file key is a fresh random 16 bytes per stream. The payload key is
HKDF(file key, salt=payload nonce, info="payload"); chunk nonces are an
11-byte big-endian counter followed by a last-chunk flag, so truncation
and reordering are detected. Empty input is a single empty final chunk.

Every way a stream can fail to open raises the same DecryptionError.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
import secrets
from pathlib import Path
from typing import BinaryIO

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from . import archive
from .errors import DecryptionError
from .keys import raw_public

logger = logging.getLogger("privy.seal")

MAGIC = b"privy-seal/v1\n"
STANZA_INFO = b"privy-seal/v1/X25519"
FILE_KEY_SIZE = 16
KEY_SIZE = 32
TAG_SIZE = 16
MAC_SIZE = 32
PAYLOAD_NONCE_SIZE = 16
CHUNK_SIZE = 64 * 1024
ENCRYPTED_CHUNK_SIZE = CHUNK_SIZE + TAG_SIZE
COPY_CHUNK = 64 * 1024

_ZERO_NONCE = b"\x00" * 12


def _hkdf(material: bytes, salt: bytes, info: bytes) -> bytes:
    """Derive a 32-byte key using HKDF-SHA256."""
    return HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt or None,
        info=info,
    ).derive(material)


def _header_mac(file_key: bytes, header: bytes) -> bytes:
    mac_key = _hkdf(file_key, b"", b"header")
    return hmac.new(mac_key, header, hashlib.sha256).digest()


def _chunk_nonce(counter: int, last: bool) -> bytes:
    return counter.to_bytes(11, "big") + (b"\x01" if last else b"\x00")


def _read_exact(source: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, stopping early only at end of stream."""
    parts = []
    remaining = size
    while remaining > 0:
        data = source.read(remaining)
        if not data:
            break
        parts.append(data)
        remaining -= len(data)
    return b"".join(parts)


class SealWriter:
    """Write-only stream that seals everything written to it.

    The header goes out on construction; chunks go out as they fill.
    ``close()`` must be called to emit the final chunk. The sink itself
    is left open.

    Args:
        sink: Writable binary stream receiving the sealed bytes.
        public_key: Recipient public key.
    """

    def __init__(self, sink: BinaryIO, public_key: X25519PublicKey) -> None:
        self._sink = sink
        self._buffer = bytearray()
        self._counter = 0
        self.closed = False

        file_key = secrets.token_bytes(FILE_KEY_SIZE)
        ephemeral = X25519PrivateKey.generate()
        ephemeral_public = raw_public(ephemeral.public_key())
        recipient = raw_public(public_key)

        wrap_key = _hkdf(
            ephemeral.exchange(public_key), ephemeral_public + recipient, STANZA_INFO
        )
        wrapped = ChaCha20Poly1305(wrap_key).encrypt(_ZERO_NONCE, file_key, None)
        header = MAGIC + ephemeral_public + wrapped

        payload_nonce = secrets.token_bytes(PAYLOAD_NONCE_SIZE)
        sink.write(header + _header_mac(file_key, header) + payload_nonce)
        self._aead = ChaCha20Poly1305(_hkdf(file_key, payload_nonce, b"payload"))

    def writable(self) -> bool:
        return True

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError("write to closed SealWriter")
        self._buffer += data
        # A full chunk is held back until more data arrives: it may be the last.
        while len(self._buffer) > CHUNK_SIZE:
            self._emit(bytes(self._buffer[:CHUNK_SIZE]), last=False)
            del self._buffer[:CHUNK_SIZE]
        return len(data)

    def flush(self) -> None:
        self._sink.flush()

    def close(self) -> None:
        """Emit the final chunk. Safe to call twice."""
        if self.closed:
            return
        self._emit(bytes(self._buffer), last=True)
        self._buffer.clear()
        self.closed = True
        self._sink.flush()

    def _emit(self, chunk: bytes, last: bool) -> None:
        nonce = _chunk_nonce(self._counter, last)
        self._sink.write(self._aead.encrypt(nonce, chunk, None))
        self._counter += 1


class OpenReader:
    """Read-only stream returning the authenticated plaintext of a sealed stream.

    The header is checked on construction. Each chunk is authenticated
    before any of its bytes are returned; reaching the end of the
    plaintext implies the final chunk verified and nothing trails it.

    Args:
        source: Readable binary stream holding sealed bytes.
        private_key: Recipient private key.

    Raises:
        DecryptionError: On any authentication or format failure.
    """

    def __init__(self, source: BinaryIO, private_key: X25519PrivateKey) -> None:
        self._source = source
        self._plain = bytearray()
        self._counter = 0
        self._eof = False

        header_size = len(MAGIC) + KEY_SIZE + FILE_KEY_SIZE + TAG_SIZE
        header = _read_exact(source, header_size)
        mac = _read_exact(source, MAC_SIZE)
        payload_nonce = _read_exact(source, PAYLOAD_NONCE_SIZE)
        if (
            len(header) != header_size
            or len(mac) != MAC_SIZE
            or len(payload_nonce) != PAYLOAD_NONCE_SIZE
            or not header.startswith(MAGIC)
        ):
            raise DecryptionError()

        ephemeral_public = header[len(MAGIC):len(MAGIC) + KEY_SIZE]
        wrapped = header[len(MAGIC) + KEY_SIZE:]
        recipient = raw_public(private_key.public_key())

        try:
            shared = private_key.exchange(
                X25519PublicKey.from_public_bytes(ephemeral_public)
            )
            wrap_key = _hkdf(shared, ephemeral_public + recipient, STANZA_INFO)
            file_key = ChaCha20Poly1305(wrap_key).decrypt(_ZERO_NONCE, wrapped, None)
        except (InvalidTag, ValueError) as exc:
            raise DecryptionError() from exc

        if not hmac.compare_digest(mac, _header_mac(file_key, header)):
            raise DecryptionError()

        self._aead = ChaCha20Poly1305(_hkdf(file_key, payload_nonce, b"payload"))
        self._pending = _read_exact(source, ENCRYPTED_CHUNK_SIZE)

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        while not self._eof and (size < 0 or len(self._plain) < size):
            self._next_chunk()
        if size < 0 or size >= len(self._plain):
            data = bytes(self._plain)
            self._plain.clear()
        else:
            data = bytes(self._plain[:size])
            del self._plain[:size]
        return data

    def close(self) -> None:
        self._plain.clear()

    def _next_chunk(self) -> None:
        current = self._pending
        if len(current) < ENCRYPTED_CHUNK_SIZE:
            last = True
            self._pending = b""
        else:
            self._pending = _read_exact(self._source, ENCRYPTED_CHUNK_SIZE)
            last = not self._pending

        if len(current) < TAG_SIZE:
            raise DecryptionError()
        try:
            chunk = self._aead.decrypt(_chunk_nonce(self._counter, last), current, None)
        except InvalidTag as exc:
            raise DecryptionError() from exc
        if last and not chunk and self._counter > 0:
            raise DecryptionError()

        self._counter += 1
        self._plain += chunk
        self._eof = last


def seal(source: BinaryIO, sink: BinaryIO, public_key: X25519PublicKey) -> None:
    """Seal everything readable from ``source`` into ``sink``."""
    writer = SealWriter(sink, public_key)
    for block in iter(lambda: source.read(COPY_CHUNK), b""):
        writer.write(block)
    writer.close()


def open_stream(
    source: BinaryIO, sink: BinaryIO, private_key: X25519PrivateKey
) -> None:
    """Open a sealed ``source`` and write the plaintext into ``sink``.

    Raises:
        DecryptionError: If the stream does not authenticate. Plaintext
            from chunks verified before the failure may already be in
            the sink.
    """
    reader = OpenReader(source, private_key)
    for block in iter(lambda: reader.read(COPY_CHUNK), b""):
        sink.write(block)


def seal_directory(
    directory: Path, bundle_path: Path, public_key: X25519PublicKey
) -> Path:
    """Pack and seal a directory into a bundle file.

    The bundle is written to a hidden temporary sibling and renamed over
    ``bundle_path`` once complete, so an existing bundle is replaced
    whole or not at all.

    Returns:
        The bundle path.
    """
    bundle_path = Path(bundle_path)
    tmp_path = bundle_path.with_name(f".{bundle_path.name}.tmp")
    try:
        with open(tmp_path, "wb") as fh:
            writer = SealWriter(fh, public_key)
            archive.pack(Path(directory), writer)
            writer.close()
            os.fsync(fh.fileno())
        os.replace(tmp_path, bundle_path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.info("Sealed %s -> %s", Path(directory).name, bundle_path.name)
    return bundle_path


def open_to_directory(
    bundle_path: Path, destination_root: Path, private_key: X25519PrivateKey
) -> list[str]:
    """Open a bundle and extract it under ``destination_root``.

    Returns:
        Names of the extracted archive members.

    Raises:
        DecryptionError: If the bundle does not authenticate.
        CorruptArchiveError: If it authenticates but holds no valid archive.
    """
    with open(bundle_path, "rb") as fh:
        reader = OpenReader(fh, private_key)
        names = archive.unpack(reader, Path(destination_root))

    logger.info("Opened %s into %s", Path(bundle_path).name, destination_root)
    return names
