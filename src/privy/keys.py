"""
Privy KeyStore -- the project key pair and its lifecycle.

One X25519 key pair per project. The private half only ever rests on
disk wrapped with a passphrase; the public half is stored in the clear
so anyone with the repository can seal new bundles.

Storage layout (inside the project root, names follow ``key_name``):
    key.enc   # passphrase-wrapped private key (durable, never auto-deleted)
    key.pub   # public key, text encoded (durable)
    key       # plaintext private key (transient, purged after use)

Wrapped key format:
    b"privy-key/v1\\n" | log2(N) (1 byte) | salt (16) | nonce (12) | ciphertext

The wrapping key is scrypt(passphrase, salt, N, r=8, p=1); the private key
text is sealed under it with ChaCha20-Poly1305.

Usage:
    store = KeyStore(config)
    store.generate_key("correct horse battery staple")
    with store.unlocked("correct horse battery staple") as private_key:
        ...
"""

from __future__ import annotations

import base64
import logging
import os
import secrets
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from . import project
from .errors import (
    BadPassphraseError,
    KeyGenerationError,
    MissingKeyError,
    MissingPublicKeyError,
)
from .models import PrivyConfig

logger = logging.getLogger("privy.keys")

SECRET_KEY_PREFIX = "PRIVY-SECRET-KEY-"
PUBLIC_KEY_PREFIX = "privy1"

WRAP_MAGIC = b"privy-key/v1\n"
DEFAULT_WORK_FACTOR = 18
MAX_WORK_FACTOR = 22
SALT_SIZE = 16
NONCE_SIZE = 12


@dataclass
class KeyPair:
    """A freshly generated project key pair."""

    private_key: X25519PrivateKey
    public_key: X25519PublicKey


# ---------------------------------------------------------------------------
# Text encodings
# ---------------------------------------------------------------------------

def _raw_private(private_key: X25519PrivateKey) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def raw_public(public_key: X25519PublicKey) -> bytes:
    """Raw 32-byte encoding of a public key."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _unb64(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def encode_private_key(private_key: X25519PrivateKey) -> str:
    """Encode a private key as ``PRIVY-SECRET-KEY-<base64url>``."""
    return SECRET_KEY_PREFIX + _b64(_raw_private(private_key))


def decode_private_key(text: str) -> X25519PrivateKey:
    """Parse the text form written by ``encode_private_key``.

    Raises:
        ValueError: If the text is not a privy secret key.
    """
    text = text.strip()
    if not text.startswith(SECRET_KEY_PREFIX):
        raise ValueError("not a privy secret key")
    raw = _unb64(text[len(SECRET_KEY_PREFIX):])
    if len(raw) != 32:
        raise ValueError("secret key must be 32 bytes")
    return X25519PrivateKey.from_private_bytes(raw)


def encode_public_key(public_key: X25519PublicKey) -> str:
    """Encode a public key as ``privy1<base64url>``."""
    return PUBLIC_KEY_PREFIX + _b64(raw_public(public_key))


def decode_public_key(text: str) -> X25519PublicKey:
    """Parse the text form written by ``encode_public_key``.

    Raises:
        ValueError: If the text is not a privy public key.
    """
    text = text.strip()
    if not text.startswith(PUBLIC_KEY_PREFIX):
        raise ValueError("not a privy public key")
    raw = _unb64(text[len(PUBLIC_KEY_PREFIX):])
    if len(raw) != 32:
        raise ValueError("public key must be 32 bytes")
    return X25519PublicKey.from_public_bytes(raw)


# ---------------------------------------------------------------------------
# Passphrase wrapping
# ---------------------------------------------------------------------------

def _wrapping_key(passphrase: str, salt: bytes, work_factor: int) -> bytes:
    kdf = Scrypt(salt=salt, length=32, n=2 ** work_factor, r=8, p=1)
    return kdf.derive(passphrase.encode("utf-8"))


def wrap_private_key(
    private_key: X25519PrivateKey,
    passphrase: str,
    work_factor: int = DEFAULT_WORK_FACTOR,
) -> bytes:
    """Encrypt a private key under a passphrase.

    Args:
        private_key: Key to protect.
        passphrase: User passphrase.
        work_factor: log2 of the scrypt N parameter.

    Returns:
        The wrapped key file contents.
    """
    salt = secrets.token_bytes(SALT_SIZE)
    nonce = secrets.token_bytes(NONCE_SIZE)
    key = _wrapping_key(passphrase, salt, work_factor)
    header = WRAP_MAGIC + bytes([work_factor])
    ciphertext = ChaCha20Poly1305(key).encrypt(
        nonce, encode_private_key(private_key).encode("ascii"), header
    )
    return header + salt + nonce + ciphertext


def unwrap_private_key(blob: bytes, passphrase: str) -> X25519PrivateKey:
    """Decrypt a blob written by ``wrap_private_key``.

    Raises:
        BadPassphraseError: If the blob does not authenticate under the
            passphrase, or is not a wrapped privy key at all.
    """
    head = len(WRAP_MAGIC) + 1
    if len(blob) < head + SALT_SIZE + NONCE_SIZE + 16 or not blob.startswith(WRAP_MAGIC):
        raise BadPassphraseError("Encrypted key file is not a privy key")

    work_factor = blob[len(WRAP_MAGIC)]
    if not 1 <= work_factor <= MAX_WORK_FACTOR:
        raise BadPassphraseError("Encrypted key file has an invalid work factor")

    salt = blob[head:head + SALT_SIZE]
    nonce = blob[head + SALT_SIZE:head + SALT_SIZE + NONCE_SIZE]
    ciphertext = blob[head + SALT_SIZE + NONCE_SIZE:]

    key = _wrapping_key(passphrase, salt, work_factor)
    try:
        plaintext = ChaCha20Poly1305(key).decrypt(nonce, ciphertext, blob[:head])
    except InvalidTag as exc:
        raise BadPassphraseError("Wrong passphrase for encrypted key") from exc

    try:
        return decode_private_key(plaintext.decode("ascii"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise BadPassphraseError("Encrypted key file holds no valid key") from exc


# ---------------------------------------------------------------------------
# KeyStore
# ---------------------------------------------------------------------------

class KeyStore:
    """Manages the project key pair on disk.

    Args:
        config: Project configuration (root and key file names).
        work_factor: scrypt cost used when wrapping new keys. Defaults
            to the project's ``scrypt_work_factor``.
    """

    def __init__(
        self, config: PrivyConfig, work_factor: Optional[int] = None
    ) -> None:
        self.config = config
        self.work_factor = work_factor or config.scrypt_work_factor

    def generate_key(self, passphrase: str, force: bool = False) -> KeyPair:
        """Create a new key pair and persist it.

        Writes ``key.enc`` (wrapped private key) and ``key.pub``. The
        plaintext private key never touches the disk.

        Args:
            passphrase: Passphrase protecting the private key.
            force: Replace an existing ``key.enc``. Bundles sealed to the
                old key become unreadable.

        Raises:
            KeyGenerationError: If the passphrase is empty, a key already
                exists without ``force``, or key creation fails.
        """
        project.validate(self.config.project_root)

        if not passphrase:
            raise KeyGenerationError("A non-empty passphrase is required")
        self.ensure_can_generate(force)

        try:
            private_key = X25519PrivateKey.generate()
            blob = wrap_private_key(private_key, passphrase, self.work_factor)
        except (ValueError, MemoryError) as exc:
            raise KeyGenerationError(f"Key generation failed: {exc}") from exc

        public_key = private_key.public_key()
        public_text = encode_public_key(public_key) + "\n"
        staged = [
            (self.config.public_key_path, public_text.encode("ascii")),
            (self.config.encrypted_key_path, blob),
        ]
        temps: list[Path] = []
        try:
            for path, data in staged:
                tmp = path.with_name(f".{path.name}.tmp")
                temps.append(tmp)
                tmp.write_bytes(data)
            # key.pub first: a key.enc is never left without its public half
            for (path, _), tmp in zip(staged, temps):
                os.replace(tmp, path)
        except OSError as exc:
            for tmp in temps:
                tmp.unlink(missing_ok=True)
            raise KeyGenerationError(f"Cannot write key files: {exc}") from exc

        logger.info(
            "Generated key pair: %s, %s",
            self.config.encrypted_key_path.name,
            self.config.public_key_path.name,
        )
        return KeyPair(private_key=private_key, public_key=public_key)

    def ensure_can_generate(self, force: bool = False) -> None:
        """Refuse to replace an existing ``key.enc`` unless ``force`` is set.

        Raises:
            KeyGenerationError: If a key exists and ``force`` is False.
        """
        if self.config.encrypted_key_path.exists() and not force:
            raise KeyGenerationError(
                f"{self.config.encrypted_key_path.name} already exists; "
                "use --force to replace it"
            )

    def decrypt_private_key(self, passphrase: str) -> X25519PrivateKey:
        """Unlock the wrapped private key.

        Raises:
            MissingKeyError: If ``key.enc`` does not exist.
            BadPassphraseError: If the passphrase is wrong.
        """
        path = self.config.encrypted_key_path
        if not path.is_file():
            raise MissingKeyError(
                f"No encrypted key ({path.name}); run 'privy generate-key' first"
            )
        return unwrap_private_key(path.read_bytes(), passphrase)

    def write_plaintext_key(self, private_key: X25519PrivateKey) -> Path:
        """Materialize the transient plaintext key file (mode 0600)."""
        project.validate(self.config.project_root)
        path = self.config.plaintext_key_path
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        os.fchmod(fd, 0o600)
        with os.fdopen(fd, "w", encoding="ascii") as fh:
            fh.write(encode_private_key(private_key) + "\n")
        logger.warning("Plaintext private key written to %s", path)
        return path

    def load_plaintext_key(self) -> X25519PrivateKey:
        """Read the plaintext key file.

        Raises:
            MissingKeyError: If there is no usable plaintext key.
        """
        path = self.config.plaintext_key_path
        if not path.is_file():
            raise MissingKeyError(
                f"No unencrypted key ({path.name}); run 'privy decrypt-key' first"
            )
        try:
            return decode_private_key(path.read_text(encoding="ascii"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise MissingKeyError(f"{path.name} does not hold a privy key") from exc

    def derive_public_key(
        self, private_key: Optional[X25519PrivateKey] = None
    ) -> X25519PublicKey:
        """Derive the public key, from the plaintext key file by default."""
        if private_key is None:
            private_key = self.load_plaintext_key()
        return private_key.public_key()

    def create_public_key(self, passphrase: str) -> Path:
        """Recreate ``key.pub`` from the wrapped private key."""
        project.validate(self.config.project_root)
        with self.unlocked(passphrase) as private_key:
            self._write_public_key(self.derive_public_key(private_key))
        logger.info("Recreated %s", self.config.public_key_path.name)
        return self.config.public_key_path

    def load_public_key(self) -> X25519PublicKey:
        """Read ``key.pub``.

        Raises:
            MissingPublicKeyError: If it is absent or unreadable.
        """
        path = self.config.public_key_path
        if not path.is_file():
            raise MissingPublicKeyError(
                f"Missing public key ({path.name}). Run 'privy generate-key', "
                "or 'privy create-pub' if you already have a key."
            )
        try:
            return decode_public_key(path.read_text(encoding="ascii"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise MissingPublicKeyError(
                f"{path.name} does not hold a privy public key"
            ) from exc

    def purge_plaintext_key(self) -> bool:
        """Destroy the plaintext key file if it exists.

        The file is overwritten with zeros before it is unlinked.

        Returns:
            True if a file was removed.
        """
        path = self.config.plaintext_key_path
        if not path.exists():
            return False
        try:
            size = path.stat().st_size
            with open(path, "r+b") as fh:
                fh.write(b"\0" * size)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as exc:
            logger.debug("Could not overwrite %s before removal: %s", path, exc)
        path.unlink(missing_ok=True)
        logger.info("Purged plaintext key %s", path.name)
        return True

    @contextmanager
    def unlocked(self, passphrase: str) -> Iterator[X25519PrivateKey]:
        """Decrypt the private key for the duration of a block.

        The plaintext key file is purged when the block exits, whether
        it finishes, raises, or is interrupted.
        """
        try:
            yield self.decrypt_private_key(passphrase)
        finally:
            self.purge_plaintext_key()

    def _write_public_key(self, public_key: X25519PublicKey) -> None:
        self.config.public_key_path.write_text(
            encode_public_key(public_key) + "\n", encoding="ascii"
        )
