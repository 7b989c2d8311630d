"""
Privy error taxonomy.

Every error is terminal for the command that raised it. The CLI turns
them into a single console message and a non-zero exit.
"""

from __future__ import annotations


class PrivyError(Exception):
    """Base class for every error privy reports to the user."""


class InvalidProjectRootError(PrivyError):
    """Raised when the working directory is not a privy project root."""


class MissingKeyError(PrivyError):
    """Raised when a required private key artifact does not exist."""


class BadPassphraseError(PrivyError):
    """Raised when the encrypted key cannot be unlocked with the passphrase."""


class MissingPublicKeyError(PrivyError):
    """Raised when sealing needs key.pub and it is absent."""


class KeyGenerationError(PrivyError):
    """Raised when a new key pair cannot be created or wrapped."""


class CorruptArchiveError(PrivyError):
    """Raised when a bundle decrypts but the archive inside is malformed."""


class DecryptionError(PrivyError):
    """Raised when a sealed bundle cannot be authenticated.

    The message is fixed: a wrong key, a truncated file and a flipped
    bit all look the same to the caller.
    """

    MESSAGE = "Unable to decrypt bundle (wrong key or damaged data)"

    def __init__(self) -> None:
        super().__init__(self.MESSAGE)


class VcsError(PrivyError):
    """Raised when a git step (add, commit, push) fails."""


class IgnoreListError(PrivyError):
    """Raised when a name cannot be written to .gitignore safely."""
