"""
Sync Engine -- the update and expand workflows.

    privy update  ->  validate -> seal every directory -> rewrite .gitignore -> add/commit/push
    privy expand  ->  validate -> unlock key -> open every bundle -> purge key

Directories and bundles are processed one at a time in name order. The
first failure stops the run; whatever was already sealed or expanded
stays on disk, and re-running the workflow is always safe.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from . import project
from .errors import VcsError
from .ignore import build_ignore_list, write_ignore_file
from .keys import KeyStore
from .models import PrivyConfig, RunResult, RunState, Workflow
from .seal import open_to_directory, seal_directory
from .vcs import GitClient, VcsClient

logger = logging.getLogger("privy.engine")


class SyncEngine:
    """Encrypts project directories into bundles and back.

    Args:
        config: Project configuration.
        keystore: Key store to use. Defaults to one built from ``config``.
        vcs: Version control client. Defaults to git in the project root.
    """

    def __init__(
        self,
        config: PrivyConfig,
        keystore: Optional[KeyStore] = None,
        vcs: Optional[VcsClient] = None,
    ) -> None:
        self.config = config
        self.root = config.project_root
        self.keystore = keystore or KeyStore(config)
        self.vcs = vcs or GitClient(config.project_root)
        self.last_result: Optional[RunResult] = None

    # -- enumeration -------------------------------------------------------

    def list_directories(self) -> list[Path]:
        """Top-level plaintext directories, sorted by name.

        Hidden entries (``.git`` and friends) and symlinks are skipped.
        """
        return sorted(
            (
                p for p in self.root.iterdir()
                if not p.name.startswith(".") and p.is_dir() and not p.is_symlink()
            ),
            key=lambda p: p.name,
        )

    def list_bundles(self) -> list[Path]:
        """Top-level bundle files, sorted by name."""
        suffix = self.config.bundle_suffix
        return sorted(
            (
                p for p in self.root.iterdir()
                if not p.name.startswith(".")
                and p.name.endswith(suffix)
                and len(p.name) > len(suffix)
                and p.is_file()
            ),
            key=lambda p: p.name,
        )

    def bundle_path(self, directory: Path) -> Path:
        """Bundle file that holds ``directory``."""
        return self.root / f"{directory.name}{self.config.bundle_suffix}"

    def directory_name(self, bundle: Path) -> str:
        """Directory name a bundle expands to."""
        return bundle.name[: -len(self.config.bundle_suffix)]

    # -- workflows ---------------------------------------------------------

    def update(self) -> RunResult:
        """Seal every directory, refresh .gitignore, then commit and push.

        Returns:
            RunResult with state DONE, or NOTHING_TO_DO when the project
            has no directories (nothing is written in that case).

        Raises:
            InvalidProjectRootError: Before anything is touched.
            MissingPublicKeyError: Before any bundle is written.
            VcsError: After bundles and .gitignore are already on disk.
            PrivyError: Any per-directory failure; earlier bundles stay.
        """
        result = RunResult(workflow=Workflow.UPDATE)
        self.last_result = result
        try:
            self._enter(result, RunState.VALIDATING)
            project.validate(self.root)

            directories = self.list_directories()
            if not directories:
                logger.info("No directories to encrypt")
                self._enter(result, RunState.NOTHING_TO_DO)
                return result

            public_key = self.keystore.load_public_key()

            self._enter(result, RunState.ENCRYPTING)
            for directory in directories:
                seal_directory(directory, self.bundle_path(directory), public_key)
                result.items.append(directory.name)

            self._enter(result, RunState.TAGGING_IGNORE)
            result.ignore_list = build_ignore_list(
                self.config.key_name, [d.name for d in directories]
            )
            write_ignore_file(self.config.ignore_path, result.ignore_list)

            self._enter(result, RunState.PUBLISHING)
            self._publish()
            result.published = True
        except VcsError as exc:
            logger.error(
                "Publishing failed; %d bundle(s) remain on disk: %s",
                len(result.items), exc,
            )
            self._fail(result, exc)
            raise
        except BaseException as exc:
            self._fail(result, exc)
            raise

        self._enter(result, RunState.DONE)
        logger.info("Sealed and published %d directories", len(result.items))
        return result

    def expand(self, passphrase: str) -> RunResult:
        """Open every bundle into its plaintext directory.

        Existing directories are overwritten in place. The private key
        is unlocked once, before the first bundle, and the plaintext key
        file is purged on every exit path.

        Returns:
            RunResult with state DONE, or NOTHING_TO_DO when there are
            no bundles (the key is not touched in that case).

        Raises:
            InvalidProjectRootError: Before anything is touched.
            MissingKeyError, BadPassphraseError: Before any bundle is opened.
            DecryptionError, CorruptArchiveError: Per bundle; earlier
                directories stay expanded.
        """
        result = RunResult(workflow=Workflow.EXPAND)
        self.last_result = result
        try:
            self._enter(result, RunState.VALIDATING)
            project.validate(self.root)

            bundles = self.list_bundles()
            if not bundles:
                logger.info("No bundles to decrypt")
                self._enter(result, RunState.NOTHING_TO_DO)
                return result

            with self.keystore.unlocked(passphrase) as private_key:
                self._enter(result, RunState.DECRYPTING)
                for bundle in bundles:
                    open_to_directory(bundle, self.root, private_key)
                    result.items.append(self.directory_name(bundle))
                self._enter(result, RunState.PURGING)
        except BaseException as exc:
            self._fail(result, exc)
            raise

        self._enter(result, RunState.DONE)
        logger.info("Expanded %d bundle(s)", len(result.items))
        return result

    # -- helpers -----------------------------------------------------------

    def _publish(self) -> None:
        self.vcs.stage_all()
        self.vcs.commit(self.config.commit_message)
        self.vcs.push(self.config.remote, self.config.branch)
        logger.info(
            "Pushed to %s/%s", self.config.remote, self.config.branch
        )

    def _enter(self, result: RunResult, state: RunState) -> None:
        logger.debug("%s: %s -> %s", result.workflow.value, result.state.value, state.value)
        result.state = state

    def _fail(self, result: RunResult, exc: BaseException) -> None:
        result.error = str(exc) or type(exc).__name__
        self._enter(result, RunState.FAILED)
