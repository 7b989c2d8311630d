"""
Version control collaborator -- where the bundles travel.

The engine only needs three verbs: stage everything, commit, push.
``GitClient`` runs them with the system ``git`` inside the project
root; tests substitute their own ``VcsClient``.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from .errors import VcsError

logger = logging.getLogger("privy.vcs")


class VcsClient(ABC):
    """Abstract version control client."""

    @abstractmethod
    def stage_all(self) -> None:
        """Stage every change in the working tree."""

    @abstractmethod
    def commit(self, message: str) -> None:
        """Record staged changes with ``message``."""

    @abstractmethod
    def push(self, remote: str, branch: str) -> None:
        """Push ``branch`` to ``remote``."""


class GitClient(VcsClient):
    """Drives the ``git`` binary in a working tree.

    Args:
        root: Working tree to run git in.
        timeout: Seconds before a git command is abandoned.
    """

    def __init__(self, root: Path, timeout: int = 300) -> None:
        self.root = root
        self.timeout = timeout

    def stage_all(self) -> None:
        self._run(["git", "add", "."])

    def commit(self, message: str) -> None:
        self._run(["git", "commit", "-m", message])

    def push(self, remote: str, branch: str) -> None:
        self._run(["git", "push", remote, branch])

    def _run(self, cmd: list[str]) -> str:
        if shutil.which(cmd[0]) is None:
            raise VcsError("git not found in PATH")

        logger.debug("Running %s in %s", " ".join(cmd), self.root)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                cwd=str(self.root),
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise VcsError(f"{' '.join(cmd)} failed: {exc}") from exc

        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            logger.error("Git command failed: %s -> %s", " ".join(cmd), detail)
            raise VcsError(f"{' '.join(cmd)} failed: {detail}")
        return result.stdout
