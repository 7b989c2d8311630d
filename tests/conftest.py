"""Shared test fixtures for privy."""

from __future__ import annotations

from pathlib import Path

import pytest

PASSPHRASE = "correct horse battery staple"


class FakeVcs:
    """Records VCS calls instead of running git."""

    def __init__(self, fail_on: str = ""):
        self.calls: list[tuple] = []
        self.fail_on = fail_on

    def _record(self, *call):
        self.calls.append(call)
        if call[0] == self.fail_on:
            from privy.errors import VcsError

            raise VcsError(f"git {call[0]} failed: simulated")

    def stage_all(self):
        self._record("stage_all")

    def commit(self, message):
        self._record("commit", message)

    def push(self, remote, branch):
        self._record("push", remote, branch)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Provide an initialized privy project with a cheap scrypt cost."""
    from privy.project import init_project

    root = tmp_path / "privy"
    init_project(root, scrypt_work_factor=10)
    return root


@pytest.fixture
def config(project_root: Path):
    """Project configuration loaded from privy.yaml."""
    from privy.project import load_config

    return load_config(project_root)


@pytest.fixture
def keystore(config):
    """A key store holding a freshly generated key pair."""
    from privy.keys import KeyStore

    store = KeyStore(config)
    store.generate_key(PASSPHRASE)
    return store


@pytest.fixture
def populated_root(project_root: Path) -> Path:
    """Project with two directories, alpha/ and beta/, one file each."""
    (project_root / "alpha").mkdir()
    (project_root / "alpha" / "notes.txt").write_text("alpha secrets\n")
    (project_root / "beta").mkdir()
    (project_root / "beta" / "data.bin").write_bytes(bytes(range(256)) * 3)
    return project_root


@pytest.fixture
def fake_vcs() -> FakeVcs:
    return FakeVcs()


def snapshot(directory: Path) -> dict[str, bytes]:
    """Relative path -> contents for every file under ``directory``."""
    return {
        str(p.relative_to(directory)): p.read_bytes()
        for p in sorted(directory.rglob("*"))
        if p.is_file()
    }
