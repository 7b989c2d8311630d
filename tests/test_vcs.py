"""
Tests for the git collaborator and the ignore list.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not available")


@pytest.fixture
def git_env(monkeypatch):
    for var, value in {
        "GIT_AUTHOR_NAME": "Privy Test",
        "GIT_AUTHOR_EMAIL": "privy@example.invalid",
        "GIT_COMMITTER_NAME": "Privy Test",
        "GIT_COMMITTER_EMAIL": "privy@example.invalid",
    }.items():
        monkeypatch.setenv(var, value)


@pytest.fixture
def repo_with_remote(tmp_path: Path, git_env) -> Path:
    """A working tree on branch master with a bare ``origin``."""
    remote = tmp_path / "remote.git"
    work = tmp_path / "work"
    subprocess.run(["git", "init", "--bare", "-q", str(remote)], check=True)
    subprocess.run(["git", "init", "-q", "-b", "master", str(work)], check=True)
    subprocess.run(["git", "remote", "add", "origin", str(remote)], cwd=work, check=True)
    return work


class TestIgnoreList:
    """Tests for .gitignore generation."""

    def test_build_puts_key_first(self):
        from privy.ignore import build_ignore_list

        assert build_ignore_list("key", ["beta", "alpha"]) == ["key", "alpha/", "beta/"]

    def test_write_replaces_file(self, tmp_path: Path):
        from privy.ignore import write_ignore_file

        path = tmp_path / ".gitignore"
        path.write_text("old-entry\n")
        write_ignore_file(path, ["key", "alpha/"])
        assert path.read_text() == "key\nalpha/\n"

    def test_read_names(self, tmp_path: Path):
        from privy.ignore import read_ignore_names

        path = tmp_path / ".gitignore"
        path.write_text("# comment\nkey\n\nalpha/\n")
        assert read_ignore_names(path) == {"key", "alpha"}
        assert read_ignore_names(tmp_path / "missing") == set()

    def test_escapes_pattern_characters(self):
        from privy.ignore import build_ignore_list

        entries = build_ignore_list("key", ["#private", "!bang", "glob*?[", "trail "])
        assert entries == [
            "key", "\\!bang/", "\\#private/", "glob\\*\\?\\[/", "trail\\ /",
        ]

    def test_escaped_names_read_back(self, tmp_path: Path):
        from privy.ignore import build_ignore_list, read_ignore_names, write_ignore_file

        names = ["#private", "!bang", "a*b", "back\\slash", "trail  "]
        path = write_ignore_file(tmp_path / ".gitignore", build_ignore_list("key ", names))
        assert read_ignore_names(path) == {"key ", *names}

    def test_rejects_line_breaks(self):
        from privy.errors import IgnoreListError
        from privy.ignore import build_ignore_list

        with pytest.raises(IgnoreListError):
            build_ignore_list("key", ["two\nlines"])

    @needs_git
    @pytest.mark.parametrize("name", ["#private", "!bang", "star*", "q?", "[x]", "back\\slash", "trail "])
    def test_git_ignores_escaped_directory(self, tmp_path: Path, git_env, monkeypatch, name: str):
        """git treats every generated line as a literal directory name."""
        from privy.ignore import build_ignore_list, write_ignore_file

        monkeypatch.setenv("GIT_LITERAL_PATHSPECS", "1")

        work = tmp_path / "work"
        subprocess.run(["git", "init", "-q", str(work)], check=True)
        (work / name).mkdir()
        (work / name / "s.txt").write_text("secret")
        write_ignore_file(work / ".gitignore", build_ignore_list("key", [name]))

        check = subprocess.run(
            ["git", "check-ignore", "-q", f"{name}/s.txt"], cwd=work
        )
        assert check.returncode == 0

        subprocess.run(["git", "add", "."], cwd=work, check=True)
        staged = subprocess.run(
            ["git", "ls-files"], cwd=work, capture_output=True, text=True, check=True
        ).stdout.split()
        assert staged == [".gitignore"]


class TestGitClient:
    """Tests for the git-backed VCS client."""

    @needs_git
    def test_stage_commit_push(self, repo_with_remote: Path, tmp_path: Path):
        from privy.vcs import GitClient

        (repo_with_remote / "alpha.tar.gz.privy").write_bytes(b"sealed")
        client = GitClient(repo_with_remote)
        client.stage_all()
        client.commit("auto update")
        client.push("origin", "master")

        log = subprocess.run(
            ["git", "log", "--format=%s", "master"],
            cwd=tmp_path / "remote.git", capture_output=True, text=True, check=True,
        )
        assert log.stdout.strip() == "auto update"

    @needs_git
    def test_commit_with_nothing_staged_fails(self, repo_with_remote: Path):
        from privy.errors import VcsError
        from privy.vcs import GitClient

        with pytest.raises(VcsError, match="git commit"):
            GitClient(repo_with_remote).commit("empty")

    @needs_git
    def test_push_to_unknown_remote_fails(self, repo_with_remote: Path):
        from privy.errors import VcsError
        from privy.vcs import GitClient

        with pytest.raises(VcsError, match="git push"):
            GitClient(repo_with_remote).push("nowhere", "master")

    def test_missing_git_binary(self, tmp_path: Path, monkeypatch):
        from privy import vcs
        from privy.errors import VcsError

        monkeypatch.setattr(vcs.shutil, "which", lambda name: None)
        with pytest.raises(VcsError, match="not found"):
            vcs.GitClient(tmp_path).stage_all()
