"""
Privy data models -- project configuration and run results.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

MARKER_FILE = "privy.yaml"
IGNORE_FILE = ".gitignore"


class PrivyConfig(BaseModel):
    """Everything a command needs to know about the project.

    Loaded from ``privy.yaml`` at the project root. The file doubles
    as the marker that identifies the directory as a privy project.
    """

    project_root: Path
    key_name: str = "key"
    branch: str = "master"
    remote: str = "origin"
    commit_message: str = "auto update"
    bundle_suffix: str = ".tar.gz.privy"
    scrypt_work_factor: int = Field(default=18, ge=10, le=22)

    @property
    def plaintext_key_path(self) -> Path:
        return self.project_root / self.key_name

    @property
    def encrypted_key_path(self) -> Path:
        return self.project_root / f"{self.key_name}.enc"

    @property
    def public_key_path(self) -> Path:
        return self.project_root / f"{self.key_name}.pub"

    @property
    def ignore_path(self) -> Path:
        return self.project_root / IGNORE_FILE

    @property
    def marker_path(self) -> Path:
        return self.project_root / MARKER_FILE


class Workflow(str, Enum):
    """Top-level sync workflows."""

    UPDATE = "update"
    EXPAND = "expand"


class RunState(str, Enum):
    """Engine states, in the order a run passes through them."""

    IDLE = "idle"
    VALIDATING = "validating"
    NOTHING_TO_DO = "nothing_to_do"
    ENCRYPTING = "encrypting"
    TAGGING_IGNORE = "tagging_ignore"
    PUBLISHING = "publishing"
    DECRYPTING = "decrypting"
    PURGING = "purging"
    DONE = "done"
    FAILED = "failed"


class RunResult(BaseModel):
    """Outcome of one update or expand run."""

    workflow: Workflow
    state: RunState = RunState.IDLE
    items: list[str] = Field(default_factory=list)
    ignore_list: list[str] = Field(default_factory=list)
    published: bool = False
    error: Optional[str] = None

    @property
    def nothing_to_do(self) -> bool:
        return self.state == RunState.NOTHING_TO_DO
