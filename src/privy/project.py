"""
Project context -- the safety gate in front of every command.

A privy project is a directory holding a ``privy.yaml`` marker. No
command encrypts, extracts, deletes or commits anything until the
root has passed ``validate``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Union

import yaml
from pydantic import ValidationError

from .errors import InvalidProjectRootError
from .models import MARKER_FILE, PrivyConfig

logger = logging.getLogger("privy.project")


def validate(candidate_root: Union[str, Path]) -> Path:
    """Confirm that a directory is a privy project root.

    Args:
        candidate_root: Directory to check. ``~`` is expanded.

    Returns:
        The resolved root path.

    Raises:
        InvalidProjectRootError: If the directory is missing, unreadable
            or has no ``privy.yaml`` marker.
    """
    root = Path(candidate_root).expanduser().resolve()

    if not root.is_dir():
        raise InvalidProjectRootError(
            f"Project directory does not exist: {root}"
        )
    if not os.access(root, os.R_OK | os.X_OK):
        raise InvalidProjectRootError(
            f"Project directory is not readable: {root}"
        )
    if not (root / MARKER_FILE).is_file():
        raise InvalidProjectRootError(
            f"No {MARKER_FILE} in {root}. Run 'privy init' there first, "
            "or point --root / PRIVY_PROJECT_DIR at the repository."
        )

    logger.debug("Validated project root %s", root)
    return root


def load_config(candidate_root: Union[str, Path]) -> PrivyConfig:
    """Validate the root and load its ``privy.yaml``.

    Raises:
        InvalidProjectRootError: If validation fails or the marker file
            does not hold a usable configuration.
    """
    root = validate(candidate_root)
    marker = root / MARKER_FILE

    try:
        data = yaml.safe_load(marker.read_text(encoding="utf-8")) or {}
    except (yaml.YAMLError, OSError) as exc:
        raise InvalidProjectRootError(f"Cannot read {marker}: {exc}") from exc

    if not isinstance(data, dict):
        raise InvalidProjectRootError(f"{marker} must contain a mapping")

    data.pop("project_root", None)
    try:
        return PrivyConfig(project_root=root, **data)
    except ValidationError as exc:
        raise InvalidProjectRootError(f"Invalid {marker}: {exc}") from exc


def init_project(root: Union[str, Path], **overrides: Any) -> PrivyConfig:
    """Turn a directory into a privy project by writing ``privy.yaml``.

    An existing marker is kept and merged with ``overrides``.

    Args:
        root: Directory to initialize. Created if missing.
        **overrides: PrivyConfig fields (branch, key_name, ...).

    Returns:
        The configuration that was written.
    """
    root_path = Path(root).expanduser().resolve()
    root_path.mkdir(parents=True, exist_ok=True)
    marker = root_path / MARKER_FILE

    data: dict[str, Any] = {}
    if marker.exists():
        data = yaml.safe_load(marker.read_text(encoding="utf-8")) or {}
        data.pop("project_root", None)
    data.update({k: v for k, v in overrides.items() if v is not None})

    config = PrivyConfig(project_root=root_path, **data)
    stored = config.model_dump(mode="json", exclude={"project_root"})
    marker.write_text(
        yaml.dump(stored, default_flow_style=False), encoding="utf-8"
    )
    logger.info("Initialized privy project at %s", root_path)
    return config
