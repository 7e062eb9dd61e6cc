"""Workspace helpers: which directories may host a terminal session."""

from __future__ import annotations

import logging
import os
from typing import Any

from termrelay.exception import ValidationError

logger = logging.getLogger(__name__)


def validate_working_directory(root: str, path: str) -> str:
    """Canonicalize ``path`` and check it lives under ``root``.

    Relative paths are resolved against ``root``. Symlinks are resolved
    before the containment check so a link cannot escape the root.

    Returns:
        The canonical absolute path.

    Raises:
        ValidationError: Empty or malformed path, outside the root, or not
            a directory.
    """
    if not isinstance(path, str) or not path.strip():
        raise ValidationError("path required")

    root = os.path.realpath(root)
    try:
        resolved = os.path.realpath(os.path.join(root, os.path.expanduser(path)))
    except ValueError as e:
        # e.g. an embedded NUL byte
        raise ValidationError(f"Invalid path: {e}") from e

    if resolved != root and not resolved.startswith(root.rstrip(os.sep) + os.sep):
        raise ValidationError("Path outside allowed root")
    if not os.path.isdir(resolved):
        raise ValidationError(f"Not a directory: {resolved}")
    return resolved


def list_repos(root: str) -> list[dict[str, Any]]:
    """Immediate subdirectories of ``root``, sorted by name."""
    root = os.path.realpath(root)
    repos: list[dict[str, Any]] = []
    with os.scandir(root) as entries:
        for entry in entries:
            if not entry.is_dir():
                continue
            full_path = os.path.join(root, entry.name)
            try:
                stat = entry.stat()
            except OSError as e:
                logger.warning("Skipping %s: %s", full_path, e)
                continue
            repos.append(
                {
                    "name": entry.name,
                    "path": full_path,
                    "relativePath": os.path.relpath(full_path, root),
                    "isGit": os.path.exists(os.path.join(full_path, ".git")),
                    "mtimeMs": int(stat.st_mtime * 1000),
                }
            )
    repos.sort(key=lambda r: r["name"])
    return repos
