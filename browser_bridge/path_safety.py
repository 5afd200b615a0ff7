"""
Workspace path validation.

Every filesystem-touching tool and route goes through
`to_workspace_file_path` before reading, writing or deleting anything.
"""

import os
from pathlib import Path
from typing import Any, Optional, Union

PathLike = Union[str, "os.PathLike[str]"]


def is_safe_relative_path(candidate: Any) -> bool:
    """
    Syntactic check for a workspace-relative path.

    Rejects absolute paths, URLs, drive letters, trailing slashes, empty
    segments and `.`/`..` segments. Backslashes count as separators.
    """
    if not isinstance(candidate, str) or not candidate.strip():
        return False

    normalized = candidate.replace("\\", "/").strip()
    if normalized.startswith("/") or "://" in normalized or ":" in normalized:
        return False

    if normalized.endswith("/"):
        return False

    segments = normalized.split("/")
    if any(len(segment) == 0 for segment in segments):
        return False

    return not any(segment in (".", "..") for segment in segments)


def _resolve_existing_ancestor(path: str) -> str:
    """
    Canonicalize the nearest existing ancestor of `path`.

    Symlinks in the existing part are followed; the not-yet-created tail is
    appended back unchanged.
    """
    current = os.path.abspath(path)
    tail = []

    while not os.path.lexists(current):
        parent = os.path.dirname(current)
        if parent == current:
            break
        tail.append(os.path.basename(current))
        current = parent

    try:
        resolved = os.path.realpath(current)
    except OSError:
        resolved = current

    return os.path.join(resolved, *reversed(tail)) if tail else resolved


def _normalize_for_comparison(path: str) -> str:
    return os.path.normcase(os.path.normpath(path))


def is_within_workspace(root: PathLike, candidate: PathLike) -> bool:
    """True iff `candidate` resolves to `root` or a descendant of it."""
    root_path = _normalize_for_comparison(_resolve_existing_ancestor(os.fspath(root)))
    target_path = _normalize_for_comparison(_resolve_existing_ancestor(os.fspath(candidate)))

    prefix = root_path if root_path.endswith(os.sep) else root_path + os.sep
    return target_path == root_path or target_path.startswith(prefix)


def to_workspace_file_path(root: Optional[PathLike], relative_path: Any) -> Optional[Path]:
    """Join `relative_path` onto `root`, or None if either check fails."""
    if root is None or not is_safe_relative_path(relative_path):
        return None

    segments = [s for s in relative_path.replace("\\", "/").strip().split("/") if s]
    file_path = Path(root).joinpath(*segments)

    return file_path if is_within_workspace(root, file_path) else None
