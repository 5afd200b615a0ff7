"""Tests for workspace path confinement."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from browser_bridge.path_safety import is_safe_relative_path, is_within_workspace, to_workspace_file_path


@pytest.mark.unit
class TestIsSafeRelativePath:
    """Tests for the syntactic relative-path check."""

    @pytest.mark.parametrize(
        "candidate",
        [
            "",
            "   ",
            "/etc/passwd",
            "\\windows\\system32",
            "../secret.txt",
            "notes/../../secret.txt",
            "./notes.md",
            "notes/./a.md",
            "notes/",
            "notes\\",
            "notes//a.md",
            "C:\\Users\\me\\a.txt",
            "c:relative.txt",
            "file://etc/passwd",
            "notes\\..\\..\\a.md",
            None,
            42,
        ],
    )
    def test_rejects_unsafe_paths(self, candidate) -> None:
        """Test that absolute, traversal, URL and malformed paths are rejected."""
        assert is_safe_relative_path(candidate) is False

    @pytest.mark.parametrize(
        "candidate",
        ["a.txt", "notes/a.md", "deep/nested/dir/file.py", "notes\\a.md", ".hidden", "notes/..dots.md"],
    )
    def test_accepts_plain_relative_paths(self, candidate: str) -> None:
        """Test that ordinary relative paths pass."""
        assert is_safe_relative_path(candidate) is True


@pytest.mark.unit
class TestIsWithinWorkspace:
    """Tests for the resolved containment check."""

    def test_root_itself_is_within(self, workspace_root: Path) -> None:
        assert is_within_workspace(workspace_root, workspace_root)

    def test_nonexistent_descendant_is_within(self, workspace_root: Path) -> None:
        """Test that files that do not exist yet are judged by their nearest existing ancestor."""
        assert is_within_workspace(workspace_root, workspace_root / "new" / "dir" / "file.md")

    def test_sibling_with_common_prefix_is_outside(self, tmp_path: Path, workspace_root: Path) -> None:
        """Test that `workspace-evil` does not count as inside `workspace`."""
        evil = tmp_path / "workspace-evil"
        evil.mkdir()
        assert not is_within_workspace(workspace_root, evil / "a.txt")

    def test_parent_is_outside(self, workspace_root: Path) -> None:
        assert not is_within_workspace(workspace_root, workspace_root.parent)

    def test_symlink_escape_is_outside(self, tmp_path: Path, workspace_root: Path) -> None:
        """Test that a symlink inside the root pointing outside is rejected."""
        outside = tmp_path / "outside"
        outside.mkdir()
        (workspace_root / "link").symlink_to(outside, target_is_directory=True)

        assert not is_within_workspace(workspace_root, workspace_root / "link" / "secret.txt")

    def test_dangling_symlink_pointing_outside_is_outside(self, tmp_path: Path, workspace_root: Path) -> None:
        """Test that a dangling symlink is resolved rather than treated as a new file."""
        (workspace_root / "dangling").symlink_to(tmp_path / "outside" / "missing.txt")

        assert not is_within_workspace(workspace_root, workspace_root / "dangling")

    def test_symlinked_root_accepts_its_own_files(self, tmp_path: Path) -> None:
        """Test that a root reached through a symlink still contains its files."""
        real_root = tmp_path / "real"
        real_root.mkdir()
        alias = tmp_path / "alias"
        alias.symlink_to(real_root, target_is_directory=True)

        assert is_within_workspace(alias, alias / "a.txt")
        assert is_within_workspace(alias, real_root / "a.txt")


@pytest.mark.unit
class TestToWorkspaceFilePath:
    """Tests for the combined join-and-check helper."""

    def test_joins_safe_path(self, workspace_root: Path) -> None:
        result = to_workspace_file_path(workspace_root, "notes/a.md")
        assert result == workspace_root / "notes" / "a.md"

    def test_backslashes_become_separators(self, workspace_root: Path) -> None:
        result = to_workspace_file_path(workspace_root, "notes\\a.md")
        assert result == workspace_root / "notes" / "a.md"

    def test_no_root_returns_none(self) -> None:
        assert to_workspace_file_path(None, "a.txt") is None

    def test_unsafe_path_returns_none(self, workspace_root: Path) -> None:
        assert to_workspace_file_path(workspace_root, "../a.txt") is None

    def test_escape_through_symlink_returns_none(self, tmp_path: Path, workspace_root: Path) -> None:
        outside = tmp_path / "outside"
        outside.mkdir()
        (workspace_root / "link").symlink_to(outside, target_is_directory=True)

        assert to_workspace_file_path(workspace_root, "link/secret.txt") is None

    def test_accepts_string_root(self, workspace_root: Path) -> None:
        result = to_workspace_file_path(os.fspath(workspace_root), "a.txt")
        assert result == workspace_root / "a.txt"
