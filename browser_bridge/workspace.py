"""Local implementations of the workspace filesystem and terminal launcher."""

import asyncio
import fnmatch
import logging
import os
from pathlib import Path
from typing import List, Optional, Set

from .capabilities import FileStat, FileType

logger = logging.getLogger(__name__)

# Dependency caches and VCS metadata never show up in workspace searches
EXCLUDED_DIRECTORIES: Set[str] = {"node_modules", ".git", "__pycache__", ".venv"}


def _match_segments(parts: List[str], pattern_parts: List[str]) -> bool:
    if not pattern_parts:
        return not parts
    head, rest = pattern_parts[0], pattern_parts[1:]
    if head == "**":
        return any(_match_segments(parts[i:], rest) for i in range(len(parts) + 1))
    return bool(parts) and fnmatch.fnmatchcase(parts[0], head) and _match_segments(parts[1:], rest)


def _glob_match(relative: str, pattern: str) -> bool:
    """Match a workspace-relative posix path. `*` stays within one segment, `**` spans any number."""
    return _match_segments(relative.split("/"), pattern.strip("/").split("/"))


class LocalWorkspace:
    """
    Workspace filesystem rooted at a local directory.

    Blocking calls run in a worker thread so the event loop keeps serving
    other connections. Callers are expected to have validated paths with
    path_safety first.
    """

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    async def stat(self, path: Path) -> Optional[FileStat]:
        def _stat() -> Optional[FileStat]:
            try:
                st = os.stat(path)
            except OSError:
                return None
            file_type = FileType.UNKNOWN
            if os.path.isfile(path):
                file_type |= FileType.FILE
            elif os.path.isdir(path):
                file_type |= FileType.DIRECTORY
            if os.path.islink(path):
                file_type |= FileType.SYMLINK
            return FileStat(type=file_type, size=st.st_size)

        return await asyncio.to_thread(_stat)

    async def read_file(self, path: Path) -> bytes:
        return await asyncio.to_thread(Path(path).read_bytes)

    async def write_file(self, path: Path, data: bytes) -> None:
        await asyncio.to_thread(Path(path).write_bytes, data)

    async def create_directory(self, path: Path) -> None:
        await asyncio.to_thread(Path(path).mkdir, parents=True, exist_ok=True)

    async def delete(self, path: Path) -> None:
        await asyncio.to_thread(Path(path).unlink)

    async def find_files(self, pattern: str, max_results: int) -> List[Path]:
        def _walk() -> List[Path]:
            found: List[Path] = []
            for dirpath, dirnames, filenames in os.walk(self.root):
                dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRECTORIES)
                for filename in sorted(filenames):
                    full = Path(dirpath) / filename
                    if _glob_match(self.as_relative_path(full), pattern):
                        found.append(full)
                        if len(found) >= max_results:
                            return found
            return found

        return await asyncio.to_thread(_walk)

    def as_relative_path(self, path: Path) -> str:
        try:
            return Path(path).relative_to(self.root).as_posix()
        except ValueError:
            return Path(path).as_posix()


class SubprocessTerminal:
    """Starts shell commands in the workspace without waiting for them."""

    def __init__(self, cwd: Optional[Path] = None):
        self.cwd = cwd
        self._processes: List[asyncio.subprocess.Process] = []

    async def launch(self, command: str) -> None:
        logger.info(f"Launching terminal command: {command}")
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=self.cwd,
            stdin=asyncio.subprocess.DEVNULL,
        )
        # Keep a reference so the transport isn't collected mid-run
        self._processes = [p for p in self._processes if p.returncode is None]
        self._processes.append(process)
