"""Direct workspace file operations for the /file route."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .capabilities import FileStat, FileType, WorkspaceFilesystem
from .errors import NotFoundError, ValidationError
from .models import FileOperationRequest
from .path_safety import is_safe_relative_path, to_workspace_file_path

logger = logging.getLogger(__name__)


def _is_regular_file(stat: FileStat) -> bool:
    return bool(stat.type & FileType.FILE)


class FileOperations:
    """
    Create/read/append/delete under the workspace root.

    Unlike the agent's create_file tool, these write immediately.
    """

    def __init__(self, workspace: Optional[WorkspaceFilesystem]):
        self.workspace = workspace

    async def handle(self, request: FileOperationRequest) -> Dict[str, Any]:
        if self.workspace is None:
            raise ValidationError("No workspace folder open")

        if not is_safe_relative_path(request.path):
            raise ValidationError("Invalid file path")

        file_path = to_workspace_file_path(self.workspace.root, request.path)
        if file_path is None:
            raise ValidationError("Path escapes workspace")

        logger.info(f"File operation: {request.action} {request.path}")

        if request.action == "create":
            return await self._create(file_path, request)
        if request.action == "read":
            return await self._read(file_path)
        if request.action == "append":
            return await self._append(file_path, request)
        return await self._delete(file_path, request)

    async def _existing_file(self, file_path: Path, required: bool) -> Optional[FileStat]:
        stat = await self.workspace.stat(file_path)
        if stat is None:
            if required:
                raise NotFoundError("File not found")
            return None
        if not _is_regular_file(stat):
            raise ValidationError("Target path is not a file")
        return stat

    async def _create(self, file_path: Path, request: FileOperationRequest) -> Dict[str, Any]:
        await self._existing_file(file_path, required=False)
        await self.workspace.create_directory(file_path.parent)
        await self.workspace.write_file(file_path, (request.content or "").encode("utf-8"))
        return {"success": True, "message": f"Created {request.path}"}

    async def _read(self, file_path: Path) -> Dict[str, Any]:
        await self._existing_file(file_path, required=True)
        data = await self.workspace.read_file(file_path)
        return {"success": True, "content": data.decode("utf-8", errors="replace")}

    async def _append(self, file_path: Path, request: FileOperationRequest) -> Dict[str, Any]:
        existing = await self._existing_file(file_path, required=False)
        current = b""
        if existing is not None:
            current = await self.workspace.read_file(file_path)
        await self.workspace.create_directory(file_path.parent)
        await self.workspace.write_file(file_path, current + (request.content or "").encode("utf-8"))
        return {"success": True, "message": f"Appended to {request.path}"}

    async def _delete(self, file_path: Path, request: FileOperationRequest) -> Dict[str, Any]:
        await self._existing_file(file_path, required=True)
        await self.workspace.delete(file_path)
        return {"success": True, "message": f"Deleted {request.path}"}
