"""
Interfaces for the external collaborators the bridge consumes.

- ChatModelProvider / ChatModel: in-process capability model that can
  enumerate models and stream completions (text and tool-call parts)
- WorkspaceFilesystem: stat/read/write/delete under a single root
- TerminalLauncher: fire-and-forget command execution

Concrete implementations live in ollama_client.py and workspace.py.
"""

from dataclasses import dataclass, field
from enum import IntFlag
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence, Union

from .cancellation import CancellationToken


# ============================================================================
# Message Parts
# ============================================================================

@dataclass
class TextPart:
    value: str


@dataclass
class ToolCallPart:
    call_id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResultPart:
    call_id: str
    content: List[TextPart] = field(default_factory=list)


@dataclass
class DataPart:
    """Binary payload (an image) attached to a message."""
    data: bytes
    mime_type: str


MessagePart = Union[TextPart, ToolCallPart, ToolResultPart, DataPart]
ResponsePart = Union[TextPart, ToolCallPart]


@dataclass
class ChatModelMessage:
    """Message sent to a capability model. There is no system role."""
    role: str
    content: List[MessagePart]

    @classmethod
    def user(cls, content: Union[str, Sequence[MessagePart]]) -> "ChatModelMessage":
        parts = [TextPart(content)] if isinstance(content, str) else list(content)
        return cls(role="user", content=parts)

    @classmethod
    def assistant(cls, content: Union[str, Sequence[MessagePart]]) -> "ChatModelMessage":
        parts = [TextPart(content)] if isinstance(content, str) else list(content)
        return cls(role="assistant", content=parts)

    @property
    def text(self) -> str:
        return "".join(p.value for p in self.content if isinstance(p, TextPart))


@dataclass
class ChatTool:
    """Tool definition offered to the model."""
    name: str
    description: str
    input_schema: Dict[str, Any]


class ModelRequestError(Exception):
    """A capability model rejected or failed a request."""

    def __init__(self, message: str, code: str = "Unknown"):
        super().__init__(message)
        self.message = message
        self.code = code


# ============================================================================
# Collaborator Protocols
# ============================================================================

class ChatModel(Protocol):
    id: str
    family: str
    name: str
    vendor: str

    def send_request(
        self,
        messages: List[ChatModelMessage],
        tools: Optional[List[ChatTool]] = None,
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[ResponsePart]:
        ...


class ChatModelProvider(Protocol):
    async def select_chat_models(self, family: Optional[str] = None) -> List[ChatModel]:
        ...


class FileType(IntFlag):
    UNKNOWN = 0
    FILE = 1
    DIRECTORY = 2
    SYMLINK = 64


@dataclass
class FileStat:
    type: FileType
    size: int


class WorkspaceFilesystem(Protocol):
    root: Path

    async def stat(self, path: Path) -> Optional[FileStat]:
        ...

    async def read_file(self, path: Path) -> bytes:
        ...

    async def write_file(self, path: Path, data: bytes) -> None:
        ...

    async def create_directory(self, path: Path) -> None:
        ...

    async def delete(self, path: Path) -> None:
        ...

    async def find_files(self, pattern: str, max_results: int) -> List[Path]:
        ...

    def as_relative_path(self, path: Path) -> str:
        ...


class TerminalLauncher(Protocol):
    async def launch(self, command: str) -> None:
        ...
