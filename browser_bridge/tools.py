"""
Agent tools.

ToolExecutor runs one named tool call and always returns a ToolResult;
failures are reported as `success=False`, never raised. Tools that touch
the filesystem go through path_safety first.
"""

import base64
import logging
from typing import Any, Dict, List, Mapping, Optional

from .capabilities import ChatTool, TerminalLauncher, WorkspaceFilesystem
from .models import ToolResult
from .path_safety import is_safe_relative_path, to_workspace_file_path

logger = logging.getLogger(__name__)

SEARCH_MAX_FILES = 200
SEARCH_MAX_RESULTS = 20
READ_FILE_MAX_CHARS = 3000

DOWNLOAD_PREFIX = "__DOWNLOAD_FILE__"
DOWNLOAD_SUFFIX = "__END_DOWNLOAD__"

BROWSER_ACTIONS = ["navigate", "click", "type", "scroll", "back", "forward", "reload"]


TOOL_DEFINITIONS: List[ChatTool] = [
    ChatTool(
        name="search_workspace",
        description="Search the workspace for files whose path matches a query.",
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Case-insensitive substring to look for in file paths"},
                "filePattern": {"type": "string", "description": "Glob pattern (e.g. **/*.ts)"},
            },
            "required": ["query"],
        },
    ),
    ChatTool(
        name="read_file",
        description="Read a file from the workspace.",
        input_schema={
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Workspace-relative file path"},
            },
            "required": ["path"],
        },
    ),
    ChatTool(
        name="create_file",
        description="Create a new file with the given content. The user's browser downloads it.",
        input_schema={
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Workspace-relative file path"},
                "content": {"type": "string", "description": "File content"},
            },
            "required": ["path", "content"],
        },
    ),
    ChatTool(
        name="run_terminal",
        description="Run a command in a terminal. Output is not captured.",
        input_schema={
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "Command to run"},
            },
            "required": ["command"],
        },
    ),
    ChatTool(
        name="browser_action",
        description="Operate the browser. Give CSS selectors precisely.",
        input_schema={
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": BROWSER_ACTIONS, "description": "Action type"},
                "selector": {
                    "type": "string",
                    "description": "CSS selector (e.g. #submit-btn, .btn-primary, button[data-test='agree'])",
                },
                "value": {"type": "string", "description": "URL for navigate, or the text for type"},
            },
            "required": ["action"],
        },
    ),
]


def _str_param(params: Mapping[str, Any], key: str) -> Optional[str]:
    value = params.get(key)
    return value if isinstance(value, str) else None


def encode_download(path: str, content: str) -> str:
    """Wrap file content in the delimited payload the browser client extracts."""
    b64 = base64.b64encode(content.encode("utf-8")).decode("ascii")
    return f"{DOWNLOAD_PREFIX}:{path}:{b64}:{DOWNLOAD_SUFFIX}"


def format_browser_action(action: str, selector: str = "", value: str = "") -> str:
    """Translate a structured browser action into `[ACTION: ...]` text."""
    if action == "navigate":
        return f"[ACTION: navigate, {value or selector}]"
    if action == "click":
        return f"[ACTION: click, {selector}]"
    if action == "type":
        return f"[ACTION: type, {selector}, {value}]"
    if action == "scroll":
        return f"[ACTION: scroll, {value or 'down'}]"
    if action in ("back", "forward", "reload"):
        return f"[ACTION: {action}]"
    return f"[ACTION: {action}, {selector or value}]"


class ToolExecutor:
    """Executes tool calls against the workspace, a terminal and the browser action syntax."""

    def __init__(
        self,
        workspace: Optional[WorkspaceFilesystem],
        terminal: Optional[TerminalLauncher] = None,
        enable_terminal: bool = False,
    ):
        self.workspace = workspace
        self.terminal = terminal
        self.enable_terminal = enable_terminal

    async def execute(self, name: str, params: Mapping[str, Any]) -> ToolResult:
        handler = {
            "search_workspace": self._search_workspace,
            "read_file": self._read_file,
            "create_file": self._create_file,
            "run_terminal": self._run_terminal,
            "browser_action": self._browser_action,
        }.get(name)

        if handler is None:
            return ToolResult(success=False, result=f"Unknown tool: {name}")

        if not isinstance(params, Mapping):
            params = {}

        try:
            return await handler(params)
        except Exception as e:
            logger.warning(f"Tool {name} failed: {e}")
            return ToolResult(success=False, result=f"Tool execution error: {e}")

    async def _search_workspace(self, params: Mapping[str, Any]) -> ToolResult:
        if self.workspace is None:
            return ToolResult(success=False, result="No workspace folder open")

        query = (_str_param(params, "query") or "").strip().lower()
        pattern = _str_param(params, "filePattern")
        if not pattern or not pattern.strip():
            pattern = "**/*"

        files = await self.workspace.find_files(pattern, SEARCH_MAX_FILES)
        relative = [self.workspace.as_relative_path(f) for f in files]
        matches = [f for f in relative if query in f.lower()] if query else relative

        listing = "\n".join(matches[:SEARCH_MAX_RESULTS]) or "none"
        return ToolResult(success=True, result=f"Found {len(matches)} files:\n{listing}")

    async def _read_file(self, params: Mapping[str, Any]) -> ToolResult:
        root = self.workspace.root if self.workspace is not None else None
        file_path = to_workspace_file_path(root, params.get("path"))
        if file_path is None:
            return ToolResult(
                success=False,
                result="Invalid file path (files outside the workspace cannot be read)",
            )

        data = await self.workspace.read_file(file_path)
        text = data.decode("utf-8", errors="replace")
        return ToolResult(success=True, result=text[:READ_FILE_MAX_CHARS])

    async def _create_file(self, params: Mapping[str, Any]) -> ToolResult:
        path = params.get("path")
        if not is_safe_relative_path(path):
            return ToolResult(success=False, result="Invalid file path (only relative paths are allowed)")

        content = params.get("content")
        if not isinstance(content, str):
            return ToolResult(success=False, result="Invalid file content (must be a string)")

        # Handed to the caller for an explicit write/download, not written here
        return ToolResult(success=True, result=encode_download(path, content))

    async def _run_terminal(self, params: Mapping[str, Any]) -> ToolResult:
        if not self.enable_terminal or self.terminal is None:
            return ToolResult(
                success=False,
                result="run_terminal is disabled. Set BRIDGE_ENABLE_TERMINAL_TOOL=true to enable it.",
            )

        command = (_str_param(params, "command") or "").strip()
        if not command:
            return ToolResult(success=False, result="Invalid command (empty commands cannot be run)")

        await self.terminal.launch(command)
        return ToolResult(success=True, result=f"Command sent to terminal: {command}")

    async def _browser_action(self, params: Mapping[str, Any]) -> ToolResult:
        action = (_str_param(params, "action") or "").strip()
        if not action:
            return ToolResult(success=False, result="Invalid browser_action (action is required)")

        selector = _str_param(params, "selector") or ""
        value = _str_param(params, "value") or ""
        return ToolResult(success=True, result=format_browser_action(action, selector, value))


def tool_definitions_as_openai(tools: List[ChatTool]) -> List[Dict[str, Any]]:
    """Tool definitions in the OpenAI/Ollama function-calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.input_schema,
            },
        }
        for t in tools
    ]
