"""Shared test fixtures and fakes for browser_bridge tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from browser_bridge.capabilities import ChatModelMessage, ChatTool, ResponsePart, TextPart
from browser_bridge.config import CLIENT_HEADER, CLIENT_HEADER_VALUE, DEFAULT_ALLOWED_ORIGINS, Config
from browser_bridge.gateway import BridgeGateway
from browser_bridge.playwright import PlaywrightClient
from browser_bridge.relay import StreamRelay
from browser_bridge.workspace import LocalWorkspace

EXTENSION_ORIGIN = DEFAULT_ALLOWED_ORIGINS[0]
CLIENT_HEADERS = {"Origin": EXTENSION_ORIGIN, CLIENT_HEADER: CLIENT_HEADER_VALUE}


class FakeChatModel:
    """
    Capability model that replays scripted responses.

    Each send_request call consumes the next script; once they run out,
    `repeat` is replayed (or a single "done" text part).
    """

    vendor = "test"

    def __init__(
        self,
        family: str,
        scripts: Optional[List[List[ResponsePart]]] = None,
        repeat: Optional[List[ResponsePart]] = None,
        error: Optional[Exception] = None,
        name: Optional[str] = None,
    ):
        self.id = f"test-{family}"
        self.family = family
        self.name = name or family.upper()
        self.scripts = list(scripts or [])
        self.repeat = repeat
        self.error = error
        self.calls: List[List[ChatModelMessage]] = []
        self.tools_seen: List[Optional[List[ChatTool]]] = []
        self.tokens: List[Any] = []

    async def send_request(self, messages, tools=None, token=None):
        self.calls.append(list(messages))
        self.tools_seen.append(tools)
        self.tokens.append(token)
        if self.error is not None:
            raise self.error

        if self.scripts:
            script = self.scripts.pop(0)
        elif self.repeat is not None:
            script = self.repeat
        else:
            script = [TextPart("done")]

        for part in script:
            yield part


class FakeProvider:
    def __init__(self, models: List[FakeChatModel]):
        self.models = models
        self.error: Optional[Exception] = None

    async def select_chat_models(self, family: Optional[str] = None) -> List[FakeChatModel]:
        if self.error is not None:
            raise self.error
        if family is None:
            return list(self.models)
        return [m for m in self.models if m.family == family]


class FakeTerminal:
    def __init__(self):
        self.commands: List[str] = []

    async def launch(self, command: str) -> None:
        self.commands.append(command)


def sse_body(*contents: str, done: bool = True) -> bytes:
    """Build an OpenAI-style streaming body."""
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": c}}]})
        for c in contents
    ]
    if done:
        lines.append("data: [DONE]")
    return ("\n".join(lines) + "\n").encode("utf-8")


def mock_client(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def workspace(workspace_root: Path) -> LocalWorkspace:
    return LocalWorkspace(workspace_root)


@pytest.fixture
def terminal() -> FakeTerminal:
    return FakeTerminal()


@pytest.fixture
def fake_model() -> FakeChatModel:
    return FakeChatModel("llama", scripts=[[TextPart("Hello"), TextPart(" world")]], name="Llama 3")


@pytest.fixture
def fake_provider(fake_model: FakeChatModel) -> FakeProvider:
    return FakeProvider([fake_model])


@pytest.fixture
def bridge_config(workspace_root: Path) -> Config:
    return Config(
        port=0,
        auto_start=True,
        debug=False,
        extra_allowed_origins=[],
        workspace_root=workspace_root,
        enable_agent_terminal_tool=False,
        ollama_url="http://ollama.test",
        fallback_model="gpt-4o",
        remote_timeout=5.0,
        playwright_url="http://playwright.test",
    )


@pytest.fixture
def remote_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def remote_handler(remote_requests: List[httpx.Request]) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        remote_requests.append(request)
        return httpx.Response(200, content=sse_body("Hi", " there"))

    return handler


@pytest.fixture
def playwright_handler() -> Dict[str, Any]:
    """Mutable holder so tests can swap the automation service's behaviour."""
    return {"handler": lambda request: httpx.Response(200, json={"ok": True})}


@pytest.fixture
def gateway(
    bridge_config: Config,
    fake_provider: FakeProvider,
    workspace: LocalWorkspace,
    terminal: FakeTerminal,
    remote_handler: Callable[[httpx.Request], httpx.Response],
    playwright_handler: Dict[str, Any],
) -> BridgeGateway:
    relay = StreamRelay(fake_provider, client=mock_client(remote_handler), remote_timeout=5.0)
    playwright = PlaywrightClient(
        bridge_config.playwright_url,
        client=mock_client(lambda request: playwright_handler["handler"](request)),
    )
    return BridgeGateway(
        bridge_config,
        provider=fake_provider,
        workspace=workspace,
        terminal=terminal,
        relay=relay,
        playwright=playwright,
    )


@pytest.fixture
def client(gateway: BridgeGateway) -> TestClient:
    """Client that sends the extension origin and client header."""
    return TestClient(gateway.app, headers=CLIENT_HEADERS)


@pytest.fixture
def anonymous_client(gateway: BridgeGateway) -> TestClient:
    return TestClient(gateway.app)
