"""Tests for the Ollama-backed capability model."""

from __future__ import annotations

import json
from typing import List

import httpx
import pytest
from conftest import mock_client

from browser_bridge.capabilities import (
    ChatModelMessage,
    DataPart,
    ModelRequestError,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)
from browser_bridge.ollama_client import OllamaChatModel, OllamaModelProvider, to_ollama_messages
from browser_bridge.tools import TOOL_DEFINITIONS


def ndjson(*chunks: dict) -> bytes:
    return ("\n".join(json.dumps(c) for c in chunks) + "\n").encode("utf-8")


async def collect(model: OllamaChatModel, **kwargs) -> List:
    return [part async for part in model.send_request([ChatModelMessage.user("hi")], **kwargs)]


@pytest.mark.unit
class TestOllamaChatModel:
    """Tests for streaming chat parts."""

    @pytest.mark.asyncio
    async def test_text_and_tool_calls(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=ndjson(
                {"message": {"content": "Let me look."}},
                {"message": {"content": "", "tool_calls": [
                    {"function": {"name": "read_file", "arguments": {"path": "a.md"}}},
                    {"id": "call_x", "function": {"name": "browser_action", "arguments": '{"action": "back"}'}},
                ]}},
                {"message": {"content": ""}, "done": True},
            ))

        model = OllamaChatModel(mock_client(handler), "http://ollama.test", "llama3:8b", "llama")

        parts = await collect(model, tools=TOOL_DEFINITIONS)

        assert parts[0] == TextPart("Let me look.")
        assert parts[1].name == "read_file"
        assert parts[1].input == {"path": "a.md"}
        assert parts[1].call_id.startswith("call_")
        assert parts[2] == ToolCallPart("call_x", "browser_action", {"action": "back"})

        payload = json.loads(seen[0].content)
        assert payload["model"] == "llama3:8b"
        assert payload["stream"] is True
        assert [t["function"]["name"] for t in payload["tools"]][0] == "search_workspace"

    @pytest.mark.asyncio
    async def test_skips_unparsable_lines(self) -> None:
        body = b'not json\n{"message": {"content": "ok"}, "done": true}\n'
        model = OllamaChatModel(
            mock_client(lambda request: httpx.Response(200, content=body)), "http://ollama.test", "m", "m"
        )

        assert await collect(model) == [TextPart("ok")]

    @pytest.mark.asyncio
    async def test_missing_model_raises_not_found(self) -> None:
        model = OllamaChatModel(
            mock_client(lambda request: httpx.Response(404, text="model not found")), "http://ollama.test", "m", "m"
        )

        with pytest.raises(ModelRequestError) as exc_info:
            await collect(model)

        assert exc_info.value.code == "NotFound"

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        model = OllamaChatModel(mock_client(handler), "http://ollama.test", "m", "m")

        with pytest.raises(ModelRequestError) as exc_info:
            await collect(model)

        assert exc_info.value.code == "ConnectionError"


@pytest.mark.unit
class TestOllamaModelProvider:
    """Tests for model enumeration."""

    @pytest.fixture
    def provider(self) -> OllamaModelProvider:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": [
                {"name": "llama3:8b", "details": {"family": "llama"}},
                {"name": "mistral:latest"},
                {"details": {}},
            ]})

        return OllamaModelProvider("http://ollama.test/", client=mock_client(handler))

    @pytest.mark.asyncio
    async def test_lists_all(self, provider: OllamaModelProvider) -> None:
        models = await provider.select_chat_models()
        assert [(m.id, m.family) for m in models] == [("llama3:8b", "llama"), ("mistral:latest", "mistral")]

    @pytest.mark.asyncio
    async def test_filters_by_family(self, provider: OllamaModelProvider) -> None:
        models = await provider.select_chat_models(family="mistral")
        assert [m.id for m in models] == ["mistral:latest"]

    @pytest.mark.asyncio
    async def test_server_down_returns_empty(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        provider = OllamaModelProvider("http://ollama.test", client=mock_client(handler))

        assert await provider.select_chat_models() == []


@pytest.mark.unit
class TestToOllamaMessages:
    """Tests for message flattening."""

    def test_text_and_image(self) -> None:
        message = ChatModelMessage.user([TextPart("look "), TextPart("here"), DataPart(b"\x89PNG", "image/png")])

        assert to_ollama_messages([message]) == [
            {"role": "user", "content": "look here", "images": ["iVBORw=="]},
        ]

    def test_tool_round_trip_messages(self) -> None:
        messages = [
            ChatModelMessage.assistant([ToolCallPart("c1", "read_file", {"path": "a.md"})]),
            ChatModelMessage.user([ToolResultPart("c1", [TextPart("contents")])]),
        ]

        assert to_ollama_messages(messages) == [
            {
                "role": "assistant",
                "content": "",
                "tool_calls": [{"function": {"name": "read_file", "arguments": {"path": "a.md"}}}],
            },
            {"role": "tool", "content": "contents", "tool_call_id": "c1"},
        ]
