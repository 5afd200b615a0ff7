"""Ollama-backed capability chat model."""

import base64
import json
import logging
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .cancellation import AbortError, CancellationToken, race_abort
from .capabilities import (
    ChatModelMessage,
    ChatTool,
    DataPart,
    ModelRequestError,
    ResponsePart,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)
from .tools import tool_definitions_as_openai

logger = logging.getLogger(__name__)


class OllamaChatModel:
    """
    One Ollama model exposed through the capability model interface.

    send_request streams:
    - TextPart for content deltas
    - ToolCallPart for each tool call the model emits
    """

    vendor = "ollama"

    def __init__(self, client: httpx.AsyncClient, base_url: str, name: str, family: str):
        self.client = client
        self.base_url = base_url
        self.id = name
        self.name = name
        self.family = family

    async def send_request(
        self,
        messages: List[ChatModelMessage],
        tools: Optional[List[ChatTool]] = None,
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[ResponsePart]:
        payload: Dict[str, Any] = {
            "model": self.id,
            "messages": to_ollama_messages(messages),
            "stream": True,
        }
        if tools:
            payload["tools"] = tool_definitions_as_openai(tools)

        tools_count = len(tools) if tools else 0
        logger.info(f"Starting chat stream: model={self.id}, messages={len(messages)}, tools={tools_count}")

        try:
            async with self.client.stream("POST", f"{self.base_url}/api/chat", json=payload) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    code = "NotFound" if response.status_code == 404 else f"HTTP{response.status_code}"
                    raise ModelRequestError(f"Ollama HTTP error {response.status_code}: {body[:200]}", code)

                lines = response.aiter_lines()
                while True:
                    line = await race_abort(anext(lines, None), token)
                    if line is None:
                        return
                    if not line:
                        continue

                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(f"Failed to parse chunk: {line[:100]}")
                        continue

                    message = chunk.get("message", {})

                    for tc in message.get("tool_calls", []) or []:
                        func = tc.get("function", {})
                        arguments = func.get("arguments", {})
                        if isinstance(arguments, str):
                            try:
                                arguments = json.loads(arguments)
                            except json.JSONDecodeError:
                                arguments = {}
                        yield ToolCallPart(
                            call_id=tc.get("id") or f"call_{uuid.uuid4().hex[:8]}",
                            name=func.get("name", ""),
                            input=arguments if isinstance(arguments, dict) else {},
                        )

                    content = message.get("content", "")
                    if content:
                        yield TextPart(content)

                    if chunk.get("done"):
                        return

        except AbortError:
            logger.info(f"Chat stream cancelled: model={self.id}")
        except httpx.HTTPError as e:
            logger.error(f"Ollama stream error: {e}")
            raise ModelRequestError(f"Ollama request failed: {e}", "ConnectionError") from e


class OllamaModelProvider:
    """Enumerates models from a local Ollama server."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(300.0, connect=10.0))

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def select_chat_models(self, family: Optional[str] = None) -> List[OllamaChatModel]:
        try:
            resp = await self.client.get(f"{self.base_url}/api/tags")
            resp.raise_for_status()
            data = resp.json()
        except Exception as e:
            logger.error(f"Failed to list models: {e}")
            return []

        models = []
        for m in data.get("models", []):
            name = m.get("name") or m.get("model")
            if not name:
                continue
            model_family = (m.get("details") or {}).get("family") or name.split(":")[0]
            models.append(OllamaChatModel(self.client, self.base_url, name, model_family))

        if family:
            models = [m for m in models if m.family == family]
        return models


def to_ollama_messages(messages: List[ChatModelMessage]) -> List[Dict[str, Any]]:
    """Flatten capability messages into Ollama chat messages."""
    result: List[Dict[str, Any]] = []

    for msg in messages:
        texts: List[str] = []
        images: List[str] = []
        tool_calls: List[Dict[str, Any]] = []

        for part in msg.content:
            if isinstance(part, TextPart):
                texts.append(part.value)
            elif isinstance(part, DataPart):
                images.append(base64.b64encode(part.data).decode("ascii"))
            elif isinstance(part, ToolCallPart):
                tool_calls.append({"function": {"name": part.name, "arguments": part.input}})
            elif isinstance(part, ToolResultPart):
                result.append({
                    "role": "tool",
                    "content": "".join(p.value for p in part.content),
                    "tool_call_id": part.call_id,
                })

        if texts or images or tool_calls:
            entry: Dict[str, Any] = {"role": msg.role, "content": "".join(texts)}
            if images:
                entry["images"] = images
            if tool_calls:
                entry["tool_calls"] = tool_calls
            result.append(entry)

    return result
