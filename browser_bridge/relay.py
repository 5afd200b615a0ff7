"""
Streaming relay.

Normalizes two backend protocols into one lazy stream of text chunks:

- Capability model: in-process model enumerated through a
  ChatModelProvider, cancelled through a CancellationToken
- Remote OpenAI-compatible endpoint: streaming POST to
  /v1/chat/completions, parsed as SSE-style `data:` lines

Both stop emitting as soon as the caller's abort signal fires.
"""

import asyncio
import codecs
import json
import logging
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple

import httpx

from .cancellation import (
    AbortController,
    AbortError,
    AbortSignal,
    CancellationTokenSource,
    bind_abort_signal,
    race_abort,
)
from .capabilities import ChatModel, ChatModelMessage, ChatModelProvider, ModelRequestError, TextPart
from .models import ChatMessage, ModelInfo, RemoteModelSettings

logger = logging.getLogger(__name__)

MAX_LOGGED_PARSE_ERRORS = 3
DEFAULT_REMOTE_MODEL = "local-model"

PERMISSION_ERROR_MESSAGE = (
    "Error: this bridge has no permission to use the language model.\n\n"
    "Grant access to the model in the host application and try again."
)


# =============================================================================
# SSE Line Handling
# =============================================================================

class SSELineBuffer:
    """
    Reassembles lines from arbitrarily split network reads.

    Bytes are decoded incrementally so multi-byte characters split across
    reads survive. `flush` returns whatever is left once the stream closes.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, data: bytes) -> List[str]:
        self._pending += self._decoder.decode(data)
        *lines, self._pending = self._pending.split("\n")
        return lines

    def flush(self) -> List[str]:
        self._pending += self._decoder.decode(b"", final=True)
        rest, self._pending = self._pending, ""
        return [rest] if rest else []


def parse_sse_line(line: str) -> Tuple[bool, Optional[str]]:
    """
    Parse one SSE line into (done, content).

    Non-data lines yield (False, None). Raises ValueError on malformed JSON.
    """
    normalized = line.rstrip()
    if not normalized.startswith("data:"):
        return False, None

    data = normalized[5:].lstrip()
    if data == "[DONE]":
        return True, None

    parsed = json.loads(data)
    return False, _delta_content(parsed)


def _delta_content(parsed: Any) -> Optional[str]:
    if not isinstance(parsed, dict):
        return None
    choices = parsed.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) and content else None


def build_capability_messages(
    system_prompt: str,
    messages: Sequence[ChatMessage],
) -> List[ChatModelMessage]:
    """System prompt as the first user turn, then history in order."""
    chat_messages = [ChatModelMessage.user(system_prompt)]
    for msg in messages:
        if msg.role == "user":
            chat_messages.append(ChatModelMessage.user(msg.content))
        else:
            chat_messages.append(ChatModelMessage.assistant(msg.content))
    return chat_messages


# =============================================================================
# Relay
# =============================================================================

class StreamRelay:
    def __init__(
        self,
        provider: ChatModelProvider,
        client: Optional[httpx.AsyncClient] = None,
        remote_timeout: float = 30.0,
        default_endpoint: str = "http://localhost:1234",
    ):
        self.provider = provider
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(300.0, connect=10.0))
        self.remote_timeout = remote_timeout
        self.default_endpoint = default_endpoint

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def _models(self, family: Optional[str] = None) -> List[ChatModel]:
        try:
            return list(await self.provider.select_chat_models(family=family))
        except Exception as e:
            logger.warning(f"Capability models not available: {e}")
            return []

    async def list_models(self) -> List[ModelInfo]:
        models = [
            ModelInfo(provider="copilot", id=m.family, name=f"{m.name} ({m.family})")
            for m in await self._models()
        ]
        models.append(ModelInfo(provider="lm-studio", id="local", name="LM Studio (Local)"))
        return models

    async def select_model(
        self,
        family: str,
        fallback_to_any: bool = False,
    ) -> Tuple[Optional[ChatModel], List[ChatModel]]:
        """
        Find a model by family, then by id/family substring.

        Returns (model or None, all available models).
        """
        exact = await self._models(family)
        if exact:
            return exact[0], exact

        available = await self._models()
        needle = family.lower()
        matches = [m for m in available if needle in m.id.lower() or needle in m.family.lower()]
        if matches:
            return matches[0], available
        if fallback_to_any and available:
            return available[0], available
        return None, available

    # -------------------------------------------------------------------------
    # Capability model protocol
    # -------------------------------------------------------------------------

    async def stream_capability(
        self,
        model_family: str,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        abort_signal: Optional[AbortSignal] = None,
    ) -> AsyncIterator[str]:
        try:
            model, available = await self.select_model(model_family)

            if model is None:
                yield f'Error: model "{model_family}" was not found.\n\nAvailable models:\n'
                for m in available:
                    yield f"- {m.family} ({m.id})\n"
                return

            logger.info(f"Using model: {model.id} (family: {model.family})")
            yield f"[Using: {model.family}]\n\n"

            chat_messages = build_capability_messages(system_prompt, messages)

            source = CancellationTokenSource()
            try:
                with bind_abort_signal(abort_signal, source.cancel):
                    async for part in model.send_request(chat_messages, token=source.token):
                        if source.token.is_cancellation_requested:
                            break
                        if isinstance(part, TextPart):
                            yield part.value
            finally:
                source.dispose()

        except ModelRequestError as e:
            if e.code == "NoPermissions":
                yield PERMISSION_ERROR_MESSAGE
            else:
                yield f"Error: {e.message} ({e.code})"

    # -------------------------------------------------------------------------
    # Remote OpenAI-compatible protocol
    # -------------------------------------------------------------------------

    async def stream_remote(
        self,
        settings: RemoteModelSettings,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        abort_signal: Optional[AbortSignal] = None,
    ) -> AsyncIterator[str]:
        endpoint = (settings.endpoint or self.default_endpoint).rstrip("/")
        url = f"{endpoint}/v1/chat/completions"
        payload = {
            "model": settings.model or DEFAULT_REMOTE_MODEL,
            "messages": [{"role": "system", "content": system_prompt}]
            + [{"role": m.role, "content": m.content} for m in messages],
            "stream": True,
        }

        # The timeout and the caller share one controller; the flag tells them apart
        controller = AbortController()
        timed_out = False

        def on_timeout():
            nonlocal timed_out
            timed_out = True
            controller.abort("timeout")

        timer = asyncio.get_running_loop().call_later(self.remote_timeout, on_timeout)
        response: Optional[httpx.Response] = None

        logger.info(f"Remote endpoint: connecting to {url}")
        try:
            with bind_abort_signal(abort_signal, controller.abort):
                request = self.client.build_request("POST", url, json=payload)
                response = await race_abort(self.client.send(request, stream=True), controller.signal)
                timer.cancel()
                logger.info(f"Remote endpoint: response status {response.status_code}")

                if not response.is_success:
                    body = await race_abort(response.aread(), controller.signal)
                    error_text = body.decode("utf-8", errors="replace")
                    yield f"Error: remote endpoint request failed ({response.status_code})\n{error_text}"
                    return

                async for content in self._iter_sse_content(response, controller.signal):
                    yield content

        except AbortError:
            if timed_out:
                yield "Error: the remote endpoint timed out. Wait a moment and try again."
            # Caller cancelled: nobody is listening any more
            return
        except httpx.TimeoutException:
            yield "Error: the remote endpoint timed out. Wait a moment and try again."
        except httpx.HTTPError as e:
            logger.error(f"Remote endpoint error: {e}")
            yield (
                "Error: cannot connect to the remote endpoint.\n\n"
                "Check that:\n"
                "1. The model server is running\n"
                "2. Its local server is started\n"
                f"3. The endpoint is correct (default: {self.default_endpoint})\n\n"
                f"Details: {e}"
            )
        finally:
            timer.cancel()
            if response is not None:
                await response.aclose()

    async def _iter_sse_content(
        self,
        response: httpx.Response,
        signal: AbortSignal,
    ) -> AsyncIterator[str]:
        buffer = SSELineBuffer()
        parse_errors = 0
        chunks = response.aiter_bytes()

        while True:
            data = await race_abort(anext(chunks, None), signal)
            lines = buffer.flush() if data is None else buffer.feed(data)

            for line in lines:
                try:
                    done, content = parse_sse_line(line)
                except ValueError:
                    parse_errors += 1
                    if parse_errors <= MAX_LOGGED_PARSE_ERRORS:
                        logger.warning(
                            f"Remote endpoint: failed to parse streamed JSON line ({parse_errors}): "
                            f"{line[:120]}"
                        )
                    continue

                if done:
                    return
                if content:
                    yield content

            if data is None:
                if parse_errors:
                    logger.info(f"Remote endpoint: stream ended with {parse_errors} unparsable lines")
                return
