"""
Agent-mode generation loop.

Each round invokes the capability model with the accumulated conversation
and the tool definitions. Text parts stream straight to the caller; tool
calls are buffered and, once the model finishes, executed one at a time in
arrival order. The results are appended to the conversation and the model
is invoked again, until a round produces no tool calls or the round limit
is reached.

If anything fails mid-loop the caller still gets an answer: the loop falls
back to a single-shot chat completion with the fallback model.
"""

import base64
import binascii
import logging
import re
from typing import AsyncIterator, List, Optional, Sequence

from .cancellation import AbortSignal, CancellationTokenSource, bind_abort_signal
from .capabilities import ChatModelMessage, DataPart, TextPart, ToolCallPart, ToolResultPart
from .models import ChatMessage, LoopState, ToolCall
from .prompts import build_agent_system_prompt, build_system_prompt
from .relay import StreamRelay, build_capability_messages
from .tools import TOOL_DEFINITIONS, ToolExecutor

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 5
MIN_IMAGE_BYTES = 100


class ToolLoopOrchestrator:
    def __init__(
        self,
        relay: StreamRelay,
        executor: ToolExecutor,
        fallback_model: str = "gpt-4o",
        max_rounds: int = MAX_TOOL_ROUNDS,
    ):
        self.relay = relay
        self.executor = executor
        self.fallback_model = fallback_model
        self.max_rounds = max_rounds

    async def run(
        self,
        model_family: str,
        page_content: str,
        messages: Sequence[ChatMessage],
        screenshot: Optional[str] = None,
        abort_signal: Optional[AbortSignal] = None,
    ) -> AsyncIterator[str]:
        try:
            async for chunk in self._run_loop(model_family, page_content, messages, screenshot, abort_signal):
                yield chunk
        except Exception as e:
            logger.exception("Agent mode error")
            yield f"\n\n⚠️ Agent mode error: {e}"
            yield "\n\nAnswering in chat mode instead...\n\n"

            async for chunk in self.relay.stream_capability(
                self.fallback_model,
                build_system_prompt(page_content),
                messages,
                abort_signal,
            ):
                yield chunk

    async def _run_loop(
        self,
        model_family: str,
        page_content: str,
        messages: Sequence[ChatMessage],
        screenshot: Optional[str],
        abort_signal: Optional[AbortSignal],
    ) -> AsyncIterator[str]:
        model, _ = await self.relay.select_model(model_family, fallback_to_any=True)
        if model is None:
            yield "Error: no model is available for agent mode"
            return

        yield f"[Agent Mode: {model.family}]\n\n"

        system_prompt = build_agent_system_prompt(page_content, screenshot_mode=bool(screenshot))
        chat_messages = build_capability_messages(system_prompt, messages)

        image = decode_screenshot(screenshot) if screenshot else None
        if image is not None:
            chat_messages[0] = ChatModelMessage.user([
                TextPart(system_prompt),
                TextPart("\n\n## Screenshot (current page):"),
                image,
            ])

        source = CancellationTokenSource()
        state = LoopState.INVOKING_MODEL
        rounds = 0

        try:
            with bind_abort_signal(abort_signal, source.cancel):
                while state is LoopState.INVOKING_MODEL:
                    rounds += 1
                    logger.info(f"Agent round {rounds}/{self.max_rounds} with {len(chat_messages)} messages")

                    tool_calls: List[ToolCall] = []
                    async for part in model.send_request(chat_messages, tools=TOOL_DEFINITIONS, token=source.token):
                        if source.token.is_cancellation_requested:
                            break
                        if isinstance(part, TextPart):
                            yield part.value
                        elif isinstance(part, ToolCallPart):
                            tool_calls.append(ToolCall(call_id=part.call_id, name=part.name, parameters=part.input))

                    if not tool_calls or source.token.is_cancellation_requested:
                        state = LoopState.DONE
                        break

                    state = LoopState.EXECUTING_TOOLS
                    call_parts: List[ToolCallPart] = []
                    result_parts: List[ToolResultPart] = []

                    for call in tool_calls:
                        yield f"\n\n🔧 Tool: {call.name}\n"
                        result = await self.executor.execute(call.name, call.parameters)
                        logger.info(f"Tool {call.name} -> success={result.success}")
                        yield f"📋 Result: {result.result}\n"

                        call_parts.append(ToolCallPart(call.call_id, call.name, dict(call.parameters)))
                        result_parts.append(ToolResultPart(call.call_id, [TextPart(result.result)]))

                    chat_messages.append(ChatModelMessage.assistant(call_parts))
                    chat_messages.append(ChatModelMessage.user(result_parts))

                    if rounds >= self.max_rounds:
                        logger.warning(f"Agent loop stopped after {rounds} rounds")
                        state = LoopState.DONE
                    elif source.token.is_cancellation_requested:
                        state = LoopState.DONE
                    else:
                        state = LoopState.INVOKING_MODEL
        finally:
            source.dispose()


# =============================================================================
# Screenshot Handling
# =============================================================================

def detect_image_mime(data: bytes) -> Optional[str]:
    """MIME type from magic numbers: PNG, JPEG or WEBP."""
    if data[:4] == b"\x89PNG":
        return "image/png"
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def decode_screenshot(screenshot: str) -> Optional[DataPart]:
    """
    Decode a raw base64 or data-URL screenshot.

    The detected format wins over the declared MIME type. Returns None for
    payloads that are too small or not PNG/JPEG/WEBP, so the request goes
    out text-only.
    """
    normalized = screenshot.strip()
    b64_data = normalized
    mime_type = "image/png"

    if normalized.startswith("data:"):
        comma = normalized.find(",")
        if comma != -1:
            header_mime = normalized[5:comma].split(";")[0].strip().lower()
            if header_mime:
                mime_type = "image/jpeg" if header_mime == "image/jpg" else header_mime
            b64_data = normalized[comma + 1:]

    b64_data = re.sub(r"\s+", "", b64_data)
    b64_data += "=" * (-len(b64_data) % 4)

    try:
        data = base64.b64decode(b64_data)
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Screenshot is not valid base64, skipping image: {e}")
        return None

    if len(data) < MIN_IMAGE_BYTES:
        logger.warning(f"Screenshot data too small ({len(data)} bytes), skipping image")
        return None

    detected = detect_image_mime(data)
    if detected is None:
        logger.warning("Screenshot format unsupported or invalid, skipping image")
        return None

    if detected != mime_type:
        logger.info(f"Screenshot is {detected} but declared {mime_type}, correcting")

    return DataPart(data=data, mime_type=detected)
