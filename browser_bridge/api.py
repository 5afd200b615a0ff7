"""
Bridge HTTP routes.

All routes except /health sit behind the gateway's origin guard. Handlers
reach their collaborators through the BridgeGateway stored on
`app.state.gateway`.
"""

import json
import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any, AsyncIterator, Type, TypeVar

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from starlette.requests import ClientDisconnect

from . import __version__
from .cancellation import AbortController
from .config import MAX_BODY_BYTES
from .errors import BridgeError, InternalError, PayloadTooLargeError, ValidationError
from .models import ChatRequest, FileOperationRequest, PlaywrightRequest

if TYPE_CHECKING:
    from .gateway import BridgeGateway

logger = logging.getLogger(__name__)

router = APIRouter()

PLAYWRIGHT_BRIDGE_VERSION = "1.0.0"

M = TypeVar("M", bound=BaseModel)


def get_gateway(request: Request) -> "BridgeGateway":
    return request.app.state.gateway


# =============================================================================
# Body Handling
# =============================================================================

async def read_json_body(request: Request, limit: int = MAX_BODY_BYTES) -> Any:
    """
    Read and parse a JSON body, enforcing `limit` while streaming.

    Raises PayloadTooLargeError past the limit and ValidationError for an
    empty or malformed body.
    """
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError("Request body too large")

    chunks = []
    received = 0
    try:
        async for chunk in request.stream():
            received += len(chunk)
            if received > limit:
                raise PayloadTooLargeError("Request body too large")
            chunks.append(chunk)
    except ClientDisconnect as e:
        raise ValidationError("Request body was not fully received") from e

    body = b"".join(chunks)
    if not body.strip():
        raise ValidationError("Request body is required")

    try:
        return json.loads(body)
    except ValueError as e:
        raise ValidationError(f"Invalid JSON: {e}") from e


def format_schema_error(error: SchemaError) -> str:
    """One message per rejected field, e.g. `settings.copilot.model: Field required`."""
    problems = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "body"
        problems.append(f"{location}: {err['msg']}")
    return "Invalid request: " + "; ".join(problems)


def parse_body(model: Type[M], body: Any) -> M:
    try:
        return model.model_validate(body)
    except SchemaError as e:
        raise ValidationError(format_schema_error(e)) from e


# =============================================================================
# Routes
# =============================================================================

@router.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


@router.get("/models")
async def list_models(request: Request):
    """Capability models plus the remote endpoint entry."""
    models = await get_gateway(request).relay.list_models()
    return [m.model_dump() for m in models]


@router.post("/chat")
async def chat(request: Request):
    """
    Stream a chat completion as chunked text/plain.

    Once the first chunk is out the status is fixed, so failures after that
    point are appended to the stream as `Error: ...` text.
    """
    gateway = get_gateway(request)
    body = await read_json_body(request)
    chat_request = parse_body(ChatRequest, body)

    logger.info(
        f"Chat request: provider={chat_request.settings.provider}, "
        f"messages={len(chat_request.messages)}, "
        f"screenshot={'yes' if chat_request.screenshot else 'no'}"
    )

    return StreamingResponse(
        stream_chat_response(gateway, chat_request),
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache"},
    )


async def stream_chat_response(gateway: "BridgeGateway", chat_request: ChatRequest) -> AsyncIterator[str]:
    controller = AbortController()
    finished = False

    try:
        async with aclosing(gateway.stream_chat(chat_request, controller.signal)) as stream:
            async for chunk in stream:
                yield chunk
        finished = True
    except Exception as e:
        logger.exception("Chat stream failed")
        finished = True
        yield f"\n\nError: {e}"
    finally:
        # Generator closed before the backend finished: the client went away
        if not finished:
            logger.info("Chat stream closed early, aborting backend request")
            controller.abort("client disconnected")


@router.post("/file")
async def file_operation(request: Request):
    """Create, read, append or delete a file under the workspace root."""
    gateway = get_gateway(request)
    body = await read_json_body(request)
    file_request = parse_body(FileOperationRequest, body)

    try:
        return await gateway.files.handle(file_request)
    except BridgeError:
        raise
    except Exception as e:
        logger.exception(f"File operation failed: {file_request.action} {file_request.path}")
        raise InternalError(str(e)) from e


@router.post("/playwright")
async def playwright_action(request: Request):
    """Forward a browser_* action to the automation service."""
    gateway = get_gateway(request)

    try:
        body = await read_json_body(request)
        action_request = parse_body(PlaywrightRequest, body)
        data = await gateway.playwright.execute(action_request.action, action_request.params)
    except PayloadTooLargeError:
        raise
    except BridgeError as e:
        return JSONResponse({"success": False, "error": e.message}, status_code=e.status_code)

    return {"success": True, "message": f"Executed {action_request.action}", "data": data}


@router.get("/playwright/status")
async def playwright_status(request: Request):
    available = await get_gateway(request).playwright.is_available()
    return {"available": available, "version": PLAYWRIGHT_BRIDGE_VERSION}
