"""
Request gateway.

BridgeGateway owns the FastAPI app, the uvicorn server handle, the config
snapshot and every collaborator a request can reach. Nothing here is
module-level state: construct one gateway per server.

Every request passes the origin guard before any body is read:

- an Origin header that is present but not allow-listed -> 403
- no Origin header on anything but GET /health -> 403
- missing or wrong X-Copilot-Bridge-Client header -> 401
- OPTIONS -> 204
"""

import asyncio
import errno
import logging
import socket
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, FrozenSet, Optional, assert_never

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api import router as api_router
from .cancellation import AbortSignal
from .capabilities import ChatModelProvider, TerminalLauncher, WorkspaceFilesystem
from .config import CLIENT_HEADER, CLIENT_HEADER_VALUE, LOOPBACK_HOST, Config
from .errors import AuthenticationError, BridgeError, ForbiddenOriginError, InternalError
from .file_ops import FileOperations
from .generation_loop import ToolLoopOrchestrator
from .models import AgentChatSettings, CapabilityChatSettings, ChatRequest, RemoteChatSettings
from .ollama_client import OllamaModelProvider
from .playwright import PlaywrightClient
from .prompts import build_system_prompt
from .relay import StreamRelay
from .tools import ToolExecutor
from .workspace import LocalWorkspace, SubprocessTerminal

logger = logging.getLogger(__name__)

ALLOW_METHODS = "GET, POST, OPTIONS"
ALLOW_HEADERS = f"Content-Type, {CLIENT_HEADER}"


def error_response(error: BridgeError, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    response_headers = dict(headers or {})
    if error.status_code == 413:
        response_headers["Connection"] = "close"
    return JSONResponse({"error": error.message}, status_code=error.status_code, headers=response_headers)


class BridgeGateway:
    def __init__(
        self,
        config: Config,
        provider: Optional[ChatModelProvider] = None,
        workspace: Optional[WorkspaceFilesystem] = None,
        terminal: Optional[TerminalLauncher] = None,
        relay: Optional[StreamRelay] = None,
        playwright: Optional[PlaywrightClient] = None,
    ):
        self.config = config
        self.allowed_origins: FrozenSet[str] = config.allowed_origins()

        self._owned_provider: Optional[OllamaModelProvider] = None
        if provider is None:
            provider = self._owned_provider = OllamaModelProvider(config.ollama_url)
        self.provider = provider

        if workspace is None and config.workspace_root is not None:
            workspace = LocalWorkspace(config.workspace_root)
        self.workspace = workspace
        self.terminal = terminal or SubprocessTerminal(workspace.root if workspace else None)

        self.relay = relay or StreamRelay(
            provider,
            remote_timeout=config.remote_timeout,
            default_endpoint=config.remote_default_endpoint,
        )
        self.executor = ToolExecutor(workspace, self.terminal, enable_terminal=config.enable_agent_terminal_tool)
        self.orchestrator = ToolLoopOrchestrator(self.relay, self.executor, fallback_model=config.fallback_model)
        self.files = FileOperations(workspace)
        self.playwright = playwright or PlaywrightClient(config.playwright_url)

        self.app = self._build_app()
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def reload_config(self, config: Config):
        """Swap in a new config snapshot. Port changes apply on the next start."""
        if config.port != self.config.port and self.is_running:
            logger.info(f"Port changed to {config.port}; restart the server to apply")
        self.config = config
        self.allowed_origins = config.allowed_origins()
        self.executor.enable_terminal = config.enable_agent_terminal_tool
        logger.info(f"Configuration reloaded: {len(self.allowed_origins)} allowed origins")

    # -------------------------------------------------------------------------
    # App
    # -------------------------------------------------------------------------

    def _build_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            logger.info("=" * 60)
            logger.info("Browser Bridge Starting")
            logger.info("=" * 60)
            logger.info(f"Allowed origins: {', '.join(sorted(self.allowed_origins))}")
            logger.info(f"Workspace: {self.workspace.root if self.workspace else '(none)'}")
            logger.info(f"Capability models: {self.config.ollama_url}")
            logger.info(f"Terminal tool: {'enabled' if self.config.enable_agent_terminal_tool else 'disabled'}")
            logger.info(f"Automation service: {self.config.playwright_url}")
            logger.info("-" * 60)
            logger.info(f"Server ready at http://{LOOPBACK_HOST}:{self.config.port}")
            logger.info("=" * 60)
            yield
            logger.info("Shutting down...")

        app = FastAPI(
            title="Browser Bridge",
            description="Local bridge between a browser extension and chat model backends.",
            version=__version__,
            lifespan=lifespan,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )
        app.state.gateway = self

        app.middleware("http")(self._guard_request)
        app.add_exception_handler(BridgeError, self._handle_bridge_error)
        app.add_exception_handler(StarletteHTTPException, self._handle_http_error)

        app.include_router(api_router)
        return app

    def _cors_headers(self, origin: Optional[str]) -> Dict[str, str]:
        headers = {
            "Access-Control-Allow-Methods": ALLOW_METHODS,
            "Access-Control-Allow-Headers": ALLOW_HEADERS,
        }
        if origin is not None:
            headers["Access-Control-Allow-Origin"] = origin
            headers["Vary"] = "Origin"
        return headers

    async def _guard_request(self, request: Request, call_next):
        origin = request.headers.get("origin")

        if origin is not None and origin not in self.allowed_origins:
            logger.warning(f"Rejected request from origin {origin!r}: {request.method} {request.url.path}")
            return error_response(ForbiddenOriginError("Forbidden origin"))

        cors = self._cors_headers(origin)

        if request.method == "OPTIONS":
            return Response(status_code=204, headers=cors)

        is_health = request.method == "GET" and request.url.path == "/health"
        if not is_health:
            if origin is None:
                logger.warning(f"Rejected request without origin: {request.method} {request.url.path}")
                return error_response(ForbiddenOriginError("Origin header is required"), cors)
            if request.headers.get(CLIENT_HEADER) != CLIENT_HEADER_VALUE:
                logger.warning(f"Rejected request with missing or wrong {CLIENT_HEADER} header")
                return error_response(AuthenticationError("Unauthorized client"), cors)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error on {request.method} {request.url.path}")
            return error_response(InternalError("Internal server error"), cors)
        response.headers.update(cors)
        return response

    async def _handle_bridge_error(self, request: Request, exc: BridgeError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return error_response(exc)

    async def _handle_http_error(self, request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Unknown path and unknown method on a known path are both "no such route"
        if exc.status_code in (404, 405):
            return JSONResponse({"error": "Not found"}, status_code=404)
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

    # -------------------------------------------------------------------------
    # Provider Dispatch
    # -------------------------------------------------------------------------

    def stream_chat(self, request: ChatRequest, abort_signal: AbortSignal) -> AsyncIterator[str]:
        settings = request.settings
        match settings:
            case CapabilityChatSettings():
                return self.relay.stream_capability(
                    settings.copilot.model,
                    build_system_prompt(request.page_content),
                    request.messages,
                    abort_signal,
                )
            case AgentChatSettings():
                return self.orchestrator.run(
                    settings.copilot.model,
                    request.page_content,
                    request.messages,
                    request.screenshot,
                    abort_signal,
                )
            case RemoteChatSettings():
                return self.relay.stream_remote(
                    settings.lm_studio,
                    build_system_prompt(request.page_content),
                    request.messages,
                    abort_signal,
                )
            case _:
                assert_never(settings)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._server is not None

    async def start(self):
        """Bind to loopback and serve in the background."""
        if self._server is not None:
            logger.info("Server already running")
            return

        port = self.config.port
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((LOOPBACK_HOST, port))
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                raise RuntimeError(
                    f"Port {port} is already in use. Stop the other process or set BRIDGE_PORT."
                ) from e
            raise

        server = uvicorn.Server(uvicorn.Config(
            self.app,
            log_level="debug" if self.config.debug else "info",
            access_log=self.config.debug,
        ))
        self._server = server
        self._serve_task = asyncio.create_task(server.serve(sockets=[sock]))

        while not server.started:
            if self._serve_task.done():
                self._server = None
                self._serve_task = None
                sock.close()
                raise RuntimeError(f"Bridge server failed to start on port {port}")
            await asyncio.sleep(0.05)

        logger.info(f"Server listening on http://{LOOPBACK_HOST}:{port}")

    async def wait_closed(self):
        """Block until the server exits (e.g. on SIGINT)."""
        if self._serve_task is not None:
            await self._serve_task

    async def stop(self):
        """Stop serving. Safe to call when not running."""
        if self._server is None:
            return

        server, task = self._server, self._serve_task
        self._server = None
        self._serve_task = None

        server.should_exit = True
        if task is not None:
            await task
        logger.info("Server stopped")

    async def aclose(self):
        """Close owned HTTP clients."""
        await self.relay.close()
        await self.playwright.close()
        if self._owned_provider is not None:
            await self._owned_provider.close()
