"""
Browser Bridge - Main Entry Point

Serves the bridge on 127.0.0.1 for the browser extension.

Usage:
    python -m browser_bridge.main [--port PORT] [--workspace DIR]

Environment Variables:
    BRIDGE_PORT                  - Server port (default: 3210)
    BRIDGE_AUTO_START            - Start the server on launch (default: true)
    BRIDGE_ALLOWED_ORIGINS       - Extra chrome-extension:// origins, comma-separated
    BRIDGE_WORKSPACE             - Workspace root for file tools and /file
    BRIDGE_ENABLE_TERMINAL_TOOL  - Allow the agent to run terminal commands (default: false)
    BRIDGE_FALLBACK_MODEL        - Model family used when agent mode fails (default: gpt-4o)
    BRIDGE_REMOTE_TIMEOUT        - Remote endpoint timeout in seconds (default: 30)
    OLLAMA_URL                   - Ollama API URL (default: http://localhost:11434)
    PLAYWRIGHT_URL               - Automation service URL (default: http://127.0.0.1:3001)
    DEBUG                        - Verbose logging
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from fastapi import FastAPI

from .config import Config
from .gateway import BridgeGateway

logger = logging.getLogger(__name__)


def configure_logging(debug: bool):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app() -> FastAPI:
    """App factory for `uvicorn --factory browser_bridge.main:create_app`."""
    return BridgeGateway(Config()).app


async def serve(config: Config):
    gateway = BridgeGateway(config)
    try:
        await gateway.start()
        await gateway.wait_closed()
    finally:
        await gateway.stop()
        await gateway.aclose()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Local bridge for the browser extension")
    parser.add_argument("--port", type=int, help="Server port (overrides BRIDGE_PORT)")
    parser.add_argument("--workspace", type=Path, help="Workspace root (overrides BRIDGE_WORKSPACE)")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


def main(argv=None):
    """Run the bridge server."""
    args = parse_args(argv)

    config = Config()
    if args.port is not None:
        config.port = args.port
    if args.workspace is not None:
        config.workspace_root = args.workspace.expanduser()
    if args.debug:
        config.debug = True

    configure_logging(config.debug)

    if not config.auto_start:
        logger.info("Auto-start disabled (BRIDGE_AUTO_START=false), not starting the server")
        return

    try:
        asyncio.run(serve(config))
    except RuntimeError as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
