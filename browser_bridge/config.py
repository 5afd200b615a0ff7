"""Bridge configuration."""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# The server only ever binds to loopback
LOOPBACK_HOST = "127.0.0.1"

DEFAULT_ALLOWED_ORIGINS = ("chrome-extension://nggfpdadfepkbpjfnpcihagbnnfpeian",)
EXTENSION_ORIGIN_PATTERN = re.compile(r"^chrome-extension://[a-p]{32}$")

CLIENT_HEADER = "X-Copilot-Bridge-Client"
CLIENT_HEADER_VALUE = "chrome-extension"

MAX_BODY_BYTES = 5 * 1024 * 1024


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    return [v.strip() for v in os.getenv(name, "").split(",") if v.strip()]


def _env_path(name: str) -> Optional[Path]:
    value = os.getenv(name, "").strip()
    return Path(value).expanduser() if value else None


@dataclass
class Config:
    """Configuration loaded from environment variables."""

    # Server
    port: int = field(default_factory=lambda: int(os.getenv("BRIDGE_PORT", "3210")))
    auto_start: bool = field(default_factory=lambda: _env_bool("BRIDGE_AUTO_START", True))
    debug: bool = field(default_factory=lambda: _env_bool("DEBUG", False))

    # Security
    extra_allowed_origins: List[str] = field(default_factory=lambda: _env_list("BRIDGE_ALLOWED_ORIGINS"))

    # Workspace / tools
    workspace_root: Optional[Path] = field(default_factory=lambda: _env_path("BRIDGE_WORKSPACE"))
    enable_agent_terminal_tool: bool = field(
        default_factory=lambda: _env_bool("BRIDGE_ENABLE_TERMINAL_TOOL", False))

    # Backends
    ollama_url: str = field(default_factory=lambda: os.getenv("OLLAMA_URL", "http://localhost:11434"))
    fallback_model: str = field(default_factory=lambda: os.getenv("BRIDGE_FALLBACK_MODEL", "gpt-4o"))
    remote_default_endpoint: str = "http://localhost:1234"
    remote_timeout: float = field(default_factory=lambda: float(os.getenv("BRIDGE_REMOTE_TIMEOUT", "30")))

    # Browser automation service
    playwright_url: str = field(default_factory=lambda: os.getenv("PLAYWRIGHT_URL", "http://127.0.0.1:3001"))

    def allowed_origins(self) -> FrozenSet[str]:
        """Default extension origin plus configured ones that match the extension-id pattern."""
        origins = set(DEFAULT_ALLOWED_ORIGINS)
        for origin in self.extra_allowed_origins:
            origin = origin.strip()
            if EXTENSION_ORIGIN_PATTERN.match(origin):
                origins.add(origin)
            else:
                logger.warning(f"Ignoring invalid allowed origin: {origin!r}")
        return frozenset(origins)
