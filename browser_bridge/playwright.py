"""Proxy to the local Playwright automation service."""

import logging
from typing import Any, Dict, Optional

import httpx

from .errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

ACTION_TIMEOUT = 10.0
STATUS_TIMEOUT = 1.5

# Browser client action -> automation service tool
TOOL_MAP: Dict[str, str] = {
    "browser_click": "browser_click",
    "browser_type": "browser_type",
    "browser_navigate": "browser_navigate",
    "browser_navigate_back": "browser_navigate_back",
    "browser_snapshot": "browser_snapshot",
    "browser_drag": "browser_drag",
    "browser_hover": "browser_hover",
    "browser_select_option": "browser_select_option",
    "browser_fill_form": "browser_fill_form",
    "browser_evaluate": "browser_evaluate",
    "browser_wait_for": "browser_wait_for",
    "browser_press_key": "browser_press_key",
    "browser_tabs": "browser_tabs",
    "browser_take_screenshot": "browser_take_screenshot",
    "browser_close": "browser_close",
}


class PlaywrightClient:
    """
    HTTP client for the automation service's `/call` endpoint.

    Raises ValidationError for unknown actions and UpstreamError with
    502 (service error), 503 (unreachable) or 504 (timeout).
    """

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=ACTION_TIMEOUT)

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def is_available(self) -> bool:
        try:
            resp = await self.client.post(
                f"{self.base_url}/call",
                json={"tool": "browser_tabs", "arguments": {"action": "list"}},
                timeout=STATUS_TIMEOUT,
            )
            return resp.is_success
        except httpx.HTTPError:
            return False

    async def execute(self, action: str, params: Dict[str, Any]) -> Any:
        tool = TOOL_MAP.get(action)
        if tool is None:
            raise ValidationError(f"Unknown Playwright action: {action}")

        try:
            resp = await self.client.post(
                f"{self.base_url}/call",
                json={"tool": tool, "arguments": params},
                timeout=ACTION_TIMEOUT,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Automation call timed out for {action}: {e}")
            raise UpstreamError(f"Failed to execute {action}: timed out", status_code=504) from e
        except httpx.HTTPError as e:
            logger.error(f"Automation call failed for {action}: {e}")
            raise UpstreamError(f"Failed to execute {action}: {e}", status_code=503) from e

        if not resp.is_success:
            logger.error(f"Automation call failed: {resp.status_code} {resp.text}")
            raise UpstreamError(f"Automation service error: {resp.status_code} - {resp.text}", status_code=502)

        try:
            return resp.json()
        except ValueError:
            return resp.text
