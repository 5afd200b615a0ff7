"""Error taxonomy for the bridge gateway.

Every error carries the HTTP status it maps to. The gateway renders them
as ``{"error": message}``.
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationError(BridgeError):
    """Missing or wrong client header."""
    status_code = 401


class ForbiddenOriginError(AuthenticationError):
    """Origin header missing or not on the allow-list."""
    status_code = 403


class ValidationError(BridgeError):
    """Request body failed schema validation."""
    status_code = 400


class PayloadTooLargeError(BridgeError):
    status_code = 413


class NotFoundError(BridgeError):
    status_code = 404


class UpstreamError(BridgeError):
    """Remote backend or automation service failure (502/503/504)."""
    status_code = 502


class InternalError(BridgeError):
    status_code = 500
