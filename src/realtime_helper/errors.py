# errors.py
"""Error taxonomy and the JSON error envelope used by every endpoint."""

from typing import Any, Dict, Optional

from fastapi import status
from fastapi.responses import JSONResponse

# Upstream bodies are truncated to this many characters in error details
MAX_UPSTREAM_BODY_CHARS = 1024


def json_error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    """Build the ``{"error": message, ...extra}`` envelope."""
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


class RealtimeHelperError(Exception):
    """Base class for errors that map onto a JSON error response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}

    def to_response(self) -> JSONResponse:
        return json_error(self.status_code, self.message, **self.extra)


class InvalidArgumentError(RealtimeHelperError):
    status_code = status.HTTP_400_BAD_REQUEST


class SessionIssuerError(RealtimeHelperError):
    """Transport failure while creating a realtime session."""

    def __init__(self, detail: str):
        super().__init__("Token endpoint error", extra={"detail": detail})


class UpstreamTimeoutError(SessionIssuerError):
    """The upstream session endpoint did not answer within the timeout."""

    def __init__(self):
        super().__init__("Upstream timeout")


class UpstreamStatusError(RealtimeHelperError):
    """The upstream session endpoint answered with a non-success status."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, upstream_status: int, body: str):
        super().__init__(
            "Failed to create ephemeral session",
            extra={
                "upStatus": upstream_status,
                "detail": body[:MAX_UPSTREAM_BODY_CHARS],
            },
        )
        self.upstream_status = upstream_status


class UpstreamFormatError(RealtimeHelperError):
    """The upstream session endpoint answered with a body that is not JSON."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, body: str):
        super().__init__(
            "Upstream returned non-JSON",
            extra={"body": body[:MAX_UPSTREAM_BODY_CHARS]},
        )
