"""Error taxonomy for xhttp."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .response import Response

__all__ = [
    "XhttpError",
    "ValidationError",
    "TransportConstructionError",
    "NetworkError",
    "StreamError",
    "ResponseError",
    "PREVIEW_LIMIT",
    "preview",
]

PREVIEW_LIMIT = 128


class XhttpError(Exception):
    """Base class for every error raised by xhttp."""


class ValidationError(XhttpError, ValueError):
    """Raised when request parameters or a pipeline input are malformed."""


class TransportConstructionError(XhttpError):
    """Raised when the native request could not even be prepared."""


class NetworkError(XhttpError):
    """Raised by the streaming transport when no response was ever received."""


class StreamError(XhttpError):
    """Raised when draining a response body stream fails."""


def preview(text: str, limit: int = PREVIEW_LIMIT) -> str:
    if len(text) > limit:
        return f"{text[:limit]} ..."
    return text


class ResponseError(XhttpError):
    """Raised by the assertion combinators for a non-ok or incomplete response."""

    def __init__(self, response: "Response") -> None:
        self.status = response.status
        self.status_text = response.status_text
        self.response = response

        stat = response.status or response.status_text
        body = response.body
        if isinstance(body, str) and body:
            detail = preview(body)
        else:
            detail = response.reason.value
        head = f"HTTP error {stat}" if stat else "HTTP error"
        super().__init__(f"{head}: {detail}")
