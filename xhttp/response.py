"""Canonical response value and the terminal responses it can take."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from .headers import HeaderValue
from .params import Params

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .lifecycle import RequestHandle

__all__ = [
    "Reason",
    "Response",
    "abort_response",
    "error_response",
    "is_status_ok",
    "load_response",
    "remote_abort_response",
    "timeout_response",
]


class Reason(str, Enum):
    """Terminal cause of a request."""

    LOAD = "load"
    ERROR = "error"
    TIMEOUT = "timeout"
    ABORT = "abort"
    REMOTE_ABORT = "remoteAbort"


def is_status_ok(status: object) -> bool:
    if isinstance(status, bool) or not isinstance(status, int):
        return False
    return 200 <= status <= 299


@dataclass(frozen=True)
class Response:
    """Uniform result of one request, whatever its terminal reason."""

    reason: Reason
    ok: bool
    complete: bool
    status: int
    status_text: str
    headers: dict[str, HeaderValue]
    body: Any
    params: Params
    handle: Optional["RequestHandle"] = field(default=None, compare=False, repr=False)
    body_text: Optional[str] = None

    def replace(self, **changes: Any) -> "Response":
        return dataclasses.replace(self, **changes)


def load_response(
    handle: "RequestHandle",
    status: int,
    status_text: str,
    headers: dict[str, HeaderValue],
    body: Any,
    *,
    complete: bool,
) -> Response:
    return Response(
        reason=Reason.LOAD,
        ok=is_status_ok(status),
        complete=complete,
        status=status,
        status_text=status_text,
        headers=headers,
        body=body,
        params=handle.params,
        handle=handle,
    )


def _failed(handle: "RequestHandle", reason: Reason, status: int, status_text: str) -> Response:
    return Response(
        reason=reason,
        ok=False,
        complete=False,
        status=status,
        status_text=status_text,
        headers={},
        body="",
        params=handle.params,
        handle=handle,
    )


def error_response(handle: "RequestHandle", description: str) -> Response:
    return _failed(handle, Reason.ERROR, 0, description)


def timeout_response(handle: "RequestHandle") -> Response:
    return _failed(handle, Reason.TIMEOUT, 408, "request timeout")


def abort_response(handle: "RequestHandle") -> Response:
    return _failed(handle, Reason.ABORT, 0, "aborted by client")


def remote_abort_response(handle: "RequestHandle") -> Response:
    return _failed(handle, Reason.REMOTE_ABORT, 0, "aborted by remote")
