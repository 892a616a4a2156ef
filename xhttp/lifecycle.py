"""Request lifecycle: one handle, exactly one terminal outcome."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Optional

from .params import Params
from .response import Response, abort_response

__all__ = ["RequestHandle", "State", "wait"]

LOGGER = logging.getLogger(__name__)


class State(str, Enum):
    UNSENT = "unsent"
    OPENED = "opened"
    LOAD = "load"
    ERROR = "error"
    TIMEOUT = "timeout"
    ABORT = "abort"
    REMOTE_ABORT = "remoteAbort"


class RequestHandle:
    """Handle for one in-flight request.

    The handle settles exactly once, either with a :class:`Response` or, on the
    streaming transport, with the error that prevented any response. Every
    signal arriving after the first is ignored and reported back to the caller
    as ``False`` so it can release whatever it was about to hand over.
    """

    def __init__(self, params: Params, *, on_abort: Optional[Callable[[], None]] = None) -> None:
        self.params = params
        self._on_abort = on_abort
        self._lock = threading.Lock()
        self._settled = threading.Event()
        self._state = State.UNSENT
        self._response: Optional[Response] = None
        self._error: Optional[BaseException] = None

    def __repr__(self) -> str:
        return f"<RequestHandle {self.params.method} {self.params.url} [{self._state.value}]>"

    @property
    def state(self) -> State:
        return self._state

    def done(self) -> bool:
        return self._settled.is_set()

    def mark_opened(self) -> None:
        with self._lock:
            if self._state is State.UNSENT:
                self._state = State.OPENED

    def settle(self, response: Response) -> bool:
        """Record *response* as the terminal outcome if none was recorded yet."""

        with self._lock:
            if self._settled.is_set():
                return False
            self._response = response
            self._state = State(response.reason.value)
            self._settled.set()
        LOGGER.debug(
            "Request %s %s settled: %s %s",
            self.params.method,
            self.params.url,
            response.reason.value,
            response.status,
            extra={
                "method": self.params.method,
                "url": self.params.url,
                "reason": response.reason.value,
                "status": response.status,
            },
        )
        return True

    def fail(self, error: BaseException) -> bool:
        """Record *error* as the terminal outcome if none was recorded yet."""

        with self._lock:
            if self._settled.is_set():
                return False
            self._error = error
            self._state = State.ERROR
            self._settled.set()
        LOGGER.debug("Request %s %s failed: %s", self.params.method, self.params.url, error)
        return True

    def abort(self) -> bool:
        """Cancel the request; a no-op once the request has settled."""

        if not self.settle(abort_response(self)):
            return False
        if self._on_abort is not None:
            self._on_abort()
        return True

    def result(self, timeout: Optional[float] = None) -> Response:
        if not self._settled.wait(timeout):
            raise TimeoutError(f"Request {self.params.method} {self.params.url} still in flight")
        if self._error is not None:
            # Each wait raises with a fresh traceback.
            raise self._error.with_traceback(None)
        if self._response is None:
            raise RuntimeError(f"Request {self.params.method} {self.params.url} settled without an outcome")
        return self._response


def wait(handle: RequestHandle, timeout: Optional[float] = None) -> Response:
    """Block until *handle* settles and return its :class:`Response`.

    Raises the recorded error instead when the streaming transport could not
    obtain any response. *timeout* bounds the wait in seconds without
    affecting the request itself.
    """

    if not isinstance(handle, RequestHandle):
        raise TypeError(f"Expected a RequestHandle, got {type(handle).__name__}")
    return handle.result(timeout)
