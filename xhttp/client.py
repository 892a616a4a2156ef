"""Client value owning a transport, defaults and an ordered middleware chain."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Optional
from urllib.parse import urljoin, urlsplit

from .body import from_json, only_ok, to_string
from .config import ClientSettings
from .lifecycle import RequestHandle, wait
from .params import Params, normalize
from .response import Response
from .transport import Transport, create_transport

__all__ = ["Client", "RequestHook", "ResponseHook"]

LOGGER = logging.getLogger(__name__)

RequestHook = Callable[[Params], Params]
ResponseHook = Callable[[Response], Response]


class Client:
    """Issue requests with shared defaults and hooks.

    Hooks run in the order given: request hooks between normalization and
    dispatch, response hooks after the terminal response arrives. They are
    held by the client, so two clients never see each other's hooks.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        transport: Optional[Transport] = None,
        request_hooks: Iterable[RequestHook] = (),
        response_hooks: Iterable[ResponseHook] = (),
    ) -> None:
        self.settings = settings or ClientSettings()
        self._owns_transport = transport is None
        self.transport = transport or create_transport(
            self.settings.transport,
            max_workers=self.settings.max_workers,
            chunk_size=self.settings.chunk_size,
        )
        self.request_hooks: tuple[RequestHook, ...] = tuple(request_hooks)
        self.response_hooks: tuple[ResponseHook, ...] = tuple(response_hooks)

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_transport:
            self.transport.close()

    def with_hooks(
        self,
        *,
        request_hooks: Iterable[RequestHook] = (),
        response_hooks: Iterable[ResponseHook] = (),
    ) -> "Client":
        """Return a client sharing this transport with extra hooks appended."""

        return Client(
            self.settings,
            transport=self.transport,
            request_hooks=(*self.request_hooks, *request_hooks),
            response_hooks=(*self.response_hooks, *response_hooks),
        )

    def prepare(self, raw: Mapping[str, Any] | Params) -> Params:
        params = normalize(raw)
        changes: dict[str, Any] = {}

        if self.settings.base_url and not urlsplit(params.url).scheme:
            changes["url"] = urljoin(self.settings.base_url, params.url)
        if not params.timeout and self.settings.timeout_ms:
            changes["timeout"] = self.settings.timeout_ms
        if self.settings.user_agent and not any(key.lower() == "user-agent" for key in params.headers):
            changes["headers"] = {**params.headers, "user-agent": self.settings.user_agent}
        if changes:
            params = params.replace(**changes)

        for hook in self.request_hooks:
            params = normalize(hook(params))
        return params

    def open(self, raw: Mapping[str, Any] | Params) -> RequestHandle:
        params = self.prepare(raw)
        LOGGER.debug(
            "Dispatching %s %s",
            params.method,
            params.url,
            extra={"method": params.method, "url": params.url, "transport": self.transport.name},
        )
        return self.transport.open_request(params)

    def request(self, raw: Mapping[str, Any] | Params, *, wait_timeout: Optional[float] = None) -> Response:
        response = wait(self.open(raw), wait_timeout)
        for hook in self.response_hooks:
            response = hook(response)
        return response

    def fetch_json(self, raw: Mapping[str, Any] | Params) -> Any:
        """Request, require an ok status and return the decoded JSON body."""

        response = only_ok(to_string(self.request(raw)))
        return from_json(response).body
