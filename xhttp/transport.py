"""Transport adapters dispatching canonical params through ``requests``.

Two variants share one contract. :class:`BufferedTransport` reads the whole
body as text and reports every network failure as an ``error`` response, so
waiting on it never raises. :class:`StreamingTransport` hands the body over
as a live :class:`ResponseStream` and makes waiting raise
:class:`~xhttp.errors.NetworkError` when no response could be obtained at
all. Both start network I/O inside :meth:`Transport.open_request`.
"""

from __future__ import annotations

import http.client
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlsplit

import requests
from requests import exceptions as requests_exceptions
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from requests.structures import CaseInsensitiveDict
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

from .errors import NetworkError, TransportConstructionError
from .headers import format_headers, header_dict, redact_headers
from .lifecycle import RequestHandle
from .params import Params, is_byte_stream, normalize
from .response import (
    Response,
    error_response,
    load_response,
    remote_abort_response,
    timeout_response,
)

__all__ = [
    "BufferedTransport",
    "ConnectionTarget",
    "FragmentAdapter",
    "ResponseStream",
    "StreamingTransport",
    "Transport",
    "connection_target",
    "create_transport",
    "is_remote_abort",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 8192
DEFAULT_MAX_WORKERS = 4
DEFAULT_PORTS = {"http": 80, "https": 443}
REMOTE_ABORT_ERRORS = (http.client.RemoteDisconnected, ConnectionResetError, ConnectionAbortedError)

SessionFactory = Callable[[], requests.Session]


@dataclass(frozen=True)
class ConnectionTarget:
    """Where a request goes at the connection level."""

    protocol: str
    host: str
    port: int
    path: str

    @property
    def secure(self) -> bool:
        return self.protocol == "https"


def connection_target(url: str) -> ConnectionTarget:
    """Resolve *url* into protocol, host, port and path.

    The path carries the query and the fragment, if any.
    """

    parts = urlsplit(url)
    protocol = parts.scheme.lower()
    if protocol not in DEFAULT_PORTS:
        raise TransportConstructionError(f"Unsupported URL scheme {parts.scheme!r} in {url!r}")
    if not parts.hostname:
        raise TransportConstructionError(f"URL {url!r} must include a hostname")
    try:
        port = parts.port or DEFAULT_PORTS[protocol]
    except ValueError as exc:
        raise TransportConstructionError(f"Invalid port in URL {url!r}") from exc

    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"
    if parts.fragment:
        path = f"{path}#{parts.fragment}"
    return ConnectionTarget(protocol=protocol, host=parts.hostname, port=port, path=path)


def is_remote_abort(exc: BaseException) -> bool:
    """Return whether the peer dropped the connection somewhere in *exc*'s chain."""

    seen: set[int] = set()
    pending: list[object] = [exc]
    while pending:
        current = pending.pop()
        if not isinstance(current, BaseException) or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, REMOTE_ABORT_ERRORS):
            return True
        pending.extend(current.args)
        pending.append(getattr(current, "reason", None))
        pending.append(current.__cause__)
        pending.append(current.__context__)
    return False


class ResponseStream(Iterator[bytes]):
    """Iterator over the body chunks of a live ``requests`` response."""

    def __init__(self, response: requests.Response, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._response = response
        self._chunk_size = chunk_size
        self._chunks: Optional[Iterator[bytes]] = None
        self.closed = False

    def __next__(self) -> bytes:
        if self.closed:
            raise StopIteration
        if self._chunks is None:
            self._chunks = self._response.iter_content(self._chunk_size)
        return next(self._chunks)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._response.close()

    def __enter__(self) -> "ResponseStream":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class _FragmentTargetMixin:
    """Connection pool that puts the URL fragment back on the request line.

    urllib3 reduces an origin-form target to path and query before sending;
    the fragment seen by ``urlopen`` is re-attached when the request is made.
    """

    _fragment = ""

    def urlopen(self, method, url, *args, **kwargs):
        self._fragment = urlsplit(url).fragment if url.startswith("/") else ""
        return super().urlopen(method, url, *args, **kwargs)

    def _make_request(self, conn, method, url, *args, **kwargs):
        if self._fragment and "#" not in url:
            url = f"{url}#{self._fragment}"
        return super()._make_request(conn, method, url, *args, **kwargs)


class _FragmentHTTPConnectionPool(_FragmentTargetMixin, HTTPConnectionPool):
    pass


class _FragmentHTTPSConnectionPool(_FragmentTargetMixin, HTTPSConnectionPool):
    pass


class FragmentAdapter(HTTPAdapter):
    """Adapter sending ``connection_target(url).path`` as the request target."""

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": _FragmentHTTPConnectionPool,
            "https": _FragmentHTTPSConnectionPool,
        }

    def request_url(self, request: requests.PreparedRequest, proxies: Mapping[str, str]) -> str:
        url = super().request_url(request, proxies)
        if url.startswith("/"):
            return connection_target(request.url).path
        fragment = urlsplit(request.url).fragment
        if fragment and "#" not in url:
            return f"{url}#{fragment}"
        return url


def _native_headers(native: requests.Response) -> dict[str, Any]:
    raw_headers = getattr(native.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "iteritems"):
        return header_dict(raw_headers.iteritems())
    return header_dict(native.headers.items())


def _encoded_chunks(chunks: Iterable[Any]) -> Iterator[bytes]:
    for chunk in chunks:
        yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk


def _request_body(body: object) -> object:
    if body is None or isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, (bytearray, memoryview)):
        return bytes(body)
    if is_byte_stream(body):
        if callable(getattr(body, "read", None)):
            return body
        return _encoded_chunks(body)
    raise TypeError(
        f"Unsupported body type {type(body).__name__}; encode structured bodies with params_to_json"
    )


class Transport:
    """Shared dispatch logic; subclasses decide how a load becomes a Response."""

    stream = False
    name = "base"

    def __init__(
        self,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        session_factory: SessionFactory = requests.Session,
    ) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        self._session_factory = session_factory
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="xhttp")

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def open_request(self, params: Mapping[str, Any] | Params) -> RequestHandle:
        """Prepare the request, start sending it and return its handle."""

        params = normalize(params)
        body = _request_body(params.body)
        target = connection_target(params.url)

        session = self._session_factory()
        self._mount_adapters(session)
        try:
            prepared = session.prepare_request(self._build_request(params, body))
        except requests_exceptions.RequestException as exc:
            session.close()
            raise TransportConstructionError(f"Unable to prepare request to {params.url}: {exc}") from exc
        # requests upper-cases methods while preparing; callers keep their casing.
        prepared.method = params.method

        handle = RequestHandle(params, on_abort=session.close)
        handle.mark_opened()
        LOGGER.debug(
            "Opening %s %s via %s transport (%s:%s)",
            params.method,
            params.url,
            self.name,
            target.host,
            target.port,
            extra={"method": params.method, "url": params.url, "transport": self.name},
        )
        LOGGER.debug("Request headers: %s", redact_headers(dict(prepared.headers)))
        self._executor.submit(self._run, handle, session, prepared)
        return handle

    def _build_request(self, params: Params, body: object) -> requests.Request:
        headers = CaseInsensitiveDict()

        def set_header(key: str, value: str) -> None:
            existing = headers.get(key)
            headers[key] = value if existing is None else f"{existing}, {value}"

        format_headers(params.headers, set_header)
        auth = None
        if params.username is not None and params.password is not None:
            auth = HTTPBasicAuth(params.username, params.password)
        return requests.Request(
            method=params.method,
            url=params.url,
            headers=dict(headers.items()),
            data=body,
            auth=auth,
        )

    def _run(self, handle: RequestHandle, session: requests.Session, prepared: requests.PreparedRequest) -> None:
        if handle.done():
            session.close()
            return
        timeout = handle.params.timeout / 1000 if handle.params.timeout else None
        try:
            native = session.send(
                prepared,
                stream=self.stream,
                timeout=timeout,
                allow_redirects=False,
            )
            response = self._load(handle, native)
        except requests_exceptions.Timeout:
            handle.settle(timeout_response(handle))
        except requests_exceptions.RequestException as exc:
            if handle.done():
                return
            if is_remote_abort(exc):
                handle.settle(remote_abort_response(handle))
            else:
                self._network_failure(handle, exc)
        except Exception as exc:
            if handle.done():
                return
            LOGGER.exception("Unexpected failure sending %s %s", handle.params.method, handle.params.url)
            self._network_failure(handle, exc)
        else:
            if not handle.settle(response):
                native.close()
        finally:
            session.close()

    def _mount_adapters(self, session: requests.Session) -> None:
        pass

    def _load(self, handle: RequestHandle, native: requests.Response) -> Response:
        raise NotImplementedError

    def _network_failure(self, handle: RequestHandle, exc: Exception) -> None:
        raise NotImplementedError


class BufferedTransport(Transport):
    """Reads bodies in full; network failures become ``error`` responses."""

    stream = False
    name = "buffered"

    def _load(self, handle: RequestHandle, native: requests.Response) -> Response:
        return load_response(
            handle,
            native.status_code,
            native.reason or "",
            _native_headers(native),
            native.text,
            complete=True,
        )

    def _network_failure(self, handle: RequestHandle, exc: Exception) -> None:
        handle.settle(error_response(handle, str(exc)))


class StreamingTransport(Transport):
    """Leaves bodies on the wire; network failures make waiting raise."""

    stream = True
    name = "streaming"

    def _mount_adapters(self, session: requests.Session) -> None:
        adapter = FragmentAdapter()
        session.mount("http://", adapter)
        session.mount("https://", adapter)

    def _load(self, handle: RequestHandle, native: requests.Response) -> Response:
        return load_response(
            handle,
            native.status_code,
            native.reason or "",
            _native_headers(native),
            ResponseStream(native, self.chunk_size),
            complete=False,
        )

    def _network_failure(self, handle: RequestHandle, exc: Exception) -> None:
        error = NetworkError(f"Request {handle.params.method} {handle.params.url} failed: {exc}")
        error.__cause__ = exc
        handle.fail(error)


TRANSPORTS: dict[str, type[Transport]] = {
    BufferedTransport.name: BufferedTransport,
    StreamingTransport.name: StreamingTransport,
}


def create_transport(kind: str, **options: Any) -> Transport:
    try:
        transport_cls = TRANSPORTS[kind]
    except KeyError:
        raise ValueError(f"Transport must be one of {sorted(TRANSPORTS)}, got {kind!r}") from None
    return transport_cls(**options)
