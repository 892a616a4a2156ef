"""Cross-transport HTTP request helper with a uniform response lifecycle."""

from __future__ import annotations

# Semantic version for package consumers.
__version__ = "0.3.0"

from .body import (  # noqa: E402
    buffer_stream,
    from_json,
    maybe_from_json,
    normal,
    only_complete,
    only_ok,
    to_complete,
    to_string,
)
from .client import Client  # noqa: E402
from .config import ClientSettings  # noqa: E402
from .errors import (  # noqa: E402
    NetworkError,
    ResponseError,
    StreamError,
    TransportConstructionError,
    ValidationError,
    XhttpError,
)
from .headers import format_headers, parse_headers  # noqa: E402
from .lifecycle import RequestHandle, State, wait  # noqa: E402
from .params import Params, normalize, params_to_form, params_to_json  # noqa: E402
from .query import with_query  # noqa: E402
from .response import Reason, Response, is_status_ok  # noqa: E402
from .transport import BufferedTransport, StreamingTransport, create_transport  # noqa: E402

__all__ = [
    "__version__",
    "BufferedTransport",
    "Client",
    "ClientSettings",
    "NetworkError",
    "Params",
    "Reason",
    "RequestHandle",
    "Response",
    "ResponseError",
    "State",
    "StreamError",
    "StreamingTransport",
    "TransportConstructionError",
    "ValidationError",
    "XhttpError",
    "buffer_stream",
    "create_transport",
    "format_headers",
    "from_json",
    "is_status_ok",
    "maybe_from_json",
    "normal",
    "normalize",
    "only_complete",
    "only_ok",
    "params_to_form",
    "params_to_json",
    "parse_headers",
    "to_complete",
    "to_string",
    "wait",
    "with_query",
]
