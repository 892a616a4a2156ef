"""Progressive body materialization: stream, bytes, text, decoded JSON.

Each stage takes a :class:`~xhttp.response.Response` and returns a new one,
moving the body forward only. Stages can be chained in any prefix of
``to_complete -> to_string -> from_json`` and repeated safely.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Union

from .errors import ResponseError, StreamError, ValidationError
from .params import is_byte_stream
from .response import Response

__all__ = [
    "buffer_stream",
    "from_json",
    "maybe_from_json",
    "normal",
    "only_complete",
    "only_ok",
    "to_complete",
    "to_string",
]

LOGGER = logging.getLogger(__name__)

READ_SIZE = 8192
CHARSET_PATTERN = re.compile(r"charset=\"?([\w.:-]+)\"?", re.IGNORECASE)
JSON_TYPE_PATTERN = re.compile(r"application/(?:[\w.-]+\+)?json", re.IGNORECASE)
TEXT_TYPES = (str, bytes, bytearray, memoryview)


def _chunks(stream: Any):
    read = getattr(stream, "read", None)
    if callable(read):
        while True:
            chunk = read(READ_SIZE)
            if not chunk:
                return
            yield chunk
    else:
        yield from stream


def _close(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if callable(close):
        close()


def buffer_stream(stream: Any) -> Union[str, bytes]:
    """Drain *stream* and return its accumulated content.

    Text is returned only when every chunk was text; otherwise chunks are
    concatenated as bytes, text chunks being UTF-8 encoded first. An empty
    stream yields ``b""``.
    """

    if not is_byte_stream(stream):
        raise ValidationError(f"Expected a readable stream, got {type(stream).__name__}")
    chunks: list[Any] = []
    try:
        for chunk in _chunks(stream):
            chunks.append(chunk)
    except OSError as exc:
        _close(stream)
        raise StreamError(f"Failed to read response body: {exc}") from exc
    _close(stream)

    if chunks and all(isinstance(chunk, str) for chunk in chunks):
        return "".join(chunks)
    return b"".join(chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk) for chunk in chunks)


def _is_decoded(response: Response) -> bool:
    return response.body_text is not None


def to_complete(response: Response) -> Response:
    """Buffer a stream body and mark the response complete."""

    if is_byte_stream(response.body):
        LOGGER.debug("Buffering response body for %s", response.params.url)
        return response.replace(complete=True, body=buffer_stream(response.body))
    if response.complete:
        return response
    return response.replace(complete=True)


def _charset(response: Response) -> str:
    content_type = response.headers.get("content-type")
    if isinstance(content_type, list):
        content_type = content_type[-1]
    if content_type:
        match = CHARSET_PATTERN.search(content_type)
        if match:
            return match.group(1)
    return "utf-8"


def _decode(data: bytes, charset: str) -> str:
    try:
        return data.decode(charset, errors="replace")
    except LookupError:
        return data.decode("utf-8", errors="replace")


def to_string(response: Response) -> Response:
    """Complete the response and coerce its body to text."""

    if _is_decoded(response):
        raise ValidationError("Response body was already decoded and cannot be turned back into text")
    response = to_complete(response)
    body = response.body
    if isinstance(body, str):
        return response
    if body is None:
        return response.replace(body="")
    if isinstance(body, (bytes, bytearray, memoryview)):
        return response.replace(body=_decode(bytes(body), _charset(response)))
    raise ValidationError(f"Cannot convert body of type {type(body).__name__} to text")


def from_json(response: Response) -> Response:
    """Decode a text body as JSON, keeping the text in ``body_text``.

    Empty text decodes to ``None``. Malformed JSON raises
    :class:`json.JSONDecodeError`.
    """

    if _is_decoded(response):
        return response
    body = response.body
    if not isinstance(body, str):
        if isinstance(body, TEXT_TYPES) or is_byte_stream(body):
            raise ValidationError("from_json needs a text body; apply to_string first")
        return response
    decoded = json.loads(body) if body else None
    return response.replace(body=decoded, body_text=body)


def maybe_from_json(response: Response) -> Response:
    """Apply :func:`from_json` only when the content type says JSON."""

    content_type = response.headers.get("content-type")
    if isinstance(content_type, list):
        content_type = content_type[-1]
    if content_type and JSON_TYPE_PATTERN.search(content_type):
        return from_json(response)
    return response


def only_ok(response: Response) -> Response:
    if not response.ok:
        raise ResponseError(response)
    return response


def only_complete(response: Response) -> Response:
    if not response.complete:
        raise ResponseError(response)
    return response


def normal(response: Response) -> Response:
    """Reject non-ok responses, then materialize the body as text."""

    return to_string(only_ok(response))
