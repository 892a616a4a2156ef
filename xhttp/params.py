"""Request parameter normalization."""

from __future__ import annotations

import dataclasses
import io
import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import ValidationError
from .headers import HeaderValue
from .query import format_query, with_query

__all__ = [
    "Params",
    "is_byte_stream",
    "normalize",
    "params_to_form",
    "params_to_json",
]

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
PARAM_KEYS = frozenset(
    {"method", "url", "query", "username", "password", "timeout", "headers", "body"}
)


@dataclass(frozen=True)
class Params:
    """Canonical, ready-to-dispatch request descriptor."""

    url: str
    method: str = "GET"
    query: Optional[Mapping[str, object]] = None
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: float = 0
    headers: dict[str, HeaderValue] = field(default_factory=dict)
    body: Any = None

    def replace(self, **changes: Any) -> "Params":
        return dataclasses.replace(self, **changes)


def is_byte_stream(value: object) -> bool:
    """Return whether *value* is a readable stream or an iterator of chunks."""

    if isinstance(value, (str, bytes, bytearray, memoryview, Mapping, list, tuple)):
        return False
    if isinstance(value, io.IOBase) or callable(getattr(value, "read", None)):
        return True
    return isinstance(value, Iterator)


def _is_structured(value: object) -> bool:
    return isinstance(value, (Mapping, list, tuple))


def _check_url(url: object) -> str:
    if url is not None and not isinstance(url, str) and callable(getattr(url, "geturl", None)):
        url = url.geturl()
    if not isinstance(url, str):
        raise ValidationError("A URL string is required")
    if not url:
        raise ValidationError("URL must not be empty")
    return url


def _check_method(method: object) -> str:
    if method is None:
        return "GET"
    if not isinstance(method, str) or not method:
        raise ValidationError(f"Method must be a non-empty string, got {method!r}")
    return method


def _check_timeout(timeout: object) -> float:
    if timeout is None:
        return 0
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise ValidationError(f"Timeout must be a number of milliseconds, got {timeout!r}")
    if timeout < 0:
        raise ValidationError("Timeout must not be negative")
    return timeout


def _check_credential(name: str, value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value


def _check_headers(headers: object) -> dict[str, HeaderValue]:
    if headers is None:
        return {}
    if not isinstance(headers, Mapping):
        raise ValidationError("Headers must be a mapping")
    out: dict[str, HeaderValue] = {}
    for key, value in headers.items():
        if not isinstance(key, str) or not key:
            raise ValidationError(f"Header names must be non-empty strings, got {key!r}")
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            if not all(isinstance(item, str) for item in value):
                raise ValidationError(f"Header {key!r} list must only contain strings")
            out[key] = list(value)
        elif isinstance(value, str):
            out[key] = value
        else:
            raise ValidationError(f"Header {key!r} must be a string or list of strings")
    return out


def _check_body(body: object) -> object:
    if body is None or isinstance(body, (str, bytes, bytearray, memoryview)):
        return body
    if is_byte_stream(body) or _is_structured(body):
        return body
    raise ValidationError(f"Unsupported body type {type(body).__name__}")


def normalize(raw: Mapping[str, Any] | Params) -> Params:
    """Validate *raw* and return a canonical :class:`Params`.

    The query, if any, is merged into the URL so the result carries no
    separate query and normalizing it again yields an equal value.
    """

    if isinstance(raw, Params):
        raw = {item.name: getattr(raw, item.name) for item in dataclasses.fields(raw)}
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Params must be a mapping, got {type(raw).__name__}")

    unknown = set(raw) - PARAM_KEYS
    if unknown:
        raise ValidationError(f"Unknown params: {', '.join(sorted(map(str, unknown)))}")

    url = _check_url(raw.get("url"))
    query = raw.get("query")
    if query is not None and not isinstance(query, Mapping):
        raise ValidationError("Query must be a mapping")

    username = _check_credential("username", raw.get("username"))
    password = _check_credential("password", raw.get("password"))
    if (username is None) != (password is None):
        raise ValidationError("Both username and password are required for basic auth")

    return Params(
        url=with_query(url, query),
        method=_check_method(raw.get("method")),
        query=None,
        username=username,
        password=password,
        timeout=_check_timeout(raw.get("timeout")),
        headers=_check_headers(raw.get("headers")),
        body=_check_body(raw.get("body")),
    )


def _with_content_type(headers: Mapping[str, HeaderValue], content_type: str) -> dict[str, HeaderValue]:
    out = {key: value for key, value in headers.items() if key.lower() != "content-type"}
    out["content-type"] = content_type
    return out


def params_to_json(params: Mapping[str, Any] | Params) -> Params:
    """Return *params* with a JSON-encoded body and a JSON content type."""

    canonical = normalize(params)
    try:
        body = json.dumps(canonical.body, separators=(",", ":"))
    except TypeError as exc:
        raise ValidationError(f"Body is not JSON-serializable: {exc}") from exc
    return canonical.replace(
        headers=_with_content_type(canonical.headers, JSON_CONTENT_TYPE),
        body=body,
    )


def params_to_form(params: Mapping[str, Any] | Params) -> Params:
    """Return *params* with a form-encoded body and a form content type."""

    canonical = normalize(params)
    if not isinstance(canonical.body, Mapping):
        raise ValidationError("Form bodies must be mappings")
    return canonical.replace(
        headers=_with_content_type(canonical.headers, FORM_CONTENT_TYPE),
        body=format_query(canonical.body),
    )
