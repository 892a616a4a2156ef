"""Header parsing and formatting helpers."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from typing import Union

from .errors import ValidationError

__all__ = [
    "HeaderValue",
    "SENSITIVE_HEADERS",
    "format_headers",
    "header_dict",
    "parse_headers",
    "redact_headers",
]

HeaderValue = Union[str, list[str]]

SENSITIVE_HEADERS = {"cookie", "set-cookie", "authorization", "proxy-authorization"}

HEADER_LINE_PATTERN = re.compile(r"([^\r\n:]+):(?: ?([^\r\n]*))?")


def _add(previous: HeaderValue | None, value: str) -> HeaderValue:
    if previous is None:
        return value
    if isinstance(previous, str):
        return [previous, value]
    previous.append(value)
    return previous


def parse_headers(blob: str) -> dict[str, HeaderValue]:
    """Parse a raw ``key: value`` header blob into a lowercase mapping.

    Repeated keys fold into a list in the order they appear.
    """

    if not isinstance(blob, str):
        raise ValidationError(f"Header blob must be a string, got {type(blob).__name__}")
    out: dict[str, HeaderValue] = {}
    for match in HEADER_LINE_PATTERN.finditer(blob):
        key = match.group(1).strip().lower()
        if not key:
            continue
        out[key] = _add(out.get(key), match.group(2) or "")
    return out


def header_dict(pairs: Iterable[tuple[str, str]]) -> dict[str, HeaderValue]:
    """Fold ``(key, value)`` pairs into the same shape as :func:`parse_headers`."""

    out: dict[str, HeaderValue] = {}
    for key, value in pairs:
        key = key.lower()
        out[key] = _add(out.get(key), value)
    return out


def format_headers(
    headers: Mapping[str, object] | None,
    set_header: Callable[[str, str], None],
) -> None:
    """Register every header value through *set_header*.

    List values become one registration per element; ``None`` is skipped.
    """

    for key, value in (headers or {}).items():
        _format_header(key, value, set_header)


def _format_header(key: str, value: object, set_header: Callable[[str, str], None]) -> None:
    if value is None:
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            _format_header(key, item, set_header)
        return
    if not isinstance(value, str):
        raise ValidationError(f"Header {key!r} must be a string or list of strings")
    set_header(key, value)


def redact_headers(headers: Mapping[str, object]) -> dict[str, object]:
    return {
        key: "[redacted]" if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }
