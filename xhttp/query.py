"""URL and query string helpers."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from urllib.parse import quote_plus

from .errors import ValidationError

__all__ = [
    "format_query",
    "format_query_value",
    "url_base",
    "url_hash",
    "url_join",
    "url_search",
    "with_query",
]

SCALAR_TYPES = (str, int, float, Decimal)


def format_query_value(value: object) -> str:
    """Return the unescaped text form of a single query value."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        utc = value.astimezone(timezone.utc).replace(tzinfo=None)
        return utc.isoformat(timespec="milliseconds") + "Z"
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, SCALAR_TYPES):
        return str(value)
    raise ValidationError(f"Query values must be scalars, dates or lists, got {type(value).__name__}")


def _join(left: str, right: str) -> str:
    if left and right:
        return f"{left}&{right}"
    return left or right


def _format_pair(key: str, value: object) -> str:
    if not isinstance(key, str):
        raise ValidationError(f"Query keys must be strings, got {type(key).__name__}")
    if not key:
        return ""
    if isinstance(value, (list, tuple)):
        out = ""
        for item in value:
            if isinstance(item, (list, tuple)):
                raise ValidationError(f"Query list for {key!r} must not contain nested lists")
            out = _join(out, _format_pair(key, item))
        return out
    return f"{quote_plus(key)}={quote_plus(format_query_value(value))}"


def format_query(query: Optional[Mapping[str, object]]) -> str:
    """Encode *query* as ``key=value`` pairs in mapping order."""

    if query is None:
        return ""
    if not isinstance(query, Mapping):
        raise ValidationError("Query must be a mapping of string keys")
    out = ""
    for key, value in query.items():
        out = _join(out, _format_pair(key, value))
    return out


def _without_hash(url: str) -> str:
    index = url.find("#")
    return url[:index] if index >= 0 else url


def url_base(url: str) -> str:
    url = _without_hash(url)
    index = url.find("?")
    return url[:index] if index >= 0 else url


def url_search(url: str) -> str:
    url = _without_hash(url)
    index = url.find("?")
    return url[index + 1 :] if index >= 0 else ""


def url_hash(url: str) -> str:
    index = url.find("#")
    return url[index + 1 :] if index >= 0 else ""


def url_join(base: str, search: str = "", fragment: str = "") -> str:
    out = base
    if search:
        out += f"?{search}"
    if fragment:
        out += f"#{fragment}"
    return out


def with_query(url: str, query: Optional[Mapping[str, object]]) -> str:
    """Append *query* to the search part of *url*, keeping the fragment last.

    Existing pairs are kept as they are; new pairs follow them in the order
    the mapping yields its keys, list values expanding into repeated keys.
    """

    if not isinstance(url, str):
        raise ValidationError(f"URL must be a string, got {type(url).__name__}")
    search = format_query(query)
    if not search:
        return url
    return url_join(url_base(url), _join(url_search(url), search), url_hash(url))
