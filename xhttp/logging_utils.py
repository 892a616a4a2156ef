"""Structured logging helpers for xhttp."""

from __future__ import annotations

import json
import logging
import os
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

from rich.logging import RichHandler

from .headers import SENSITIVE_HEADERS

DEFAULT_MAX_BYTES = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))
DEFAULT_BACKUP_COUNT = int(os.environ.get("LOG_BACKUP_COUNT", "5"))

# Extra attributes copied into JSON log lines when present on a record.
REQUEST_FIELDS = ("method", "url", "reason", "status", "transport")


class JsonFormatter(logging.Formatter):
    """Emit logs as structured JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
        }
        for name in REQUEST_FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive header values passed as a mapping argument."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, dict):
            sanitized = {}
            for key, value in record.args.items():
                if isinstance(key, str) and key.lower() in SENSITIVE_HEADERS:
                    sanitized[key] = "[redacted]"
                else:
                    sanitized[key] = value
            record.args = sanitized
        return True


class UrlCredentialFilter(logging.Filter):
    """Mask ``user:password@`` userinfo embedded in logged URLs."""

    USERINFO_PATTERN = re.compile(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^/@\s]+@")

    def __init__(self) -> None:
        super().__init__(name="url-credential-redactor")

    def _scrub(self, value: object) -> object:
        if isinstance(value, str):
            return self.USERINFO_PATTERN.sub(r"\g<scheme>[redacted]@", value)
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._scrub(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(self._scrub(arg) for arg in record.args)
        return True


def _rich_handler(level: int) -> logging.Handler:
    return RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_path=False,
        level=level,
    )


def configure_logging(
    level: int = logging.INFO,
    *,
    json_logs: bool = False,
    logfile: Optional[Path | str] = None,
    suppress: Optional[Iterable[str]] = None,
) -> None:
    """Configure root logging with a rich console, rotation and optional JSON output."""

    handlers: list[logging.Handler] = []

    console_handler = _rich_handler(level)
    handlers.append(console_handler)

    if logfile:
        path = Path(logfile)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=DEFAULT_MAX_BYTES,
            backupCount=DEFAULT_BACKUP_COUNT,
            encoding="utf-8",
        )
        if json_logs:
            file_handler.setFormatter(JsonFormatter())
        else:
            file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        handlers.append(file_handler)

    for handler in handlers:
        handler.addFilter(SensitiveDataFilter())
        handler.addFilter(UrlCredentialFilter())

    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in suppress or ("urllib3", "charset_normalizer"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


__all__ = ["configure_logging", "JsonFormatter", "SensitiveDataFilter", "UrlCredentialFilter"]
