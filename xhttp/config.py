"""Configuration helpers and .env loading for xhttp."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv

from . import __version__
from .errors import ValidationError

DEFAULT_ENV_FILES: tuple[Path, ...] = (
    Path(".env"),
    Path("config/.env"),
)

TRANSPORT_KINDS = ("streaming", "buffered")


@lru_cache(maxsize=1)
def load_environment(*, extra_files: Iterable[Path] | None = None) -> dict[str, str]:
    """Load environment variables from .env files once per process."""

    candidates = list(DEFAULT_ENV_FILES)
    if extra_files:
        candidates = [*candidates, *extra_files]

    for path in candidates:
        try:
            if path.exists():
                load_dotenv(path, override=False)
        except OSError:
            continue

    load_dotenv(override=False)
    return dict(os.environ)


def _int_setting(env: Mapping[str, str], name: str, default: int, *, minimum: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValidationError(f"{name} must be at least {minimum}")
    return value


@dataclass(frozen=True)
class ClientSettings:
    """Defaults applied by :class:`~xhttp.client.Client` to every request."""

    base_url: str = ""
    timeout_ms: int = 0
    user_agent: str = f"xhttp/{__version__}"
    transport: str = "streaming"
    max_workers: int = 4
    chunk_size: int = 8192

    def __post_init__(self) -> None:
        if self.transport not in TRANSPORT_KINDS:
            raise ValidationError(f"Transport must be one of {TRANSPORT_KINDS}, got {self.transport!r}")
        if self.timeout_ms < 0:
            raise ValidationError("Default timeout must not be negative")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ClientSettings":
        env = os.environ if env is None else env
        return cls(
            base_url=env.get("XHTTP_BASE_URL", ""),
            timeout_ms=_int_setting(env, "XHTTP_TIMEOUT_MS", 0, minimum=0),
            user_agent=env.get("XHTTP_USER_AGENT") or f"xhttp/{__version__}",
            transport=(env.get("XHTTP_TRANSPORT") or "streaming").lower(),
            max_workers=_int_setting(env, "XHTTP_MAX_WORKERS", 4, minimum=1),
            chunk_size=_int_setting(env, "XHTTP_CHUNK_SIZE", 8192, minimum=1),
        )


__all__ = ["ClientSettings", "DEFAULT_ENV_FILES", "TRANSPORT_KINDS", "load_environment"]
