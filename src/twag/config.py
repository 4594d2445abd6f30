"""Settings loaded from the environment."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from twag.duration import parse_duration

CACHE_BACKENDS = ("memory", "sqlite", "redis")
SESSION_BACKENDS = ("memory", "redis")
LOG_FORMATS = ("plain", "pretty", "json")


@dataclass(slots=True, frozen=True)
class NotionConfig:
    """Where items live in Notion and which properties describe them."""

    token: str
    database_id: str
    tag_property: str = "Tag"
    kind_property: str = "Kind"
    container_property: str = "Container"


@dataclass(slots=True, frozen=True)
class Settings:
    """Fully resolved service settings."""

    interaction_window_ms: int = 120_000
    lookup_timeout_ms: int = 3_000
    dispatch_timeout_ms: int = 2_000
    cache_backend: str = "memory"
    session_backend: str = "memory"
    database_path: Path = Path("twag.sqlite3")
    redis_url: str | None = None
    notion: NotionConfig | None = None
    session_cookie: str = "twag_session"
    log_level: str = "INFO"
    log_format: str = "plain"
    host: str = "0.0.0.0"
    port: int = 3000

    def to_public_dict(self) -> dict[str, object]:
        """Settings snapshot safe to log (no secrets)."""
        return {
            "interaction_window_ms": self.interaction_window_ms,
            "lookup_timeout_ms": self.lookup_timeout_ms,
            "dispatch_timeout_ms": self.dispatch_timeout_ms,
            "cache_backend": self.cache_backend,
            "session_backend": self.session_backend,
            "database_path": str(self.database_path),
            "redis_configured": self.redis_url is not None,
            "notion_configured": self.notion is not None,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "host": self.host,
            "port": self.port,
        }


def _duration(environ: Mapping[str, str], name: str, default: str) -> int:
    raw = environ.get(name, default)
    try:
        return parse_duration(raw)
    except ValueError:
        raise ValueError(f"{name} must be a duration like '2m' or '500ms', got {raw!r}") from None


def _choice(environ: Mapping[str, str], name: str, default: str, allowed: tuple[str, ...]) -> str:
    value = environ.get(name, default).strip().lower()
    if value not in allowed:
        raise ValueError(f"{name} must be one of {', '.join(allowed)}; got {value!r}")
    return value


def _port(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None:
        return default
    try:
        port = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"{name} must be between 1 and 65535, got {port}")
    return port


def _notion(environ: Mapping[str, str]) -> NotionConfig | None:
    token = environ.get("NOTION_TOKEN")
    database_id = environ.get("NOTION_DATABASE_ID")
    if not token and not database_id:
        return None
    if not token or not database_id:
        raise ValueError("NOTION_TOKEN and NOTION_DATABASE_ID must be set together")
    return NotionConfig(
        token=token,
        database_id=database_id,
        tag_property=environ.get("NOTION_TAG_PROPERTY", "Tag"),
        kind_property=environ.get("NOTION_KIND_PROPERTY", "Kind"),
        container_property=environ.get("NOTION_CONTAINER_PROPERTY", "Container"),
    )


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from environment variables. Invalid values raise ValueError."""
    env = os.environ if environ is None else environ

    cache_backend = _choice(env, "TWAG_CACHE_BACKEND", "memory", CACHE_BACKENDS)
    session_backend = _choice(env, "TWAG_SESSION_BACKEND", "memory", SESSION_BACKENDS)
    redis_url = env.get("REDIS_URL") or None
    if "redis" in (cache_backend, session_backend) and redis_url is None:
        raise ValueError("REDIS_URL must be set when a redis backend is selected")

    log_level = env.get("TWAG_LOG_LEVEL", "INFO").strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"TWAG_LOG_LEVEL is not a logging level: {log_level!r}")

    return Settings(
        interaction_window_ms=_duration(env, "TWAG_INTERACTION_WINDOW", "2m"),
        lookup_timeout_ms=_duration(env, "TWAG_LOOKUP_TIMEOUT", "3s"),
        dispatch_timeout_ms=_duration(env, "TWAG_DISPATCH_TIMEOUT", "2s"),
        cache_backend=cache_backend,
        session_backend=session_backend,
        database_path=Path(env.get("TWAG_DATABASE_PATH", "twag.sqlite3")),
        redis_url=redis_url,
        notion=_notion(env),
        session_cookie=env.get("TWAG_SESSION_COOKIE", "twag_session"),
        log_level=log_level,
        log_format=_choice(env, "TWAG_LOG_FORMAT", "plain", LOG_FORMATS),
        host=env.get("TWAG_HOST", "0.0.0.0"),
        port=_port(env, "TWAG_PORT", 3000),
    )
