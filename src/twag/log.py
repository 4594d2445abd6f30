"""Logging setup: plain, pretty or JSON lines."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

# Attributes every LogRecord has; anything else came in through ``extra=``.
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
PRETTY_FORMAT = (
    "%(asctime)s %(levelname)-8s %(name)s\n"
    "    %(message)s\n"
    "    at %(pathname)s:%(lineno)d"
)


def utc_timestamp(created: float) -> str:
    """RFC 3339 UTC timestamp with millisecond precision."""
    moment = datetime.fromtimestamp(created, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, including ``extra=`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.pathname}:{record.lineno}",
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", fmt: str = "plain") -> None:
    """Install a single stream handler on the ``twag`` logger."""
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    elif fmt == "pretty":
        handler.setFormatter(logging.Formatter(PRETTY_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))

    logger = logging.getLogger("twag")
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
