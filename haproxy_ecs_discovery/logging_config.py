"""Per-watcher log context and root handler setup (JSON or text)."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import datetime, timezone
from typing import Any

from .config import LoggingConfig

# Attributes every LogRecord has; anything else on a record came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

QUIET_LOGGERS = ("boto3", "botocore", "urllib3", "s3transfer")


class WatcherLogAdapter(logging.LoggerAdapter):
    """Stamps records with the owning watcher's context (service, region, ...).

    Call-site ``extra`` is merged over the adapter's context, so a scheduler can
    add ``consecutive_failures`` or ``operation`` to a single record.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def bind(self, **context: Any) -> None:
        """Add context for all later records, e.g. the region once the client exists."""
        self.extra = {**self.extra, **{k: v for k, v in context.items() if v is not None}}


def watcher_logger(name: str, service: str, **context: Any) -> WatcherLogAdapter:
    adapter = WatcherLogAdapter(logging.getLogger(name), {"service": service})
    adapter.bind(**context)
    return adapter


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """The ``extra`` fields attached to a record, in sorted order."""
    return {
        key: value
        for key, value in sorted(vars(record).items())
        if key not in _RECORD_ATTRS and not key.startswith("_") and value is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line; watcher context becomes top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info and record.exc_info[1]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines with the watcher context appended as key=value pairs."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{k}={v}" for k, v in context.items())
        head, sep, tail = line.partition("\n")
        return f"{head} [{pairs}]{sep}{tail}"


def configure_logging(config: LoggingConfig, level: str | None = None) -> None:
    """Install a single stderr handler on the root logger; ``level`` overrides the config."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or config.level).upper(), logging.INFO))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if config.format == "json" else TextFormatter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
