"""
Structured logging configuration.

Provides:
    • JSON log lines in production, one object per record
    • Coloured console lines in development, with survivor tags appended
    • Context bound per HTTP request or per realtime connection

Domain fields (participant, zone, streak, ...) travel on the record via
``extra=`` and are rendered by both formatters:

    logger.info("Check-in recorded", extra={"participant_id": "p1", "streak": 3})

    dev:   09:00:01 INFO     [a1b2c3d4] survivor_net...: Check-in recorded  participant=p1 streak=3
    prod:  {"ts": "...", "level": "INFO", ..., "participant_id": "p1", "streak": 3}
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict

from survivor_net.app.core.config import settings

# Request id / connection id of whatever is currently being served
_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# Record attributes lifted into log output, with their short console labels
EXTRA_FIELDS: Dict[str, str] = {
    "participant_id": "participant",
    "zone_id": "zone",
    "streak": "streak",
    "missing_count": "missing",
    "event": "event",
    "subscriber_count": "subscribers",
    "duration_ms": "ms",
    "status_code": "status",
    "endpoint": "endpoint",
}


def set_request_context(**kwargs: Any) -> None:
    """Bind context for the current HTTP request; no kwargs clears it."""
    _log_context.set(kwargs)


def bind_connection(connection_id: str) -> None:
    """Bind a realtime connection id for the lifetime of a websocket task."""
    _log_context.set({"connection_id": connection_id})


def get_request_context() -> Dict[str, Any]:
    return _log_context.get()


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in EXTRA_FIELDS if hasattr(record, key)}


# ── JSON Formatter (Production) ──

class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": settings.APP_NAME,
            "env": settings.ENVIRONMENT,
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(get_request_context())
        entry.update(_record_extras(record))

        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["exception"] = {"type": type(exc).__name__, "message": str(exc)}

        return json.dumps(entry, default=str)


# ── Pretty Formatter (Development) ──

class PrettyFormatter(logging.Formatter):
    """Human-readable console output with trailing ``key=value`` tags."""

    LEVEL_COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self.LEVEL_COLOURS.get(record.levelname, self.RESET)
        ctx = get_request_context()
        scope = ctx.get("request_id") or ctx.get("connection_id") or ""
        scope_str = f" [{scope[:8]}]" if scope else ""

        tags = " ".join(
            f"{EXTRA_FIELDS[key]}={value:.1f}" if isinstance(value, float)
            else f"{EXTRA_FIELDS[key]}={value}"
            for key, value in _record_extras(record).items()
            if key != "endpoint"
        )

        line = (
            f"{colour}{self.formatTime(record, '%H:%M:%S')} {record.levelname:8s}{self.RESET}"
            f"{scope_str} {record.name}: {record.getMessage()}"
        )
        if tags:
            line += f"  {tags}"
        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return line


# ── Setup ──

def setup_logging() -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.is_production else PrettyFormatter())
    root.addHandler(handler)

    # uvicorn's access log duplicates RequestLoggingMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DATABASE_ECHO else logging.WARNING
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
