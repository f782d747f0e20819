"""
Hermes Logging — stdlib logging setup with structured JSON output.

Implements:
- JsonFormatter: one JSON object per line, structured event fields merged in
- configure_logging(): root handler on stderr, ``json`` or ``pretty`` format
- Event builders for dispatch, forwarding and system events

Structured events travel on the standard ``extra`` mechanism:

    logger.info("forwarded", extra={"event_data": forward_event(...)})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

PRETTY_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """Render each record as a single-line JSON document."""

    def format(self, record: logging.LogRecord) -> str:
        data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event_data = getattr(record, "event_data", None)
        if isinstance(event_data, dict):
            data.update(event_data)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str, separators=(",", ":"))


class PrettyFormatter(logging.Formatter):
    """Human-readable lines with structured fields appended as key=value."""

    def __init__(self) -> None:
        super().__init__(PRETTY_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        event_data = getattr(record, "event_data", None)
        if isinstance(event_data, dict) and event_data:
            fields = " ".join(
                f"{k}={v}" for k, v in event_data.items() if k not in ("timestamp", "level")
            )
            line = f"{line} [{fields}]"
        return line


def configure_logging(level: str = "info", fmt: str = "pretty") -> logging.Handler:
    """
    Install a single stderr handler on the root logger.

    Safe to call more than once: the previously installed Hermes handler
    is replaced rather than duplicated.
    """
    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_hermes_handler", False):
            root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if fmt == "json" else PrettyFormatter())
    handler._hermes_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(LEVELS.get(level.lower(), logging.INFO))
    return handler


# ---------------------------------------------------------------------------
# Event Builders
# ---------------------------------------------------------------------------

def _base_entry(event: str, level: str, **extra: Any) -> Dict[str, Any]:
    """Build a base event with common fields."""
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    entry.update({k: v for k, v in extra.items() if v is not None})
    return entry


def dispatch_event(
    endpoint: str,
    method: str,
    status_code: int,
    duration_ms: float,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    """One inbound request reaching a terminal state."""
    return _base_entry(
        event="webhook_dispatched",
        level="INFO" if status_code < 400 else "ERROR",
        endpoint=endpoint,
        method=method,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        error=error,
    )


def forward_event(
    method: str,
    url: str,
    status_code: int,
    duration_ms: float,
    attempt: int,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    """One outbound attempt. status_code is 0 when no response was received."""
    return _base_entry(
        event="webhook_forwarded",
        level="INFO" if error is None else "ERROR",
        method=method,
        target_url=url,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        attempt=attempt,
        error=error,
    )


def system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Startup, shutdown and configuration events."""
    return _base_entry(event=event, level=level, details=details)
