"""Logging helpers for structured request logs."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

_EXTRA_FIELDS = ("client_ip", "method", "path", "user_agent", "reason", "status")


class JsonFormatter(logging.Formatter):
    """Render log records as structured JSON."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for attr in _EXTRA_FIELDS:
            value = getattr(record, attr, None)
            if value is not None:
                payload[attr] = value
        return json.dumps(payload)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logger with JSON formatting."""

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)
