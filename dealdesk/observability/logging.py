from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from dealdesk.trace import bound_trace_id

STRUCTURED_FIELDS = (
    "trace_id",
    "tool_name",
    "tool_use_id",
    "round",
    "stop_reason",
    "duration_ms",
    "outcome",
    "path",
    "status",
    "method",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname.lower(),
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in STRUCTURED_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


class TraceIdFilter(logging.Filter):
    """Stamps records with the trace id bound to the current request, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "trace_id", None) is None:
            record.trace_id = bound_trace_id()
        return True


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """JSON lines on stderr for every logger under the ``dealdesk`` package."""
    package_logger = logging.getLogger("dealdesk")
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        handler.addFilter(TraceIdFilter())
        package_logger.addHandler(handler)
        package_logger.propagate = False
    package_logger.setLevel(level)
    return package_logger


def get_runtime_logger() -> logging.Logger:
    logger = logging.getLogger("dealdesk.runtime")
    if not logging.getLogger("dealdesk").handlers:
        configure_logging()
    return logger
