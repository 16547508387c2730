"""Structured JSON logging utilities.

- JSON format for log aggregation
- Includes request_id, identity_id, profile_id from context variables
- Standard fields: timestamp, level, message, module, func, line
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from clixen_api.context import identity_id_var, profile_id_var, request_id_var
from clixen_api.utils.sanitize import sanitize_exc, sanitize_obj, sanitize_str

_CONTEXT_VARS = (
    ("request_id", request_id_var),
    ("identity_id", identity_id_var),
    ("profile_id", profile_id_var),
)

_RESERVED_ATTRS = frozenset({
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
})


class JSONFormatter(logging.Formatter):
    """JSON log formatter with request context.

    Formats log records as JSON with standard fields:
    - timestamp: ISO 8601 UTC
    - level: log level (INFO, ERROR, etc.)
    - message: log message (sanitized)
    - module / func / line
    - request_id, identity_id, profile_id: from context variables when set
    - every key passed through ``extra={...}`` (sanitized)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": sanitize_str(record.getMessage()),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }

        for field, var in _CONTEXT_VARS:
            value = var.get()
            if value:
                log_data[field] = value

        if record.exc_info:
            log_data["exc_info"] = sanitize_exc(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = sanitize_obj(value)

        return json.dumps(log_data, default=str)


def configure_json_logging(log_level: str = "INFO") -> None:
    """Configure root logger with JSON formatter.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)
