"""Logging setup and security event reporting.

Modules log through ``logging.getLogger(__name__)``. Authentication
failures, CSRF mismatches and rate limit rejections additionally go through
``log_security_event`` so they share one logger name and carry an ``event``
field in structured output. Token values and passwords are never passed in.
"""

import json
import logging
import sys
from typing import Any, Literal

DEV_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

SECURITY_LOGGER_NAME = "saas_server.security"

# Context keys copied from a record's `extra` into structured output
_CONTEXT_FIELDS = ("event", "user_id", "client", "path", "reason")

# Third-party loggers and their level outside DEBUG
_QUIET_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine")


class JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Security events add their context fields next to the message.
    """

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _build_handler(format_type: Literal["structured", "dev"]) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if format_type == "structured":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(DEV_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    level: str = "INFO",
    format_type: Literal["structured", "dev"] = "dev",
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: 'structured' for JSON lines, 'dev' for readable output
    """
    level = level.upper()
    logging.basicConfig(level=level, handlers=[_build_handler(format_type)], force=True)

    quiet_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).info(f"Logging configured: level={level}, format={format_type}")


def log_security_event(event: str, reason: str, **context: Any) -> None:
    """Report a rejected or suspicious request at WARNING.

    `event` is a short machine-readable name such as ``csrf_mismatch``;
    `context` may carry user_id, client and path.
    """
    logging.getLogger(SECURITY_LOGGER_NAME).warning(
        f"{event}: {reason}",
        extra={"event": event, "reason": reason, **context},
    )
