"""
Structured logging configuration.

- Development / testing: one colored line per record, tagged with the
  request id and project when a request is active
- Production: one JSON object per line
- Log level: LOG_LEVEL env variable

RequestContextFilter stamps ``request_id`` / ``project_id`` / ``task_id``
onto every record emitted while a request is being handled, so service and
engine logs can be correlated with the access line written by timing.py
without threading ids through call signatures.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Record attributes copied into JSON output when present
_CONTEXT_FIELDS = (
    "request_id",
    "project_id",
    "task_id",
    "stage",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)

_NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "google_genai", "openai", "httpx")


class RequestContextFilter(logging.Filter):
    """Copy request-scoped ids from ``flask.g`` onto log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            for key in ("request_id", "project_id", "task_id"):
                if getattr(record, key, None) is None:
                    setattr(record, key, g.get(key))
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update({
            key: getattr(record, key)
            for key in _CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line formatter: ``12:00:01 INFO  [req proj] logger: msg``."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")

        tags = [t for t in (getattr(record, "request_id", None),
                            _short(getattr(record, "project_id", None))) if t]
        tag_str = f" [{' '.join(tags)}]" if tags else ""
        duration = getattr(record, "duration_ms", None)
        dur_str = f" ({duration:.0f}ms)" if duration is not None else ""

        line = (f"{color}{ts} {record.levelname:<7}{self.RESET}{tag_str} "
                f"{record.name}: {record.getMessage()}{dur_str}")
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _short(project_id):
    return f"proj:{project_id[:8]}" if project_id else None


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    Production (not DEBUG, not TESTING) logs JSON; everything else logs the
    readable format. Default level is INFO in production and DEBUG otherwise.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app runs once per test session and per worker; never stack handlers
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if is_prod else "readable")
