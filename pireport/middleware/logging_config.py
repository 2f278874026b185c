"""
Structured logging configuration.

- Development / testing: coloured one-line format with a "[PI n/It m]" scope
- Production: one JSON object per line
- LOG_LEVEL env variable overrides the level

Inside a request, ``RequestScopeFilter`` stamps every record with the request
id and the PI / iteration of the URL, so pipeline stages deep in the service
layer log with the scope of the report they are building.

Usage:
    from pireport.middleware.logging_config import configure_logging
    configure_logging(app)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# ``extra`` attributes copied into JSON lines when present
SCOPE_FIELDS = ("request_id", "pi_number", "iteration")
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr")

_NOISY_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic")


class RequestScopeFilter(logging.Filter):
    """Fill in request id / PI / iteration from the active request.

    Values passed explicitly through ``extra`` win.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        view_args = request.view_args or {}
        defaults = {
            "request_id": g.get("request_id"),
            "pi_number": view_args.get("pi_number"),
            "iteration": view_args.get("iteration"),
        }
        for name, value in defaults.items():
            if getattr(record, name, None) is None and value is not None:
                setattr(record, name, value)
        return True


class JSONFormatter(logging.Formatter):
    """JSON log lines for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        for key in (*SCOPE_FIELDS, *REQUEST_FIELDS):
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single-line format for a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    @staticmethod
    def _scope(record: logging.LogRecord) -> str:
        pi_number = getattr(record, "pi_number", None)
        if pi_number is None:
            return ""
        iteration = getattr(record, "iteration", None)
        return f" [PI {pi_number}/It {iteration if iteration is not None else '-'}]"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}:{self._scope(record)} {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install one stderr handler on the root logger.

    Level defaults to DEBUG outside production, INFO in production.
    Re-running (one app per test session, CLI reloads) replaces the handler
    instead of stacking another.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestScopeFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "JSON" if is_prod else "readable")
