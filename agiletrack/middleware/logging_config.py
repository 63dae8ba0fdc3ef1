"""
Log output for the API process.

Production writes one JSON object per line so the aggregator can index the
request fields; development and tests get a short colored line instead.
LOG_LEVEL overrides the per-environment default.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Request/tenant attributes passed through ``extra=`` by the middleware and services
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "user_id",
    "organization_id",
    "project_id",
)


def _context(record: logging.LogRecord) -> dict:
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
            **_context(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    _PALETTE = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    _RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        ctx = _context(record)
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = (
            f"{self._PALETTE.get(record.levelno, '')}{stamp} {record.levelname:<8}{self._RESET} "
            f"{record.name}: {record.getMessage()}"
        )
        if "duration_ms" in ctx:
            line += f" [{ctx['duration_ms']:.0f}ms]"
        if "request_id" in ctx:
            line += f" ({ctx['request_id']})"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _default_level(app) -> str:
    if app.config.get("TESTING"):
        return "WARNING"
    return "DEBUG" if app.config.get("DEBUG") else "INFO"


def configure_logging(app):
    """Install a single stderr handler on the root logger for ``app``."""
    structured = not app.config.get("DEBUG") and not app.config.get("TESTING")
    level_name = os.getenv("LOG_LEVEL", _default_level(app)).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if structured else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app runs once per test; replace rather than stack handlers
    root.handlers[:] = [handler]
    root.setLevel(level)

    for chatty in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(chatty).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING"):
        app.logger.info("Logging at %s (%s output)", level_name, "json" if structured else "readable")
