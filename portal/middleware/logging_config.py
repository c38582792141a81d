"""
Logging setup for the role/permission service.

Services attach audit context with ``extra=`` (who did it, which app or role,
how many rows). Both formatters surface that context:

- JSONFormatter: one object per line, context as top-level keys (production)
- ReadableFormatter: ``12:00:01 INFO  logger: message [by alice app=someApp]``

The level comes from LOG_LEVEL, defaulting to INFO in production and DEBUG
elsewhere.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Keys services pass through ``extra=``
CONTEXT_FIELDS = ("operator", "app_id", "role_name", "count")


def _context(record):
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        context = _context(record)
        operator = context.pop("operator", None)
        tags = [f"by {operator}"] if operator else []
        tags += [f"{key}={value}" for key, value in context.items()]
        if tags:
            line += f" [{' '.join(tags)}]"

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger for ``app``."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())

    # Replace rather than append so repeated create_app calls don't duplicate lines
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    app.logger.setLevel(level)
