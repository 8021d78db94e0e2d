"""
Structured Logging Module
JSON log lines for the run's log file (LOG_FORMAT=json)

Per-message log calls attach archive context through `extra=`, e.g.
    logger.error("...", extra={"message_number": 7, "period": "MARCH_2024"})
and every such field becomes a top-level key, so one jq filter lists all
failures of a run with their message numbers.
"""

import json
import logging
from typing import Any, Dict

from .sanitization import sanitize_for_logging


# Attributes copied from the LogRecord when a log call supplies them
ARCHIVE_FIELDS = ("message_number", "subject", "period", "record", "error_type")

# Keys whose values never reach the log file
SENSITIVE_FIELDS = ("password", "token", "secret", "credential")


class JSONFormatter(logging.Formatter):
    """Formats each record as a single JSON object"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for name in ARCHIVE_FIELDS:
            if hasattr(record, name):
                log_data[name] = self._archive_value(name, getattr(record, name))

        # Free-form context: extra={"extra_fields": {...}}
        for key, value in getattr(record, "extra_fields", {}).items():
            log_data[key] = self._redact(key, value)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)

    @staticmethod
    def _archive_value(name: str, value: Any) -> Any:
        # Subjects come from untrusted headers
        if name == "subject":
            return sanitize_for_logging(str(value), 120)
        return value

    @staticmethod
    def _redact(key: str, value: Any) -> Any:
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            return "[REDACTED]"
        return value
