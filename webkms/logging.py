"""Logging setup for the WebKMS client.

Modules log through ``logging.getLogger(__name__)``; nothing is configured
on import. Applications call ``setup_logging`` to attach a handler to the
``webkms`` logger.

Structured fields are passed as ``extra={"extra_fields": {...}}`` and are
masked before output when their name looks sensitive.

Usage:
    from webkms.logging import setup_logging

    setup_logging(json_output=True, level="DEBUG")
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from webkms.config import get_settings

LOGGER_NAME = "webkms"

# Sensitive fields to mask in logs
SENSITIVE_FIELDS = {
    "secret", "seed", "key", "cek", "token", "signature", "authorization",
    "plaintext", "private",
}


def mask_sensitive(data: dict[str, Any]) -> dict[str, Any]:
    """Mask sensitive values in a dictionary."""
    masked = {}
    for key, value in data.items():
        key_lower = key.lower()
        # Key ids are references, not key material
        if key_lower.endswith("_id") or key_lower == "kid":
            masked[key] = value
        elif any(s in key_lower for s in SENSITIVE_FIELDS):
            masked[key] = "[REDACTED]"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive(value)
        else:
            masked[key] = value
    return masked


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra_fields"):
            log_entry.update(mask_sensitive(record.extra_fields))

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class HumanFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        extra_str = ""
        if getattr(record, "extra_fields", None):
            masked = mask_sensitive(record.extra_fields)
            extra_str = " | " + " ".join(f"{k}={v}" for k, v in masked.items())

        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        message = (
            f"{timestamp} {record.levelname[:4]} "
            f"[{record.name}] {record.getMessage()}{extra_str}"
        )

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(json_output: bool | None = None, level: str | None = None) -> logging.Logger:
    """Configure the ``webkms`` logger.

    Args:
        json_output: Use JSON format (defaults to the ``log_json`` setting)
        level: Logging level (defaults to the ``log_level`` setting)

    Returns:
        The configured package logger
    """
    settings = get_settings()
    if json_output is None:
        json_output = settings.log_json
    level = (level or settings.log_level).upper()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level, logging.INFO))

    # Remove existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if json_output else HumanFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logger
