"""Structured Logging: JSON formatter and setup for production observability.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (tenant_id, key_id, error_code, path) surfaced when present
    - Plaintext API keys and bearer tokens never reach a log line (masked to their hint)
    - JSON format in production, human-readable in development
    - setup_logging is idempotent (re-running the lifespan does not duplicate handlers)

Design Decisions:
    - JSONFormatter over third-party libs: zero dependencies, full control over field names
    - Redaction happens in the formatter, so call sites can log headers without thinking
"""

import logging
import json
import re
from datetime import datetime, timezone

_EXTRA_FIELDS = (
    "tenant_id", "key_id", "error_code", "path", "method", "attempt",
    "status_code", "duration_ms", "service", "input_tokens", "output_tokens",
)

_API_KEY_PATTERN = re.compile(r"\b(tis_(?:live|test)_)[0-9a-f]{28}([0-9a-f]{4})\b")
_BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9\-_.=]{12,}")


def redact(text: str) -> str:
    """Mask API keys (keep prefix + hint) and opaque bearer tokens."""
    text = _API_KEY_PATTERN.sub(r"\1****\2", text)
    return _BEARER_PATTERN.sub(r"\1***REDACTED***", text)


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        for key in _EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = str(val) if key in ("tenant_id", "key_id") else val
        if record.exc_info:
            log["exception"] = redact(self.formatException(record.exc_info))
        return json.dumps(log, ensure_ascii=False)


class RedactingFormatter(logging.Formatter):
    """Human-readable formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        return redact(super().format(record))


def setup_logging(level: str = "INFO", fmt: str = "json"):
    """Configure logging for the application."""
    handler = logging.StreamHandler()
    handler.set_name("tistis")
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(RedactingFormatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s",
        ))
    for existing in list(logging.root.handlers):
        if existing.get_name() == "tistis":
            logging.root.removeHandler(existing)
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
