"""
Structured JSON logging configuration (Monolog-style).

Provides structured logging with channels (http, db, otp, sms,
verification, ballot, results), request ID tracking, and context-rich
log entries. All log output is valid JSON written to stdout for
container log aggregation.
"""

import logging
import json
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

from votecore import config

# ──────────────────────────────────────────────────────────────
# Context variable to track request ID across async operations.
# Each incoming HTTP request gets a unique UUID, which is then
# attached to every log entry produced during that request.
# ──────────────────────────────────────────────────────────────
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_LEVEL = config.LOG_LEVEL

CHANNELS = ["http", "db", "otp", "sms", "verification", "ballot", "results"]

# Values under these keys never reach the log output
REDACTED_KEYS = {"otp_code", "code", "phone", "phone_number", "key", "api_key"}
REDACTED = "[redacted]"


def redact(data: dict) -> dict:
    return {k: (REDACTED if k in REDACTED_KEYS else v) for k, v in (data or {}).items()}


class StructuredJsonFormatter(logging.Formatter):
    """
    Custom logging formatter that outputs Monolog-style JSON log entries.
    
    Each log line is a single JSON object containing:
    - timestamp: ISO 8601 timestamp in UTC
    - level: Log severity (INFO, WARNING, ERROR, DEBUG)
    - message: Human-readable log message
    - channel: Log source category (http, otp, ballot, ...)
    - context: Business context (request_id, student_id, category_id, ...)
    - extra: Additional metadata (ip, duration_ms, ...)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.split(".")[-1] if "." in record.name else "app"),
            "context": {
                "request_id": request_id_var.get(""),
                **redact(getattr(record, "context", {}))
            },
            "extra": redact(getattr(record, "extra_data", {}))
        }
        return json.dumps(log_entry, default=str)


def setup_logging():
    """
    Configure the root logger and all channel-specific loggers.
    
    All output is directed to stdout (container-friendly).
    """
    formatter = StructuredJsonFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    root_logger.handlers = [handler]

    # Channel loggers inherit the root handler but have distinct names
    # so log entries can be filtered by channel
    for channel in CHANNELS:
        logger = logging.getLogger(f"votecore.{channel}")
        logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """
    Get a channel-specific logger.
    
    Args:
        channel: Log channel name (http, db, otp, sms, verification, ballot, results)
    
    Returns:
        Logger instance for the specified channel
    """
    return logging.getLogger(f"votecore.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None):
    """
    Emit a structured log entry with business context and extra metadata.
    
    This is the primary logging function used throughout the application.
    
    Args:
        logger: The channel logger to use
        level: Log level string (INFO, WARNING, ERROR, DEBUG)
        message: Human-readable log message
        context: Business context dict (student_id, category_id, session_id)
        extra_data: Additional metadata dict (ip, duration_ms, query_params)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.log(
        log_level,
        message,
        extra={"context": context or {}, "extra_data": extra_data or {}, "channel": logger.name.split(".")[-1]}
    )


def generate_request_id() -> str:
    """Generate a new UUID for request tracking."""
    return str(uuid.uuid4())
