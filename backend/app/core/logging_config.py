"""Structured logging configuration.

Emits JSON log lines suitable for any JSON-based log aggregation system.
Every record carries:
- ISO8601 timestamp
- Log level
- Logger name
- Event type (for filtering)
- Service metadata

Token resolution outcomes are logged on the ``security.tokens`` logger with
an ``event_type`` of ``security.token.<outcome>`` so probing attempts can be
alerted on without the precise outcome ever reaching the client.
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

from app.core.config import settings

# Log directory for file-based shipping
LOG_DIR = Path("/var/log/nfc-profiles")

token_logger = logging.getLogger("security.tokens")


class ServiceJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds service metadata and a default event type."""

    def __init__(self, *args, **kwargs):
        super().__init__(
            *args,
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "@timestamp",
                "levelname": "level",
                "name": "logger",
            },
            **kwargs,
        )

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["@timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["service"] = {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

        if "level" in log_record:
            log_record["level"] = log_record["level"].upper()

        if "event_type" not in log_record:
            log_record["event_type"] = f"log.{record.name}"

        log_record["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured logging for the application.

    Sets up a JSON console handler, a rotating file handler when the log
    directory exists, and token redaction on every handler. Call once at
    application startup.
    """
    from app.core.middleware import TokenRedactionFilter

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    json_formatter = ServiceJsonFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(json_formatter)
    console_handler.addFilter(TokenRedactionFilter())
    root_logger.addHandler(console_handler)

    if LOG_DIR.exists():
        app_handler = logging.handlers.TimedRotatingFileHandler(
            LOG_DIR / "application.log",
            when="midnight",
            interval=1,
            backupCount=30,
            encoding="utf-8",
        )
        app_handler.setFormatter(json_formatter)
        app_handler.addFilter(TokenRedactionFilter())
        root_logger.addHandler(app_handler)

    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
        logger.propagate = True

    logging.info(
        "Logging configured",
        extra={
            "event_type": "system.startup.logging_configured",
            "log_level": logging.getLevelName(level),
            "file_logging": LOG_DIR.exists(),
        },
    )


def token_event(
    outcome: str,
    severity: str = "info",
    ip_address: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    token_kind: str | None = None,
    code: str | None = None,
    metadata: dict | None = None,
) -> dict:
    """Build the ``extra`` payload for a token resolution log record.

    Usage:
        token_logger.warning(
            "Token resolution failed",
            extra=token_event("expired", severity="warning", ip_address=ip),
        )
    """
    event = {
        "event_type": f"security.token.{outcome}",
        "severity": severity,
        "outcome": outcome,
    }

    if ip_address:
        event["ip_address"] = ip_address
    if entity_type:
        event["entity_type"] = entity_type
    if entity_id:
        event["entity_id"] = entity_id
    if token_kind:
        event["token_kind"] = token_kind
    if code:
        event["error_code"] = code
    if metadata:
        event["metadata"] = metadata

    return event
