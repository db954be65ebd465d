"""
Structured logging configuration with JSON formatting for the daemon.
Supports both JSON and text output formats and size-based rotation.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER_NAME = "kindle_send"

# Fields components attach via logger.info(..., extra={...})
CONTEXT_FIELDS = [
    # Lifecycle
    "event",
    "pid",
    "pid_file",
    "state",
    "signal",
    # Scheduling
    "interval_minutes",
    "cycle_status",
    "duration_ms",
    # Bookmarks and sources
    "source",
    "url",
    "path",
    "bookmark_count",
    "new_count",
    "request_count",
    "artifact_count",
    "record_count",
    # Delivery
    "receiver",
    "attachment_count",
    "timeout_seconds",
    # Errors
    "error",
    "error_type",
]


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.
    Outputs log records as JSON objects, one per line.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "text",
    log_file: Optional[str] = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
    name: str = LOGGER_NAME,
) -> logging.Logger:
    """
    Configure the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Output format ('json' or 'text')
        log_file: Path to log file (None: console only)
        max_bytes: Maximum size of each log file before rotation
        backup_count: Number of backup files to keep
        name: Logger name; module loggers below it propagate here

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers
    close_logging(logger)

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def setup_logging_from_config(config, to_file: bool = True) -> logging.Logger:
    """Configure logging from a Config; one-shot commands skip the log file."""
    return setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=str(config.log_path) if to_file else None,
        max_bytes=config.log_max_bytes,
        backup_count=config.log_backup_count,
    )


def close_logging(logger: logging.Logger) -> None:
    """Flush, close and detach every handler (releases the log file)."""
    for handler in list(logger.handlers):
        try:
            handler.flush()
            handler.close()
        finally:
            logger.removeHandler(handler)
