"""
Structured JSON logging for the classroom insight engine.
Includes student_id, classroom_id, action, and timestamp in every log.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone

from classroom_insight.shared.config import settings


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info", "taskName",
}

_CONTEXT_FIELDS = ("student_id", "classroom_id", "session_id", "action")


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add any extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in _CONTEXT_FIELDS:
                log_data[key] = str(value)

        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None
):
    """
    Setup structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for file logging
    """
    log_level = log_level or settings.log_level
    log_file = log_file or settings.log_file

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = StructuredFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    # Console handler (stdout)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    student_id: Optional[str] = None,
    classroom_id: Optional[str] = None,
    session_id: Optional[str] = None,
    action: Optional[str] = None,
    **kwargs
):
    """
    Log with structured context.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        message: Log message
        student_id: Optional student ID
        classroom_id: Optional classroom ID
        session_id: Optional tutoring session ID
        action: Optional action name
        **kwargs: Additional structured fields
    """
    extra = {}
    if student_id:
        extra["student_id"] = student_id
    if classroom_id:
        extra["classroom_id"] = classroom_id
    if session_id:
        extra["session_id"] = session_id
    if action:
        extra["action"] = action
    extra.update(kwargs)

    logger.log(level, message, extra=extra)


# Initialize logging on import
setup_logging()
