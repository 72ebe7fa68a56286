"""
Structured logging for the chat widget and chat route

Console output is human readable in debug mode and JSON lines otherwise;
file output is always JSON. Conversation and interaction events carry
their identifiers as ``extra`` fields so they end up as JSON keys.
"""

import json
import logging
import logging.handlers
import time
import traceback
from collections import Counter
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import streamlit as st

from config.app_config import AppConfig, get_config


# Attributes set by logging itself; everything else on a record came from ``extra``
_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _exception_payload(exc_info) -> Dict[str, Any]:
    exc_type, exc_value, exc_tb = exc_info
    return {
        "type": exc_type.__name__ if exc_type else None,
        "message": str(exc_value) if exc_value is not None else None,
        "traceback": traceback.format_exception(exc_type, exc_value, exc_tb)
    }


class StructuredFormatter(logging.Formatter):
    """Formats each record as one JSON object"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        if record.exc_info:
            payload["exception"] = _exception_payload(record.exc_info)

        extra = {k: v for k, v in vars(record).items() if k not in _STANDARD_RECORD_ATTRS}
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, ensure_ascii=False, default=str)


class StreamlitLogHandler(logging.Handler):
    """Surfaces warnings and errors on the page while developing"""

    def emit(self, record: logging.LogRecord):
        try:
            text = self.format(record)
            if record.levelno >= logging.ERROR:
                st.error(text, icon="🚨")
            else:
                st.warning(text, icon="⚠️")
        except Exception:
            self.handleError(record)


def _console_handler(config: AppConfig, level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    if config.debug:
        handler.setFormatter(logging.Formatter(config.logging.format + " [%(filename)s:%(lineno)d]"))
    else:
        handler.setFormatter(StructuredFormatter())
    return handler


def _file_handler(config: AppConfig) -> logging.Handler:
    log_path = Path(config.logging.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(StructuredFormatter())
    return handler


def setup_logging(config: Optional[AppConfig] = None) -> logging.Logger:
    """
    Configure the root logger from ``config.logging``

    Existing root handlers are replaced. A Streamlit handler is added for
    warnings and errors when running in development with debug enabled.

    Returns:
        logging.Logger: The root logger
    """
    config = config or get_config()
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(_console_handler(config, level))

    if config.logging.enable_file_logging:
        root.addHandler(_file_handler(config))

    if config.debug and config.environment == "development":
        page_handler = StreamlitLogHandler(level=logging.WARNING)
        page_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(page_handler)

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_execution_time(logger: logging.Logger, operation: str, **fields):
    """
    Log how long the wrapped block took

    Failures are logged with their duration and re-raised.
    """
    started = time.perf_counter()
    try:
        yield
    except Exception as e:
        logger.warning(f"{operation} failed after {time.perf_counter() - started:.3f}s", extra={
            "operation": operation,
            "duration_seconds": time.perf_counter() - started,
            "status": "error",
            "error_type": type(e).__name__,
            **fields
        })
        raise

    logger.info(f"{operation} took {time.perf_counter() - started:.3f}s", extra={
        "operation": operation,
        "duration_seconds": time.perf_counter() - started,
        "status": "success",
        **fields
    })


def log_user_interaction(logger: logging.Logger, interaction_type: str, **details):
    """Record a user action on the widget ("submit", "choice_click")"""
    logger.info(f"User interaction: {interaction_type}", extra={
        "event_type": "user_interaction",
        "interaction_type": interaction_type,
        **details
    })


def log_conversation_event(logger: logging.Logger, event_type: str, conversation_id: str, **details):
    """Record a conversation state change ("message_added", "cooldown_started", "cleared", ...)"""
    logger.info(f"Conversation {event_type}", extra={
        "event_type": "conversation_event",
        "conversation_event_type": event_type,
        "conversation_id": conversation_id,
        **details
    })


class ErrorTracker:
    """
    Counts errors per (exception type, context) and logs each one with its traceback
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.error_counts: Counter = Counter()

    def track_error(self, error: Exception, context: str = "", **extra_info):
        error_type = type(error).__name__
        key = f"{error_type}:{context}"
        self.error_counts[key] += 1

        self.logger.error(f"Error in {context}: {error}", extra={
            "event_type": "error",
            "error_type": error_type,
            "error_message": str(error),
            "context": context,
            "error_count": self.error_counts[key],
            **extra_info
        }, exc_info=error)

    def get_error_summary(self) -> Dict[str, Any]:
        return {
            "total_errors": sum(self.error_counts.values()),
            "unique_errors": len(self.error_counts),
            "error_breakdown": dict(self.error_counts),
        }


# Global instances
_logging_configured = False
_error_tracker: Optional[ErrorTracker] = None


def get_error_tracker() -> ErrorTracker:
    """Global error tracker; does not touch handler setup"""
    global _error_tracker
    if _error_tracker is None:
        _error_tracker = ErrorTracker(logging.getLogger("errors"))
    return _error_tracker


def initialize_logging(config: Optional[AppConfig] = None) -> ErrorTracker:
    """Configure logging once per process and return the global error tracker"""
    global _logging_configured
    if not _logging_configured:
        setup_logging(config)
        _logging_configured = True
    return get_error_tracker()
