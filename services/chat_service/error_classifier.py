"""
Classification of backend failures surfaced to the chat widget.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional


RATE_LIMIT_STATUS = 429

# Cosmetic cooldown shown after any non rate-limit failure
GENERIC_ERROR_COOLDOWN_SECONDS = 5

RATE_LIMIT_MARKERS = ("429", "rate limit", "too many requests")


class ErrorCategory(Enum):
    """How the widget reacts to a failed request"""
    RATE_LIMIT = "rate_limit"
    GENERIC = "generic"


def _read(err: Any, name: str) -> Any:
    if isinstance(err, Mapping):
        return err.get(name)
    return getattr(err, name, None)


def error_status(err: Any) -> Optional[int]:
    """Numeric status carried by the error, if any (``status`` wins over ``status_code``)"""
    for name in ("status", "status_code", "statusCode"):
        value = _read(err, name)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def error_message(err: Any) -> str:
    """Free-text message carried by the error"""
    message = _read(err, "message")
    if isinstance(message, str):
        return message
    if isinstance(err, BaseException):
        return str(err)
    return ""


def categorize_error(err: Any) -> ErrorCategory:
    """
    Decide whether a backend failure is a rate limit or a generic error

    A 429 status, or a message mentioning "429", "rate limit" or
    "too many requests" (any case), is a rate limit. Everything else is generic.

    Args:
        err: Exception, mapping or object with optional ``status`` and ``message``

    Returns:
        ErrorCategory
    """
    status = error_status(err)
    if status == RATE_LIMIT_STATUS:
        return ErrorCategory.RATE_LIMIT

    message = error_message(err).lower()
    if any(marker in message for marker in RATE_LIMIT_MARKERS):
        return ErrorCategory.RATE_LIMIT

    return ErrorCategory.GENERIC


def rate_limit_message(countdown: Optional[int]) -> str:
    """User-facing banner text while the widget is rate limited"""
    if countdown is not None and countdown > 0:
        plural = "" if countdown == 1 else "s"
        return f"Rate limit exceeded. Please wait {countdown} second{plural}..."
    return "Rate limit exceeded. Please wait..."
