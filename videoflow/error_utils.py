"""
Error handling utilities for consistent logging and error management.

This module provides reusable utilities for handling errors throughout the application,
with structured logging, context preservation, and graceful degradation patterns.
"""

import logging
import sys
from typing import Any

from flask import g, has_request_context


def safe_log_error(
    logger,
    message: str,
    exc_info: bool | BaseException | tuple | None = True,
    level: int = logging.ERROR,
    **extra_context: Any,
) -> None:
    """
    Log an error with structured context and exception information.

    Works with both a stdlib ``logging.Logger`` (context goes into ``extra``)
    and a structlog bound logger (context becomes event keys).

    Args:
        logger: The logger instance to use
        message: Human-readable error message (structlog event name)
        exc_info: Exception info (True for current exception, exception object, or tuple)
        level: Log level (default: ERROR)
        **extra_context: Additional context fields to include in the log

    Example:
        try:
            youtube.upload_video(...)
        except httpx.HTTPError as e:
            safe_log_error(logger, "youtube_upload_failed", exc_info=e, video_id=video.id)
    """
    context = {"error_context": extra_context, "has_exception": exc_info is not None}

    if exc_info:
        if isinstance(exc_info, BaseException):
            context["exception_type"] = type(exc_info).__name__
            context["exception_message"] = str(exc_info)
        elif exc_info is True:
            exc_type, exc_value, _ = sys.exc_info()
            if exc_type:
                context["exception_type"] = exc_type.__name__
                context["exception_message"] = str(exc_value)

    try:
        if isinstance(logger, logging.Logger):
            logger.log(level, message, exc_info=exc_info, extra=context)
        else:
            logger.log(level, message, exc_info=exc_info, **context)
    except Exception:
        # Logging must never break the caller
        pass


def handle_api_exception(
    logger,
    message: str,
    status_code: int = 500,
    public_message: str | None = None,
    **extra_context: Any,
) -> tuple[dict[str, Any], int]:
    """
    Handle an exception in an API endpoint with logging and JSON response.

    The public message is sanitized to avoid leaking internals to clients.

    Args:
        logger: The logger instance to use
        message: Internal error message for logs
        status_code: HTTP status code to return
        public_message: User-facing error message (defaults to generic message)
        **extra_context: Additional context for logging

    Returns:
        Tuple of (JSON response dict, status code)
    """
    safe_log_error(logger, message, exc_info=True, **extra_context)

    if public_message is None:
        if status_code >= 500:
            public_message = "Internal server error"
        elif status_code >= 400:
            public_message = "The request could not be completed."
        else:
            public_message = "An error occurred."

    response = {"message": public_message}

    if has_request_context() and hasattr(g, "request_id"):
        response["requestId"] = g.request_id

    return response, status_code
