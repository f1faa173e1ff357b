"""
Error logging helpers.
"""

import logging
from typing import Optional

from .exceptions import AssistantError


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log an error with consistent formatting.

    Recoverable assistant errors are logged as warnings, everything else as
    errors.

    Args:
        logger: Logger instance to use
        error: The exception to log
        context: Optional context string to prefix the message
        include_traceback: Whether to include the full stack trace

    Example:
        >>> log_error(logger, err, context="Turn")
        # Logs: "[Turn] LLM_RATE_LIMITED: All candidate models are rate limited"
    """
    if isinstance(error, AssistantError):
        message = f"{error.code.value}: {error.message}"
        level = logging.WARNING if error.recoverable else logging.ERROR
    else:
        message = str(error) or type(error).__name__
        level = logging.ERROR

    if context:
        message = f"[{context}] {message}"

    logger.log(level, message, exc_info=include_traceback)
