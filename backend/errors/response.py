"""
Standard error response builders.

Provides consistent formats for errors crossing a boundary: JSON bodies
for the HTTP layer, strings for tool results the model reads, and the
text shown to the admin when a turn fails.
"""

from typing import Optional
from .codes import ErrorCode
from .exceptions import AssistantError, TurnError


RATE_LIMITED_MESSAGE = (
    "The assistant is receiving too many requests right now. "
    "Please wait a few seconds and try again."
)
UNAVAILABLE_MESSAGE = "The assistant is temporarily unavailable. Please try again later."
GENERIC_FAILURE_MESSAGE = "Sorry, something went wrong while preparing the answer."

_HTTP_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.SESSION_NOT_FOUND: 404,
    ErrorCode.VALIDATION_FAILED: 422,
    ErrorCode.LLM_RATE_LIMITED: 503,
    ErrorCode.LLM_UNAVAILABLE: 503,
    ErrorCode.LLM_EMPTY_RESPONSE: 503,
    ErrorCode.LLM_REQUEST_FAILED: 503,
    ErrorCode.LLM_TIMEOUT: 503,
    ErrorCode.DEPENDENCY_UNAVAILABLE: 503,
}


def error_response(error: AssistantError | Exception, tool: Optional[str] = None, include_context: bool = True) -> dict:
    """Build a standard error response dictionary.

    Args:
        error: The exception to convert to a response
        tool: Optional tool name for context
        include_context: Whether to include the context dict (disable for privacy)

    Returns:
        Standard error response dict with success=False

    Example:
        >>> from errors import NotFoundError, error_response
        >>> err = NotFoundError("No such session", resource_type="session", resource_id="abc")
        >>> error_response(err)
        {
            "success": False,
            "error": {
                "code": "SESSION_NOT_FOUND",
                "message": "No such session",
                "details": None,
                "tool": None,
                "recoverable": True,
                "context": {"resource_type": "session", "resource_id": "abc"}
            }
        }
    """
    if isinstance(error, AssistantError):
        return {
            "success": False,
            "error": {
                "code": error.code.value,
                "message": error.message,
                "details": error.details,
                "tool": tool,
                "recoverable": error.recoverable,
                "context": error.context if include_context else None,
            },
        }

    # Fallback for foreign exceptions
    return {
        "success": False,
        "error": {
            "code": ErrorCode.INTERNAL_ERROR.value,
            "message": str(error),
            "details": None,
            "tool": tool,
            "recoverable": False,
            "context": None,
        },
    }


def http_status_for(error: Exception) -> int:
    """HTTP status code for an error surfaced by the API layer."""
    if isinstance(error, AssistantError):
        return _HTTP_STATUS.get(error.code, 500)
    return 500


def format_error_for_llm(error: AssistantError | Exception, tool: Optional[str] = None) -> str:
    """Format an error for inclusion in a tool result.

    Creates a concise, readable error message suitable for the model to
    understand and communicate to the user.

    Args:
        error: The exception to format
        tool: Optional tool name for context

    Returns:
        Formatted error string
    """
    prefix = f"Error in {tool}" if tool else "Error"
    if isinstance(error, AssistantError):
        parts = [f"{prefix}: {error.message}"]
        if error.details:
            parts.append(f"Details: {error.details}")
        if error.recoverable:
            parts.append("This error may be recoverable by the user.")
        return " ".join(parts)

    return f"{prefix}: {str(error) or type(error).__name__}"


def user_facing_message(error: Exception) -> str:
    """Category-specific text for a failed turn."""
    category = error.category if isinstance(error, TurnError) else getattr(error, "code", None)

    if category == ErrorCode.LLM_RATE_LIMITED:
        return RATE_LIMITED_MESSAGE
    if category in (ErrorCode.LLM_UNAVAILABLE, ErrorCode.LLM_REQUEST_FAILED, ErrorCode.LLM_TIMEOUT):
        return UNAVAILABLE_MESSAGE
    return GENERIC_FAILURE_MESSAGE
