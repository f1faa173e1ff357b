"""
Assistant Error Handling Module

Provides standardized error codes, exceptions, and response builders
for consistent error handling across the application.

Usage:
    from errors import (
        # Error codes
        ErrorCode,

        # Exceptions
        AssistantError,
        DuplicateToolError,
        UnknownToolError,
        RateLimitedError,
        AllModelsUnavailableError,
        EmptyResponseError,
        TurnError,

        # Response builders
        error_response,
        format_error_for_llm,
        user_facing_message,
        log_error,
    )

Example:
    from errors import NotFoundError

    def get_user(store, args):
        user = store.get_user(args["userId"])
        if user is None:
            raise NotFoundError(
                "User not found",
                resource_type="user",
                resource_id=args["userId"],
            )
        return user
"""

from .codes import ErrorCode
from .exceptions import (
    AssistantError,
    DuplicateToolError,
    UnknownToolError,
    ToolTimeoutError,
    CatalogFrozenError,
    ModelRequestError,
    RateLimitedError,
    AllModelsUnavailableError,
    EmptyResponseError,
    TurnAbandonedError,
    TurnError,
    ValidationError,
    NotFoundError,
    DependencyUnavailableError,
)
from .response import (
    error_response,
    http_status_for,
    format_error_for_llm,
    user_facing_message,
    RATE_LIMITED_MESSAGE,
    UNAVAILABLE_MESSAGE,
    GENERIC_FAILURE_MESSAGE,
)
from .handlers import log_error

__all__ = [
    # Error codes
    "ErrorCode",
    # Exceptions
    "AssistantError",
    "DuplicateToolError",
    "UnknownToolError",
    "ToolTimeoutError",
    "CatalogFrozenError",
    "ModelRequestError",
    "RateLimitedError",
    "AllModelsUnavailableError",
    "EmptyResponseError",
    "TurnAbandonedError",
    "TurnError",
    "ValidationError",
    "NotFoundError",
    "DependencyUnavailableError",
    # Response builders
    "error_response",
    "http_status_for",
    "format_error_for_llm",
    "user_facing_message",
    "RATE_LIMITED_MESSAGE",
    "UNAVAILABLE_MESSAGE",
    "GENERIC_FAILURE_MESSAGE",
    # Logging
    "log_error",
]
