"""
Custom exception hierarchy for the admin assistant.

All exceptions inherit from AssistantError and include:
- code: ErrorCode for categorization
- message: Human-readable error message
- details: Optional additional context
- recoverable: Whether the user can retry/fix the issue
- context: Additional key-value pairs for debugging
"""

from typing import Any, Optional
from .codes import ErrorCode


class AssistantError(Exception):
    """Base exception for all assistant errors.

    Attributes:
        code: The ErrorCode categorizing this error
        message: Human-readable error message
        details: Optional additional context for the user
        recoverable: Whether the error can be resolved by user action
        context: Additional debugging information
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        self.message = message
        self.details = details
        self.context = context if context else None

        # Allow overriding class defaults
        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable

        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
        }


# ---------------------------------------------------------------------------
# Tool catalog / execution
# ---------------------------------------------------------------------------


class DuplicateToolError(AssistantError):
    """A tool name was registered twice. Fatal at startup."""

    code = ErrorCode.TOOL_DUPLICATE
    recoverable = False

    def __init__(self, tool_name: str, **context: Any):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' is already registered", tool=tool_name, **context)


class UnknownToolError(AssistantError):
    """Lookup of a tool name that is not in the catalog."""

    code = ErrorCode.TOOL_UNKNOWN
    recoverable = True

    def __init__(self, tool_name: str, **context: Any):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}", tool=tool_name, **context)


class ToolTimeoutError(AssistantError):
    code = ErrorCode.TOOL_TIMEOUT
    recoverable = True

    def __init__(self, tool_name: str, timeout: float, **context: Any):
        self.tool_name = tool_name
        self.timeout = timeout
        super().__init__(
            f"Tool '{tool_name}' timed out after {timeout:g}s",
            tool=tool_name,
            timeout=timeout,
            **context,
        )


class CatalogFrozenError(AssistantError):
    """Registration attempted after startup finished."""

    code = ErrorCode.TOOL_CATALOG_FROZEN
    recoverable = False


# ---------------------------------------------------------------------------
# Model gateway
# ---------------------------------------------------------------------------


class ModelRequestError(AssistantError):
    """One failed attempt against one model.

    ``status_code`` is the HTTP status when the endpoint answered, ``None``
    for transport failures. ``error_type`` is one of ``"http"``,
    ``"timeout"``, ``"transport"`` or ``"empty"``.
    """

    code = ErrorCode.LLM_REQUEST_FAILED
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
        error_type: str = "http",
        **context: Any,
    ):
        self.model = model
        self.status_code = status_code
        self.error_type = error_type

        code = ErrorCode.LLM_TIMEOUT if error_type == "timeout" else ErrorCode.LLM_REQUEST_FAILED

        ctx = {**context}
        if model:
            ctx["model"] = model
        if status_code:
            ctx["status_code"] = status_code
        ctx["error_type"] = error_type
        super().__init__(message, details, code=code, **ctx)


class RateLimitedError(AssistantError):
    """Every round ended with the last candidate answering HTTP 429."""

    code = ErrorCode.LLM_RATE_LIMITED
    recoverable = True


class AllModelsUnavailableError(AssistantError):
    """Every round ended on a non-429 failure."""

    code = ErrorCode.LLM_UNAVAILABLE
    recoverable = True


class EmptyResponseError(AssistantError):
    """The model returned blank content twice in a row."""

    code = ErrorCode.LLM_EMPTY_RESPONSE
    recoverable = True


# ---------------------------------------------------------------------------
# Orchestrator boundary
# ---------------------------------------------------------------------------


class TurnAbandonedError(AssistantError):
    """The consumer stopped reading a streamed turn before it finished."""

    code = ErrorCode.TURN_ABANDONED
    recoverable = True


class TurnError(AssistantError):
    """Catch-all wrapping whatever ended a turn.

    ``category`` is the ErrorCode of the wrapped cause so the boundary can
    choose the user-facing message without inspecting exception types.
    """

    code = ErrorCode.TURN_FAILED
    recoverable = True

    def __init__(self, cause: Exception, **context: Any):
        self.cause = cause
        if isinstance(cause, AssistantError):
            self.category = cause.code
            message = cause.message
        else:
            self.category = ErrorCode.INTERNAL_ERROR
            message = str(cause) or type(cause).__name__
        super().__init__(message, category=self.category.value, **context)


# ---------------------------------------------------------------------------
# Generic
# ---------------------------------------------------------------------------


class ValidationError(AssistantError):
    """Error during input validation."""

    code = ErrorCode.VALIDATION_FAILED
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        parameter: Optional[str] = None,
        expected: Optional[str] = None,
        received: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        if parameter:
            ctx["parameter"] = parameter
        if expected:
            ctx["expected"] = expected
        if received:
            ctx["received"] = received
        super().__init__(message, details, **ctx)


class NotFoundError(AssistantError):
    """Error when a required resource is not found."""

    code = ErrorCode.NOT_FOUND
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        **context: Any,
    ):
        code = ErrorCode.SESSION_NOT_FOUND if resource_type == "session" else ErrorCode.NOT_FOUND

        ctx = {**context}
        if resource_type:
            ctx["resource_type"] = resource_type
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message, details, code=code, **ctx)


class DependencyUnavailableError(AssistantError):
    """A collaborator (data store, search API) is not configured or failed."""

    code = ErrorCode.DEPENDENCY_UNAVAILABLE
    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        service: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        if service:
            ctx["service"] = service
        super().__init__(message, details, **ctx)
