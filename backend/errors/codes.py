"""
Error codes for the admin assistant.

Provides a standardized taxonomy of error codes organized by category.
Use these codes consistently across all error responses.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes.

    Categories:
    - TOOL_*: Tool catalog and tool execution errors
    - LLM_*: Model gateway errors
    - TURN_*: Orchestrator turn errors
    - VALIDATION_*: Input validation errors
    - NOT_FOUND / SESSION_*: Missing resources
    - DEPENDENCY_*: Missing collaborators
    - INTERNAL_*: Internal/unexpected errors
    """

    # Tool catalog / execution
    TOOL_DUPLICATE = "TOOL_DUPLICATE"
    TOOL_UNKNOWN = "TOOL_UNKNOWN"
    TOOL_FAILED = "TOOL_FAILED"
    TOOL_TIMEOUT = "TOOL_TIMEOUT"
    TOOL_CATALOG_FROZEN = "TOOL_CATALOG_FROZEN"

    # Model gateway
    LLM_RATE_LIMITED = "LLM_RATE_LIMITED"
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    LLM_EMPTY_RESPONSE = "LLM_EMPTY_RESPONSE"
    LLM_REQUEST_FAILED = "LLM_REQUEST_FAILED"
    LLM_TIMEOUT = "LLM_TIMEOUT"

    # Orchestrator
    TURN_FAILED = "TURN_FAILED"
    TURN_ABANDONED = "TURN_ABANDONED"

    # Input validation
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # Missing resources
    NOT_FOUND = "NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"

    # Collaborators (data store, search API)
    DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"

    # Internal errors (unexpected failures)
    INTERNAL_ERROR = "INTERNAL_ERROR"
