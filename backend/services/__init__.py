"""
Assistant Services - Shared infrastructure services.

- llm_client: Async OpenRouter client (OpenAI SDK)
- model_gateway: Pacing, model fallback and round retry over the client
"""

from .llm_client import LLMClient
from .model_gateway import (
    AttemptOutcome,
    CompletionResult,
    ModelAttempt,
    ModelGateway,
    classify_failure,
    promote_model,
)

__all__ = [
    "LLMClient",
    "AttemptOutcome",
    "CompletionResult",
    "ModelAttempt",
    "ModelGateway",
    "classify_failure",
    "promote_model",
]
