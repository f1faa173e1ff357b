"""
Model Gateway - resilient access to a pool of free OpenRouter models.

Policy for every call:
1. Pacing: one process-wide gate keeps round starts at least
   ``min_request_delay`` apart, across all sessions.
2. Walk the candidate list in order (index 0 = preferred model):
   - success → return; a model that succeeded after an earlier candidate
     failed becomes the preferred model for later calls
   - HTTP 429 → next candidate immediately (separate rate buckets)
   - HTTP 400/404, transport error, timeout → next candidate
3. If the whole list failed, sleep ``round_backoff_base * round`` and walk
   it again, up to ``max_rounds`` rounds.
4. Exhausted: RateLimitedError if the final failure was a 429,
   AllModelsUnavailableError otherwise.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from errors import (
    AllModelsUnavailableError,
    ModelRequestError,
    RateLimitedError,
    ValidationError,
)
from logging_config import log_llm
from tools.registry import ToolCall

logger = logging.getLogger(__name__)


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    BAD_REQUEST = "bad_request"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class ModelAttempt:
    """One try against one model. Kept for diagnostics, never persisted."""

    model_id: str
    outcome: AttemptOutcome
    round_number: int = 1
    detail: str = ""


@dataclass
class CompletionResult:
    content: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    model: str = ""
    attempts: List[ModelAttempt] = field(default_factory=list)
    thinking: str = ""


def promote_model(candidates: Sequence[str], index: int) -> List[str]:
    """Candidate order after ``candidates[index]`` succeeded.

    The winner moves to the front; the others keep their relative order.
    """
    if not 0 <= index < len(candidates):
        raise IndexError(f"Candidate index {index} out of range for {len(candidates)} models")
    return [candidates[index]] + [m for i, m in enumerate(candidates) if i != index]


def classify_failure(error: BaseException) -> AttemptOutcome:
    """Map an attempt failure to the outcome that drives fallback."""
    if isinstance(error, ModelRequestError) and error.status_code is not None:
        if error.status_code == 429:
            return AttemptOutcome.RATE_LIMITED
        if error.status_code in (400, 404):
            return AttemptOutcome.BAD_REQUEST
    return AttemptOutcome.TRANSPORT_ERROR


def parse_tool_calls(message: Dict[str, Any]) -> List[ToolCall]:
    """ToolCalls from a translated assistant message.

    Calls without an id get a positional one so results can be correlated.
    """
    calls = []
    for i, tc in enumerate(message.get("tool_calls") or []):
        fn = tc.get("function", tc)
        name = fn.get("name")
        if not name:
            logger.warning(f"Skipping tool call without a name: {tc!r}")
            continue
        args = fn.get("arguments")
        calls.append(ToolCall(id=tc.get("id") or f"call_{i}", tool_name=name, arguments=args if isinstance(args, dict) else {}))
    return calls


class ModelGateway:
    """
    Process-wide gateway to the completion endpoint.

    Constructed once at startup and shared by every session. The pacing
    timestamp and the candidate order are the only mutable state; each is
    guarded by its own asyncio.Lock.

    Usage:
        gateway = ModelGateway(client, ["model-a", "model-b"])
        result = await gateway.complete(messages, tools_schema)
        async for chunk in gateway.stream(messages):
            ...
    """

    def __init__(
        self,
        client,
        candidates: Sequence[str],
        min_request_delay: float = 1.0,
        max_rounds: int = 3,
        round_backoff_base: float = 2.0,
        request_timeout: float = 60.0,
        options: Optional[Dict[str, Any]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        config=None,
    ):
        if not candidates:
            raise ValidationError("At least one candidate model is required", parameter="candidates")
        if max_rounds < 1:
            raise ValidationError("max_rounds must be at least 1", parameter="max_rounds", received=str(max_rounds))

        self._client = client
        self._candidates: List[str] = list(candidates)
        self._min_request_delay = min_request_delay
        self._max_rounds = max_rounds
        self._round_backoff_base = round_backoff_base
        self._request_timeout = request_timeout
        self._options = dict(options or {})
        self._config = config
        self._clock = clock
        self._sleep = sleep

        self._last_request_at: Optional[float] = None
        self._pace_lock = asyncio.Lock()
        self._state_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, client, config, **kwargs) -> "ModelGateway":
        """Build a gateway that follows an AssistantConfig.

        Policy values are read from ``config`` on every call, so
        ``config.update(...)`` takes effect without rebuilding the gateway.
        """
        return cls(
            client,
            config.candidate_models,
            min_request_delay=config.min_request_delay,
            max_rounds=config.max_rounds,
            round_backoff_base=config.round_backoff_base,
            request_timeout=config.llm_timeout,
            options=config.get_llm_params(),
            config=config,
            **kwargs,
        )

    # Policy, live from the config when one is attached

    @property
    def min_request_delay(self) -> float:
        return self._config.min_request_delay if self._config is not None else self._min_request_delay

    @property
    def max_rounds(self) -> int:
        return self._config.max_rounds if self._config is not None else self._max_rounds

    @property
    def round_backoff_base(self) -> float:
        return self._config.round_backoff_base if self._config is not None else self._round_backoff_base

    @property
    def request_timeout(self) -> float:
        return self._config.llm_timeout if self._config is not None else self._request_timeout

    @property
    def options(self) -> Dict[str, Any]:
        return self._config.get_llm_params() if self._config is not None else dict(self._options)

    def _sync_candidates(self) -> None:
        """Adopt the configured model list when its membership changed.

        A reordering alone is ignored so the promoted order survives.
        """
        if self._config is None:
            return
        configured = list(self._config.candidate_models)
        if configured and set(configured) != set(self._candidates):
            logger.info(f"Candidate models changed: {', '.join(configured)}")
            self._candidates = configured

    @property
    def candidates(self) -> List[str]:
        """Current candidate order (copy)."""
        return list(self._candidates)

    @property
    def preferred_model(self) -> str:
        return self._candidates[0]

    async def _wait_for_slot(self) -> None:
        """Block until ``min_request_delay`` has passed since the previous round start."""
        async with self._pace_lock:
            if self._last_request_at is not None:
                wait = self._last_request_at + self.min_request_delay - self._clock()
                if wait > 0:
                    logger.debug(f"Pacing model request: waiting {wait:.2f}s")
                    await self._sleep(wait)
            self._last_request_at = self._clock()

    async def _snapshot(self) -> List[str]:
        async with self._state_lock:
            self._sync_candidates()
            return list(self._candidates)

    async def _promote(self, model: str) -> None:
        async with self._state_lock:
            if model not in self._candidates or self._candidates[0] == model:
                return
            previous = self._candidates[0]
            self._candidates = promote_model(self._candidates, self._candidates.index(model))
        logger.info(f"Preferred model is now {model} (was {previous})")

    async def _run_with_fallback(
        self, call: Callable[[str], Awaitable[Any]]
    ) -> Tuple[Any, str, List[ModelAttempt]]:
        """Two-level retry: walk the candidates once per round, up to max_rounds rounds."""
        attempts: List[ModelAttempt] = []
        last_outcome: Optional[AttemptOutcome] = None
        max_rounds = self.max_rounds
        request_timeout = self.request_timeout

        for round_number in range(1, max_rounds + 1):
            await self._wait_for_slot()
            candidates = await self._snapshot()

            for index, model in enumerate(candidates):
                log_llm(logger, "start", model)
                started = self._clock()
                try:
                    value = await asyncio.wait_for(call(model), timeout=request_timeout)
                except asyncio.TimeoutError:
                    outcome, detail = AttemptOutcome.TRANSPORT_ERROR, f"timed out after {request_timeout:g}s"
                except Exception as e:
                    outcome, detail = classify_failure(e), str(e)
                else:
                    attempts.append(ModelAttempt(model, AttemptOutcome.SUCCESS, round_number))
                    log_llm(logger, "end", model, duration=self._clock() - started)
                    if index > 0:
                        await self._promote(model)
                    return value, model, attempts

                attempts.append(ModelAttempt(model, outcome, round_number, detail))
                last_outcome = outcome
                log_llm(logger, "fallback", model, detail=f"{outcome.value}: {detail}")

            if round_number < max_rounds:
                delay = self.round_backoff_base * round_number
                logger.warning(
                    f"All {len(candidates)} models failed in round {round_number}/{max_rounds}, "
                    f"retrying in {delay:g}s"
                )
                await self._sleep(delay)

        tried = len(attempts)
        if last_outcome == AttemptOutcome.RATE_LIMITED:
            log_llm(logger, "error", "all models", detail=f"rate limited after {tried} attempts")
            raise RateLimitedError(
                "All candidate models are rate limited",
                details=f"{tried} attempts over {max_rounds} rounds",
                attempts=tried,
            )
        log_llm(logger, "error", "all models", detail=f"unavailable after {tried} attempts")
        raise AllModelsUnavailableError(
            "No candidate model could answer",
            details=f"{tried} attempts over {max_rounds} rounds",
            attempts=tried,
        )

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> CompletionResult:
        """Send a conversation and return the first successful completion.

        Args:
            messages: Wire-format messages (system, user, assistant, tool)
            tools: OpenAI-compatible tool schemas offered to the model

        Raises:
            RateLimitedError, AllModelsUnavailableError
        """

        async def _call(model: str):
            return await self._client.chat(model, messages, tools=tools, options=self.options)

        response, model, attempts = await self._run_with_fallback(_call)
        message = response.get("message", {})
        return CompletionResult(
            content=message.get("content") or "",
            tool_calls=parse_tool_calls(message),
            model=response.get("model") or model,
            attempts=attempts,
            thinking=message.get("thinking", ""),
        )

    async def stream(self, messages: List[Dict[str, Any]]) -> AsyncIterator[str]:
        """Stream content chunks of a plain (tool-less) completion.

        Fallback applies to opening the stream; a failure after the first
        chunk propagates to the caller.
        """

        async def _open(model: str):
            return await self._client.open_stream(model, messages, options=self.options)

        chunks, _model, _attempts = await self._run_with_fallback(_open)
        async for chunk in chunks:
            yield chunk
