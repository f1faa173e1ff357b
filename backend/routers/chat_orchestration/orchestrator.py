"""
Assistant Orchestrator - one admin turn, end to end

Turn states:
    AWAITING_USER_INPUT → TOOLS_SELECTED → AWAITING_MODEL_FIRST_PASS
        → [EXECUTING_TOOLS → AWAITING_MODEL_SECOND_PASS] → FINALIZED | ERRORED

1. Commit the user message
2. Narrow the tool catalog to the message
3. First completion; if it requests tools, run them concurrently
4. Second completion with the tool round attached (provisional, never
   committed)
5. Blank answer → one corrective request, then the fixed fallback text
6. Commit one finalized assistant message carrying the calls/results used
Any gateway failure ends the turn with a committed error message instead
of an exception; the conversation stays appendable.
"""

import asyncio
import logging
from collections import OrderedDict
from contextlib import aclosing
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from errors import (
    AssistantError,
    EmptyResponseError,
    NotFoundError,
    TurnAbandonedError,
    TurnError,
    ValidationError,
    log_error,
    user_facing_message,
)
from logging_config import log_message_in, log_message_out
from services.model_gateway import ModelGateway
from tools.registry import ToolCatalog, ToolCall, ToolResult
from ..chat_prompts import (
    CORRECTIVE_INSTRUCTION,
    FALLBACK_ANSWER,
    build_system_prompt,
    cleanup_response_text,
)
from .session import (
    ChatMessage,
    ConversationContext,
    ProvisionalExchange,
    ProvisionalInstruction,
)
from .tool_dispatch import ToolExecutionCoordinator

logger = logging.getLogger(__name__)

MAX_MESSAGE_CHARS = 8000


class TurnState(str, Enum):
    AWAITING_USER_INPUT = "awaiting_user_input"
    TOOLS_SELECTED = "tools_selected"
    AWAITING_MODEL_FIRST_PASS = "awaiting_model_first_pass"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_MODEL_SECOND_PASS = "awaiting_model_second_pass"
    FINALIZED = "finalized"
    ERRORED = "errored"


class AssistantOrchestrator:
    """Drives the turns of one admin session.

    Turns are serialized by a per-session lock; different sessions run in
    parallel and share only the ModelGateway.

    Usage:
        orchestrator = AssistantOrchestrator("session-1", catalog, gateway)
        message = await orchestrator.chat("How many members do we have?")
        async for chunk in orchestrator.chat_stream("Summarize that"):
            ...
    """

    def __init__(
        self,
        session_id: str,
        catalog: ToolCatalog,
        gateway: ModelGateway,
        coordinator: Optional[ToolExecutionCoordinator] = None,
        history_window: int = 10,
        tool_timeout: float = 20.0,
        system_prompt: Optional[str] = None,
        conversation: Optional[ConversationContext] = None,
        config=None,
    ):
        self.session_id = session_id
        self.catalog = catalog
        self.gateway = gateway
        self.coordinator = coordinator or ToolExecutionCoordinator(catalog, timeout=tool_timeout, config=config)
        self._history_window = history_window
        self._config = config
        self.system_prompt = system_prompt or build_system_prompt(catalog.generate_tools_section())
        self.conversation = conversation or ConversationContext(session_id)
        self.state = TurnState.AWAITING_USER_INPUT
        self._turn_lock = asyncio.Lock()

    @property
    def history_window(self) -> int:
        """Turns of history sent to the model, live from the config when attached."""
        return self._config.history_window if self._config is not None else self._history_window

    # ------------------------------------------------------------------
    # UI boundary
    # ------------------------------------------------------------------

    async def chat(self, text: str) -> ChatMessage:
        """Run one full turn and return the committed assistant message."""
        text = self._validate(text)
        async with self._turn_lock:
            return await self._run_turn(text)

    async def chat_stream(self, text: str) -> AsyncIterator[str]:
        """Stream a tool-less answer chunk by chunk.

        The finalized (or error) message is committed when the stream ends
        and is then the last entry of ``get_history()``. A consumer that
        stops early (``aclose()`` or task cancellation) leaves a committed
        TURN_ABANDONED error instead of a half-finished turn.
        """
        text = self._validate(text)
        async with self._turn_lock:
            self._begin(text, streaming=True)
            chunks: List[str] = []
            try:
                self._transition(TurnState.AWAITING_MODEL_FIRST_PASS)
                async with aclosing(self.gateway.stream(self._messages())) as stream:
                    async for chunk in stream:
                        chunks.append(chunk)
                        yield chunk
            except (GeneratorExit, asyncio.CancelledError):
                self._fail(
                    TurnAbandonedError(
                        "Stream closed before the answer finished",
                        details=f"{len(chunks)} chunks delivered",
                    ),
                    [],
                )
                raise
            except Exception as e:
                self._fail(e, [])
                return

            content = cleanup_response_text("".join(chunks))
            if content:
                self._finalize(content, [], [])
                return
            self._log_empty()
            self._finalize(FALLBACK_ANSWER, [], [])
            yield FALLBACK_ANSWER

    def get_history(self) -> List[ChatMessage]:
        return self.conversation.export()

    def clear_history(self) -> None:
        self.conversation.clear()
        self.state = TurnState.AWAITING_USER_INPUT
        logger.info(f"[{self.session_id}] History cleared")

    def set_context(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        """Merge page context sent by the panel; returns the full context."""
        return self.conversation.set_context(partial)

    def get_context(self) -> Dict[str, Any]:
        return dict(self.conversation.context)

    def load_conversation(self, messages: Sequence[ChatMessage]) -> None:
        """Replace the transcript, e.g. with one restored by the host application."""
        self.conversation.load(messages)
        self.state = TurnState.AWAITING_USER_INPUT

    def export_conversation(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self.conversation.export()]

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def _run_turn(self, text: str) -> ChatMessage:
        self._begin(text)
        tool_calls: List[ToolCall] = []
        tool_results: List[ToolResult] = []

        try:
            tools = self.catalog.select(text)
            schema = self.catalog.get_tools_schema(tools)
            self._transition(TurnState.TOOLS_SELECTED, offered=len(tools))

            self._transition(TurnState.AWAITING_MODEL_FIRST_PASS)
            result = await self.gateway.complete(self._messages(), schema)

            provisional: List[Any] = []
            if result.tool_calls:
                tool_calls = list(result.tool_calls)
                self._transition(TurnState.EXECUTING_TOOLS, calls=len(tool_calls))
                tool_results = await self.coordinator.run(tool_calls)
                provisional.append(
                    ProvisionalExchange(
                        tuple(tool_calls),
                        tuple(tool_results),
                        content=cleanup_response_text(result.content),
                    )
                )

                self._transition(TurnState.AWAITING_MODEL_SECOND_PASS)
                result = await self.gateway.complete(self._messages(provisional), schema)
                if result.tool_calls:
                    logger.warning(
                        f"[{self.session_id}] Ignoring {len(result.tool_calls)} tool calls requested on second pass"
                    )

            content = await self._ensure_answer(result.content, provisional)
        except Exception as e:
            return self._fail(e, tool_calls)

        return self._finalize(content, tool_calls, tool_results)

    async def _ensure_answer(self, content: str, provisional: List[Any]) -> str:
        """Non-blank answer: the model's, a corrective retry's, or the fallback."""
        answer = cleanup_response_text(content)
        if answer:
            return answer

        logger.warning(f"[{self.session_id}] Blank answer from model, sending corrective request")
        retry = await self.gateway.complete(
            self._messages([*provisional, ProvisionalInstruction(CORRECTIVE_INSTRUCTION)])
        )
        answer = cleanup_response_text(retry.content)
        if answer:
            return answer

        self._log_empty()
        return FALLBACK_ANSWER

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate(self, text: str) -> str:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Message must not be empty", parameter="message")
        if len(text) > MAX_MESSAGE_CHARS:
            raise ValidationError(
                f"Message is too long (max {MAX_MESSAGE_CHARS} characters)",
                parameter="message",
                received=str(len(text)),
            )
        return text.strip()

    def _begin(self, text: str, streaming: bool = False) -> None:
        self.state = TurnState.AWAITING_USER_INPUT
        self.conversation.append(ChatMessage.user(text))
        log_message_in(logger, text, session=self.session_id, stream=streaming)

    def _messages(self, provisional: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return self.conversation.get_messages_for_llm(self.system_prompt, self.history_window, provisional)

    def _transition(self, state: TurnState, **context) -> None:
        ctx = " ".join(f"{k}={v}" for k, v in context.items())
        logger.debug(f"[{self.session_id}] {self.state.value} -> {state.value} {ctx}".rstrip())
        self.state = state

    def _log_empty(self) -> None:
        log_error(
            logger,
            EmptyResponseError("Model returned blank content twice in a row"),
            context=self.session_id,
            include_traceback=False,
        )

    def _finalize(
        self, content: str, tool_calls: Sequence[ToolCall], tool_results: Sequence[ToolResult]
    ) -> ChatMessage:
        message = self.conversation.append(ChatMessage.assistant(content, tool_calls, tool_results))
        self._transition(TurnState.FINALIZED)
        log_message_out(logger, message.tools_used)
        return message

    def _fail(self, error: Exception, tool_calls: Sequence[ToolCall]) -> ChatMessage:
        turn_error = error if isinstance(error, TurnError) else TurnError(error)
        log_error(logger, error, context=f"Turn {self.session_id}", include_traceback=not isinstance(error, AssistantError))
        message = self.conversation.append(
            ChatMessage.error(
                user_facing_message(turn_error),
                detail=str(turn_error.cause),
                code=turn_error.category.value,
            )
        )
        self._transition(TurnState.ERRORED)
        log_message_out(logger, [tc.tool_name for tc in tool_calls], status="error")
        return message


class SessionRegistry:
    """One orchestrator per admin session, least recently used evicted first."""

    def __init__(
        self,
        catalog: ToolCatalog,
        gateway: ModelGateway,
        history_window: int = 10,
        tool_timeout: float = 20.0,
        max_sessions: int = 500,
        config=None,
    ):
        self.catalog = catalog
        self.gateway = gateway
        self.history_window = history_window
        self.tool_timeout = tool_timeout
        self.max_sessions = max_sessions
        self.config = config
        self._system_prompt = build_system_prompt(catalog.generate_tools_section())
        self._sessions: "OrderedDict[str, AssistantOrchestrator]" = OrderedDict()

    def get_or_create(self, session_id: str) -> AssistantOrchestrator:
        orchestrator = self._sessions.get(session_id)
        if orchestrator is None:
            orchestrator = AssistantOrchestrator(
                session_id,
                self.catalog,
                self.gateway,
                history_window=self.history_window,
                tool_timeout=self.tool_timeout,
                system_prompt=self._system_prompt,
                config=self.config,
            )
            self._sessions[session_id] = orchestrator
            logger.info(f"Session created: {session_id}")
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info(f"Session evicted: {evicted}")
        else:
            self._sessions.move_to_end(session_id)
        return orchestrator

    def get(self, session_id: str) -> AssistantOrchestrator:
        orchestrator = self._sessions.get(session_id)
        if orchestrator is None:
            raise NotFoundError(f"Session {session_id} not found", resource_type="session", resource_id=session_id)
        self._sessions.move_to_end(session_id)
        return orchestrator

    def drop(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
