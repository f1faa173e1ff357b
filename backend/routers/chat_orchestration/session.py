"""
Assistant Chat Session - Conversation state management

A ConversationContext holds the committed, user-visible transcript of one
admin session plus a free-form page context. Messages are immutable and
only ever appended. Work in progress during a turn (the tool-call round)
lives in a ProvisionalExchange that is sent to the model but never enters
the transcript.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tools.registry import ToolCall, ToolResult

# Well-known context keys sent by the admin panel
CONTEXT_KEYS = ("currentPage", "selectedUser", "selectedContribution", "dateRange", "filters")

WireMessage = Dict[str, Any]


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class MessageStatus(str, Enum):
    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR = "error"


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatMessage:
    """One committed message of the transcript.

    A finalized assistant message carries the tool calls and results used
    to produce it, for audit and for rendering charts/cards in the panel.
    """

    id: str
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=_now)
    status: MessageStatus = MessageStatus.COMPLETED
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_results: Tuple[ToolResult, ...] = ()
    error_detail: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(id=_new_id("user"), role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str,
        tool_calls: Sequence[ToolCall] = (),
        tool_results: Sequence[ToolResult] = (),
    ) -> "ChatMessage":
        return cls(
            id=_new_id("assistant"),
            role=MessageRole.ASSISTANT,
            content=content,
            tool_calls=tuple(tool_calls),
            tool_results=tuple(tool_results),
        )

    @classmethod
    def error(cls, content: str, detail: str, code: Optional[str] = None) -> "ChatMessage":
        return cls(
            id=_new_id("error"),
            role=MessageRole.ASSISTANT,
            content=content,
            status=MessageStatus.ERROR,
            error_detail=detail,
            error_code=code,
        )

    @property
    def tools_used(self) -> List[str]:
        return [tc.tool_name for tc in self.tool_calls]

    def to_wire(self) -> List[WireMessage]:
        """Messages this entry contributes to the model history.

        Errored messages contribute nothing. A finalized answer that used
        tools expands to the tool-call message, its results, then the
        answer, and the whole group is windowed as one unit.
        """
        if self.status == MessageStatus.ERROR:
            return []
        if self.role == MessageRole.ASSISTANT and self.tool_calls:
            unit = ProvisionalExchange(self.tool_calls, self.tool_results).to_wire()
            unit.append({"role": "assistant", "content": self.content})
            return unit
        return [{"role": self.role.value, "content": self.content}]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "tool_calls": [tc.to_dict() for tc in self.tool_calls],
            "tool_results": [tr.to_dict() for tr in self.tool_results],
            "error_detail": self.error_detail,
            "error_code": self.error_code,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            id=data.get("id") or _new_id(data.get("role", "message")),
            role=MessageRole(data["role"]),
            content=data.get("content", ""),
            timestamp=timestamp or _now(),
            status=MessageStatus(data.get("status", MessageStatus.COMPLETED.value)),
            tool_calls=tuple(ToolCall.from_dict(tc) for tc in data.get("tool_calls") or []),
            tool_results=tuple(ToolResult.from_dict(tr) for tr in data.get("tool_results") or []),
            error_detail=data.get("error_detail"),
            error_code=data.get("error_code"),
        )


@dataclass(frozen=True)
class ProvisionalExchange:
    """The tool round of a turn in progress: calls plus their results.

    Sent to the model as one unit, never committed to the transcript.
    """

    tool_calls: Tuple[ToolCall, ...]
    tool_results: Tuple[ToolResult, ...] = ()
    content: str = ""

    def to_wire(self) -> List[WireMessage]:
        unit: List[WireMessage] = [{
            "role": "assistant",
            "content": self.content,
            "tool_calls": [tc.to_wire() for tc in self.tool_calls],
        }]
        unit.extend(tr.to_wire() for tr in self.tool_results)
        return unit


@dataclass(frozen=True)
class ProvisionalInstruction:
    """A plain instruction appended for one request only (corrective retry)."""

    content: str

    def to_wire(self) -> List[WireMessage]:
        return [{"role": "user", "content": self.content}]


def window_units(units: Sequence[List[WireMessage]], limit: int) -> List[List[WireMessage]]:
    """The newest ``limit`` non-empty units, oldest first.

    Units are kept or dropped whole, so a tool call never loses its results.
    """
    if limit < 1:
        return []
    kept = [unit for unit in units if unit]
    return kept[-limit:]


@dataclass
class ConversationContext:
    """Holds the transcript and page context of a single admin session.

    Single writer: only the session's orchestrator appends.

    Attributes:
        session_id: Unique identifier for this session
        messages: Committed ChatMessages, oldest first
        context: Page context from the panel (currentPage, selectedUser, ...)
    """

    session_id: str
    messages: List[ChatMessage] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)

    def append(self, message: ChatMessage) -> ChatMessage:
        self.messages.append(message)
        return message

    def set_context(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow-merge page context. A ``None`` value removes the key."""
        for key, value in partial.items():
            if value is None:
                self.context.pop(key, None)
            else:
                self.context[key] = value
        return dict(self.context)

    def clear(self) -> None:
        self.messages = []

    def load(self, messages: Sequence[ChatMessage]) -> None:
        self.messages = list(messages)

    def export(self) -> List[ChatMessage]:
        return list(self.messages)

    def get_context_note(self) -> str:
        if not self.context:
            return ""
        return "Current context: " + json.dumps(self.context, indent=2, default=str, ensure_ascii=False)

    def get_messages_for_llm(
        self,
        system_prompt: str,
        window: int,
        provisional: Sequence[Any] = (),
    ) -> List[WireMessage]:
        """Build message list for a model call.

        ``[system prompt, context note?, ...newest turns]``. History is cut
        into turns (a user message and everything answering it); the
        provisional units of the turn in progress join the last turn. Only the
        newest ``window`` turns are sent; older turns are dropped whole.

        Args:
            system_prompt: The system prompt to use
            window: Maximum history turns (prompt and context note excluded)
            provisional: ProvisionalExchange / ProvisionalInstruction of this turn

        Returns:
            List of message dicts ready for the model
        """
        messages: List[WireMessage] = [{"role": "system", "content": system_prompt}]
        note = self.get_context_note()
        if note:
            messages.append({"role": "system", "content": note})

        turns: List[List[WireMessage]] = []
        for message in self.messages:
            wire = message.to_wire()
            if not wire:
                continue
            if message.role == MessageRole.USER or not turns:
                turns.append(wire)
            else:
                turns[-1].extend(wire)
        for unit in provisional:
            wire = unit.to_wire()
            if turns:
                turns[-1].extend(wire)
            else:
                turns.append(wire)

        for turn in window_units(turns, window):
            messages.extend(turn)
        return messages

    def to_dict(self) -> Dict[str, Any]:
        """Serialize session for persistence by the host application."""
        return {
            "session_id": self.session_id,
            "messages": [m.to_dict() for m in self.messages],
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationContext":
        return cls(
            session_id=data["session_id"],
            messages=[ChatMessage.from_dict(m) for m in data.get("messages", [])],
            context=dict(data.get("context") or {}),
        )
