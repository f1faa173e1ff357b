"""
Assistant Chat Orchestration - turn handling components

Components:
- ConversationContext / ChatMessage: Committed transcript and page context
- ToolExecutionCoordinator: Concurrent tool execution with deadlines
- AssistantOrchestrator: One turn as a state machine (select tools →
  first completion → tools → second completion → finalize)
- SessionRegistry: One orchestrator per admin session
"""

from .session import (
    ChatMessage,
    ConversationContext,
    MessageRole,
    MessageStatus,
    ProvisionalExchange,
    ProvisionalInstruction,
    window_units,
)
from .tool_dispatch import ToolExecutionCoordinator
from .orchestrator import AssistantOrchestrator, SessionRegistry, TurnState

__all__ = [
    "ChatMessage",
    "ConversationContext",
    "MessageRole",
    "MessageStatus",
    "ProvisionalExchange",
    "ProvisionalInstruction",
    "window_units",
    "ToolExecutionCoordinator",
    "AssistantOrchestrator",
    "SessionRegistry",
    "TurnState",
]
