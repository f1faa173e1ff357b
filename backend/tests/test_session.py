"""
Tests for conversation state: messages, wire format and history windowing.
"""

import json
import random

import pytest

from routers.chat_orchestration.session import (
    ChatMessage,
    ConversationContext,
    MessageRole,
    MessageStatus,
    ProvisionalExchange,
    ProvisionalInstruction,
    window_units,
)
from tools.registry import ToolCall, ToolResult


def _tool_turn(conv, question, call_id, answer):
    conv.append(ChatMessage.user(question))
    call = ToolCall(call_id, "get_users_count")
    result = ToolResult(call_id, "get_users_count", value={"totalUsers": 42})
    conv.append(ChatMessage.assistant(answer, [call], [result]))


def _history(messages):
    """Wire messages after the system prompt and context note."""
    return [m for m in messages if m["role"] != "system"]


class TestChatMessage:
    """Immutable transcript entries."""

    def test_user_message(self):
        """User message is completed and sent as-is."""
        msg = ChatMessage.user("hello")
        assert msg.role == MessageRole.USER
        assert msg.status == MessageStatus.COMPLETED
        assert msg.to_wire() == [{"role": "user", "content": "hello"}]

    def test_error_message_not_sent_to_model(self):
        """Errored messages are visible but contribute nothing to the prompt."""
        msg = ChatMessage.error("Please retry", detail="429", code="LLM_RATE_LIMITED")
        assert msg.status == MessageStatus.ERROR
        assert msg.error_code == "LLM_RATE_LIMITED"
        assert msg.to_wire() == []

    def test_assistant_with_tools_expands_to_group(self):
        """Tool-call message, its results, then the answer."""
        call = ToolCall("c1", "get_user", {"userId": "u1"})
        result = ToolResult("c1", "get_user", value={"uid": "u1"})
        msg = ChatMessage.assistant("Ada is active.", [call], [result])

        wire = msg.to_wire()

        assert [m["role"] for m in wire] == ["assistant", "tool", "assistant"]
        assert wire[0]["tool_calls"][0]["id"] == "c1"
        assert json.loads(wire[0]["tool_calls"][0]["function"]["arguments"]) == {"userId": "u1"}
        assert wire[1]["tool_call_id"] == "c1"
        assert wire[2]["content"] == "Ada is active."
        assert msg.tools_used == ["get_user"]

    def test_dict_round_trip_keeps_tools(self):
        """Serialized message restores with its calls and results."""
        call = ToolCall("c1", "get_user", {"userId": "u1"})
        result = ToolResult("c1", "get_user", error="Error in get_user: not found")
        msg = ChatMessage.assistant("Not found.", [call], [result])

        restored = ChatMessage.from_dict(json.loads(json.dumps(msg.to_dict())))

        assert restored == msg


class TestWindowUnits:
    """Newest whole units within a turn budget."""

    def test_keeps_newest_units(self):
        """Only the newest ``limit`` units are kept, oldest first."""
        units = [[1], [2, 3], [4], [5, 6]]
        assert window_units(units, 2) == [[4], [5, 6]]

    def test_never_splits_a_unit(self):
        """Units are kept whole whatever their size."""
        units = [[1, 2, 3], [4, 5, 6, 7, 8]]
        assert window_units(units, 1) == [[4, 5, 6, 7, 8]]

    def test_unit_count_never_exceeds_limit(self):
        """A large newest unit does not let the window grow past its limit."""
        units = [[1], [2, 3, 4, 5]]
        for limit in range(1, 4):
            assert len(window_units(units, limit)) <= limit

    def test_non_positive_limit_keeps_nothing(self):
        """A zero limit yields an empty window."""
        assert window_units([[1], [2]], 0) == []

    def test_skips_empty_units(self):
        """Empty units are dropped and do not count against the limit."""
        assert window_units([[1], [], [2]], 2) == [[1], [2]]


class TestConversationContext:
    """Message assembly for model calls."""

    def test_system_prompt_first(self):
        """System prompt leads the message list."""
        conv = ConversationContext("s1")
        conv.append(ChatMessage.user("hi"))

        messages = conv.get_messages_for_llm("SYSTEM", window=20)

        assert messages[0] == {"role": "system", "content": "SYSTEM"}
        assert messages[1] == {"role": "user", "content": "hi"}

    def test_context_note_follows_prompt(self):
        """Context note is a second system message."""
        conv = ConversationContext("s1")
        conv.set_context({"currentPage": "/admin/users", "selectedUser": "u1"})
        conv.append(ChatMessage.user("who is this?"))

        messages = conv.get_messages_for_llm("SYSTEM", window=20)

        assert messages[1]["role"] == "system"
        assert messages[1]["content"].startswith("Current context: ")
        assert '"selectedUser": "u1"' in messages[1]["content"]

    def test_set_context_merges_and_removes(self):
        """Partial updates merge; None removes a key."""
        conv = ConversationContext("s1")
        conv.set_context({"currentPage": "/admin", "selectedUser": "u1"})
        result = conv.set_context({"selectedUser": None, "dateRange": {"start": "2026-01-01"}})

        assert result == {"currentPage": "/admin", "dateRange": {"start": "2026-01-01"}}
        assert conv.get_context_note() != ""

    def test_empty_context_no_note(self):
        """No context means no context note."""
        conv = ConversationContext("s1")
        conv.append(ChatMessage.user("hi"))
        assert len(conv.get_messages_for_llm("SYSTEM", window=20)) == 2

    def test_window_bounds_history(self):
        """History never holds more turns than the window."""
        conv = ConversationContext("s1")
        for i in range(30):
            conv.append(ChatMessage.user(f"q{i}"))
            conv.append(ChatMessage.assistant(f"a{i}"))

        history = _history(conv.get_messages_for_llm("SYSTEM", window=5))

        assert len(history) == 10
        assert history[-1]["content"] == "a29"
        assert history[0]["content"] == "q25"

    def test_window_keeps_tool_groups_whole(self):
        """A tool-call message is never separated from its results."""
        conv = ConversationContext("s1")
        for i in range(6):
            _tool_turn(conv, f"q{i}", f"c{i}", f"a{i}")

        for window in range(1, 8):
            history = _history(conv.get_messages_for_llm("SYSTEM", window=window))
            assert sum(1 for m in history if m["role"] == "user") == min(window, 6)
            call_ids = {tc["id"] for m in history for tc in m.get("tool_calls", [])}
            result_ids = {m["tool_call_id"] for m in history if m["role"] == "tool"}
            assert call_ids == result_ids
            assert history[0]["role"] == "user"

    def test_current_tool_round_counts_as_one_turn(self):
        """A multi-call tool round in progress does not push the window past its bound."""
        conv = ConversationContext("s1")
        _tool_turn(conv, "q0", "c0", "a0")
        conv.append(ChatMessage.user("compare three members"))
        calls = tuple(ToolCall(f"c{i}", "get_user", {"userId": f"u{i}"}) for i in range(1, 4))
        results = tuple(ToolResult(c.id, "get_user", value={"uid": c.arguments["userId"]}) for c in calls)

        history = _history(
            conv.get_messages_for_llm("SYSTEM", window=1, provisional=[ProvisionalExchange(calls, results)])
        )

        assert [m["role"] for m in history] == ["user", "assistant", "tool", "tool", "tool"]
        assert history[0]["content"] == "compare three members"

    def test_provisional_units_join_current_turn(self):
        """The tool round in progress is sent with its question."""
        conv = ConversationContext("s1")
        conv.append(ChatMessage.user("how many members?"))
        call = ToolCall("c1", "get_users_count")
        exchange = ProvisionalExchange((call,), (ToolResult("c1", "get_users_count", value={"totalUsers": 42}),))

        history = _history(conv.get_messages_for_llm("SYSTEM", window=20, provisional=[exchange]))

        assert [m["role"] for m in history] == ["user", "assistant", "tool"]
        assert conv.export()[-1].role == MessageRole.USER

    def test_corrective_instruction_appended(self):
        """Provisional instruction goes last."""
        conv = ConversationContext("s1")
        conv.append(ChatMessage.user("question"))

        history = _history(
            conv.get_messages_for_llm("SYSTEM", window=20, provisional=[ProvisionalInstruction("answer now")])
        )

        assert history[-1] == {"role": "user", "content": "answer now"}

    def test_error_messages_skipped(self):
        """Errored messages stay in history but are not sent."""
        conv = ConversationContext("s1")
        conv.append(ChatMessage.user("first"))
        conv.append(ChatMessage.error("Please retry", detail="boom"))
        conv.append(ChatMessage.user("second"))

        history = _history(conv.get_messages_for_llm("SYSTEM", window=20))

        assert [m["content"] for m in history] == ["first", "second"]
        assert len(conv.export()) == 3

    def test_to_dict_round_trip(self):
        """Conversation restores with its context and messages."""
        conv = ConversationContext("s1", context={"currentPage": "/admin"})
        _tool_turn(conv, "q", "c1", "a")

        restored = ConversationContext.from_dict(conv.to_dict())

        assert restored.session_id == "s1"
        assert restored.context == {"currentPage": "/admin"}
        assert restored.messages == conv.messages

    def test_clear_keeps_context(self):
        """Clearing history leaves the context map."""
        conv = ConversationContext("s1", context={"currentPage": "/admin"})
        conv.append(ChatMessage.user("hi"))
        conv.clear()
        assert conv.export() == []
        assert conv.context == {"currentPage": "/admin"}


def _random_conversation(rng):
    """Conversation of random turns plus a random tool round in progress.

    Returns the conversation, the provisional exchange and the expected
    number of turns (finished ones and the one in progress).
    """
    conv = ConversationContext("s1")
    finished = rng.randint(0, 12)
    for t in range(finished):
        conv.append(ChatMessage.user(f"q{t}"))
        calls = [ToolCall(f"t{t}c{i}", "get_user", {"userId": f"u{i}"}) for i in range(rng.randint(0, 5))]
        results = [ToolResult(c.id, c.tool_name, value={"ok": True}) for c in calls]
        if rng.random() < 0.15:
            conv.append(ChatMessage.error("Please retry", detail="boom"))
        else:
            conv.append(ChatMessage.assistant(f"a{t}", calls, results))

    conv.append(ChatMessage.user("current"))
    calls = tuple(ToolCall(f"cur{i}", "get_user", {"userId": f"u{i}"}) for i in range(rng.randint(0, 6)))
    results = tuple(ToolResult(c.id, c.tool_name, value={"ok": True}) for c in calls)
    provisional = [ProvisionalExchange(calls, results)] if calls else []
    return conv, provisional, finished + 1


class TestWindowBound:
    """Window bound over random turn and tool-call sizes."""

    @pytest.mark.parametrize("seed", range(40))
    def test_window_bound_holds(self, seed):
        """Turn count stays within the window; the newest turns survive whole."""
        rng = random.Random(seed)
        conv, provisional, turns = _random_conversation(rng)

        for window in range(1, 15):
            history = _history(conv.get_messages_for_llm("SYSTEM", window=window, provisional=provisional))
            users = [m for m in history if m["role"] == "user"]

            assert len(users) == min(window, turns)
            assert history[0]["role"] == "user"
            assert users[-1]["content"] == "current"

            call_ids = [tc["id"] for m in history for tc in m.get("tool_calls", [])]
            result_ids = [m["tool_call_id"] for m in history if m["role"] == "tool"]
            assert call_ids == result_ids
