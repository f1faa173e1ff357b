"""
Tests for the tool execution coordinator (fan-out / fan-in).
"""

import asyncio
import json

from errors import ValidationError
from routers.chat_orchestration.tool_dispatch import ToolExecutionCoordinator
from tools.registry import ToolCall, ToolCatalog, ToolCategory, ToolDescriptor


def _tool(name, handler):
    return ToolDescriptor(
        name=name,
        description=f"{name} tool",
        parameters={},
        required_params=[],
        handler=handler,
        category=ToolCategory.STATS,
    )


def _catalog(**handlers):
    catalog = ToolCatalog()
    for name, handler in handlers.items():
        catalog.register(_tool(name, handler))
    catalog.freeze()
    return catalog


async def _ok(args):
    return {"value": args.get("x", 1)}


async def _boom(args):
    raise RuntimeError("database offline")


class TestCoordinator:
    """Batch execution."""

    def test_one_result_per_call_in_call_order(self):
        """Slow first call still comes back first."""

        async def slow(args):
            await asyncio.sleep(0.05)
            return "slow"

        async def fast(args):
            return "fast"

        coordinator = ToolExecutionCoordinator(_catalog(slow=slow, fast=fast))
        calls = [ToolCall("c1", "slow"), ToolCall("c2", "fast"), ToolCall("c3", "fast")]

        results = asyncio.run(coordinator.run(calls))

        assert [r.tool_call_id for r in results] == ["c1", "c2", "c3"]
        assert [r.value for r in results] == ["slow", "fast", "fast"]

    def test_calls_run_concurrently(self):
        """Fan-out: total time close to the slowest handler, not the sum."""
        running = []
        peak = []

        async def track(args):
            running.append(1)
            peak.append(len(running))
            await asyncio.sleep(0.02)
            running.pop()
            return True

        coordinator = ToolExecutionCoordinator(_catalog(track=track))
        asyncio.run(coordinator.run([ToolCall(f"c{i}", "track") for i in range(4)]))

        assert max(peak) == 4

    def test_one_failing_handler_does_not_affect_others(self):
        """A raising handler becomes an error result; its sibling succeeds."""
        coordinator = ToolExecutionCoordinator(_catalog(ok=_ok, boom=_boom))

        results = asyncio.run(coordinator.run([ToolCall("a", "ok", {"x": 7}), ToolCall("b", "boom")]))

        assert results[0].success
        assert results[0].value == {"value": 7}
        assert not results[1].success
        assert "database offline" in results[1].error
        assert "boom" in results[1].error

    def test_unknown_tool_becomes_error_result(self):
        """Lookup failure does not abort the batch."""
        coordinator = ToolExecutionCoordinator(_catalog(ok=_ok))

        results = asyncio.run(coordinator.run([ToolCall("a", "made_up_tool"), ToolCall("b", "ok")]))

        assert len(results) == 2
        assert "made_up_tool" in results[0].error
        assert results[1].success

    def test_timeout_becomes_error_result(self):
        """A handler exceeding the deadline yields an error instead of hanging."""

        async def hang(args):
            await asyncio.sleep(5)

        coordinator = ToolExecutionCoordinator(_catalog(hang=hang, ok=_ok), timeout=0.05)

        results = asyncio.run(coordinator.run([ToolCall("a", "hang"), ToolCall("b", "ok")]))

        assert "timed out" in results[0].error
        assert results[1].success

    def test_sync_handler_supported(self):
        """Plain functions run off the event loop."""

        def add(args):
            return args["a"] + args["b"]

        coordinator = ToolExecutionCoordinator(_catalog(add=add))

        results = asyncio.run(coordinator.run([ToolCall("a", "add", {"a": 2, "b": 3})]))

        assert results[0].value == 5

    def test_assistant_error_details_reach_the_model(self):
        """Validation errors are formatted with their details."""

        async def strict(args):
            raise ValidationError("Missing required parameter 'userId'", details="pass the UID", parameter="userId")

        coordinator = ToolExecutionCoordinator(_catalog(strict=strict))
        result = asyncio.run(coordinator.run([ToolCall("a", "strict")]))[0]

        assert result.error.startswith("Error in strict: Missing required parameter 'userId'")
        assert "Details: pass the UID" in result.error

    def test_empty_batch(self):
        """Empty batch returns no results."""
        coordinator = ToolExecutionCoordinator(_catalog(ok=_ok))
        assert asyncio.run(coordinator.run([])) == []

    def test_error_result_wire_format(self):
        """Failed results are sent to the model as {"error": ...}."""
        coordinator = ToolExecutionCoordinator(_catalog(boom=_boom))
        result = asyncio.run(coordinator.run([ToolCall("a", "boom")]))[0]

        wire = result.to_wire()
        assert wire["role"] == "tool"
        assert wire["tool_call_id"] == "a"
        assert wire["name"] == "boom"
        assert "error" in json.loads(wire["content"])
