"""
Assistant Tool Dispatcher - concurrent tool execution

Handles:
- Fan-out of every tool call requested in one completion
- A deadline per handler invocation
- Turning unknown tools, handler exceptions and timeouts into error
  ToolResults so the model can see and react to them
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Dict, List, Sequence

from errors import ToolTimeoutError, format_error_for_llm
from logging_config import log_tool
from tools.registry import ToolCall, ToolCatalog, ToolResult

logger = logging.getLogger(__name__)


class ToolExecutionCoordinator:
    """Runs a batch of tool calls concurrently and collects one result per call.

    Results are correlated by ``tool_call_id`` and returned in call order.
    Failures never escape ``run``.
    """

    def __init__(self, catalog: ToolCatalog, timeout: float = 20.0, config=None):
        self.catalog = catalog
        self._timeout = timeout
        self._config = config

    @property
    def timeout(self) -> float:
        """Per-handler deadline, read from the live config when one is attached."""
        return self._config.tool_timeout if self._config is not None else self._timeout

    async def run(self, tool_calls: Sequence[ToolCall]) -> List[ToolResult]:
        """Execute every call; one ToolResult per ToolCall."""
        if not tool_calls:
            return []
        return list(await asyncio.gather(*(self._execute_one(call) for call in tool_calls)))

    async def _invoke(self, handler, arguments: Dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(handler):
            return await handler(arguments)
        result = await asyncio.to_thread(handler, arguments)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _execute_one(self, call: ToolCall) -> ToolResult:
        log_tool(logger, call.tool_name, "start", **self._build_log_context(call))
        started = time.monotonic()
        timeout = self.timeout
        try:
            tool = self.catalog.lookup(call.tool_name)
            value = await asyncio.wait_for(self._invoke(tool.handler, dict(call.arguments)), timeout=timeout)
        except asyncio.TimeoutError:
            error = ToolTimeoutError(call.tool_name, timeout)
            log_tool(logger, call.tool_name, "error", id=call.id, error=error.code.value)
            return ToolResult(call.id, call.tool_name, error=format_error_for_llm(error, tool=call.tool_name))
        except Exception as e:
            log_tool(logger, call.tool_name, "error", id=call.id, error=type(e).__name__)
            logger.debug(f"Tool {call.tool_name} failed", exc_info=True)
            return ToolResult(call.id, call.tool_name, error=format_error_for_llm(e, tool=call.tool_name))

        log_tool(logger, call.tool_name, "end", id=call.id, duration=f"{time.monotonic() - started:.2f}s")
        return ToolResult(call.id, call.tool_name, value=value)

    @staticmethod
    def _build_log_context(call: ToolCall) -> Dict[str, str]:
        """Build context dict for tool start logging."""
        ctx = {"id": call.id}
        args = call.arguments
        if "query" in args:
            query = str(args.get("query", ""))
            ctx["query"] = f'"{query[:40]}..."' if len(query) > 40 else f'"{query}"'
        elif "userId" in args:
            ctx["user"] = str(args["userId"])
        elif "page" in args:
            ctx["page"] = str(args["page"])
        return ctx
