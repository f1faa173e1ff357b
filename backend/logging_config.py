"""
Assistant Logging Configuration - Color-Coded Console Logs

Provides:
- ColorFormatter: ANSI color-coded log output
- Helper functions: log_message_in, log_message_out, log_tool, log_llm
- setup_logging(): Configure application logging

Usage:
    from logging_config import setup_logging, log_message_in, log_tool
    setup_logging()
    logger = logging.getLogger(__name__)
    log_message_in(logger, "How many members?", session="abc123")
"""

import logging
import re
import sys
from typing import Union

# ANSI color codes
COLORS = {
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
    "DIM": "\033[2m",
    # Event colors
    "MSG_IN": "\033[96m",  # Cyan - incoming message
    "MSG_OUT": "\033[92m",  # Green - outgoing response
    "TOOL": "\033[93m",  # Yellow - tool calls
    "LLM": "\033[94m",  # Blue - model calls
    "ERROR": "\033[91m",  # Red - errors
    "WARN": "\033[33m",  # Orange/Yellow - warnings
    "DEBUG": "\033[90m",  # Gray - debug info
}

_ANSI_PATTERN = re.compile(r"\033\[[0-9;]*m")


class ColorFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    LEVEL_COLORS = {
        logging.DEBUG: COLORS["DEBUG"],
        logging.INFO: COLORS["RESET"],
        logging.WARNING: COLORS["WARN"],
        logging.ERROR: COLORS["ERROR"],
        logging.CRITICAL: COLORS["ERROR"] + COLORS["BOLD"],
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%H:%M:%S")
        level = record.levelname[:4]
        message = record.getMessage()

        if self.use_color:
            color = self.LEVEL_COLORS.get(record.levelno, COLORS["RESET"])
            formatted = (
                f"{COLORS['DIM']}{timestamp}{COLORS['RESET']} "
                f"[{color}{level}{COLORS['RESET']}] "
                f"{message}"
            )
        else:
            formatted = f"{timestamp} [{level}] {record.name}: {_ANSI_PATTERN.sub('', message)}"

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def _paint(key: str, text: str) -> str:
    return f"{COLORS[key]}{text}{COLORS['RESET']}"


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure console logging for the application.

    Colors are used only when stdout is a terminal.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter(use_color=sys.stdout.isatty()))

    # Configure root logger
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# =============================================================================
# COLORED LOG HELPER FUNCTIONS
# =============================================================================


def log_message_in(logger: logging.Logger, message: str, **context) -> None:
    """Log incoming admin message.

    Args:
        logger: Logger instance
        message: Message text
        **context: Additional context (session, tools offered, etc.)
    """
    preview = message[:80] + "..." if len(message) > 80 else message
    ctx = " ".join(f"{k}={v}" for k, v in context.items())
    logger.info(f"{_paint('MSG_IN', '>>> MESSAGE')} {preview} [{ctx}]")


def log_message_out(
    logger: logging.Logger,
    tools_used: list = None,
    status: str = "completed",
) -> None:
    """Log outgoing assistant message.

    Args:
        logger: Logger instance
        tools_used: List of tool names used during the turn
        status: Final message status
    """
    tools = ", ".join(tools_used) if tools_used else "none"
    key = "MSG_OUT" if status == "completed" else "ERROR"
    logger.info(f"{_paint(key, '<<< RESPONSE')} tools=[{tools}] status={status}")


def log_tool(
    logger: logging.Logger,
    tool_name: str,
    state: str,
    **context,
) -> None:
    """Log tool execution.

    Args:
        logger: Logger instance
        tool_name: Name of the tool
        state: 'start', 'end' or 'error'
        **context: Additional context (call id, duration, error, etc.)
    """
    ctx = " ".join(f"{k}={v}" for k, v in context.items()) if context else ""
    if state == "start":
        logger.info(f"{_paint('TOOL', '>>> TOOL')} {tool_name} {ctx}")
    elif state == "error":
        logger.warning(f"{_paint('ERROR', '!!! TOOL')} {tool_name} {ctx}")
    else:
        logger.info(f"{_paint('TOOL', '<<< TOOL')} {tool_name} {ctx}")


def log_llm(
    logger: logging.Logger,
    state: str,
    model: str = "",
    duration: float = 0,
    detail: str = "",
) -> None:
    """Log a model call.

    Args:
        logger: Logger instance
        state: 'start', 'end', 'fallback' or 'error'
        model: Model id
        duration: Call duration in seconds (for end state)
        detail: Failure description (for fallback/error states)
    """
    if state == "start":
        logger.info(f"{_paint('LLM', '>>> LLM')} calling {model}")
    elif state == "end":
        logger.info(f"{_paint('LLM', '<<< LLM')} {model} completed in {duration:.1f}s")
    elif state == "fallback":
        logger.warning(f"{_paint('WARN', '~~~ LLM')} {model} failed ({detail}), trying next candidate")
    else:
        logger.error(f"{_paint('ERROR', '!!! LLM')} {model} {detail}")
