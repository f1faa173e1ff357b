"""
LLM Client: wraps the OpenAI SDK to talk to OpenRouter.

Response format:
    {"model": "...", "message": {"content": "...", "thinking": "...", "tool_calls": [...]}}

Key translations:
- Tool calls: OpenAI objects → simplified dicts with parsed arguments
- Thinking: <think>...</think> inline tags → separate "thinking" field
- Streaming: ChatCompletionChunk → plain content strings (think blocks dropped)
- Failures: SDK exceptions → ModelRequestError carrying the HTTP status
  (None for transport failures) so the gateway can classify them
"""

import json
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from errors import ModelRequestError

logger = logging.getLogger(__name__)


def _translate_messages_for_openai(messages: List[Dict]) -> List[Dict]:
    """Translate internal message format to OpenAI API format.

    Handles tool call results and assistant tool-call messages.
    """
    translated = []
    for msg in messages:
        role = msg.get("role", "user")
        content = msg.get("content", "")

        # Tool call results
        if role == "tool":
            tool_msg = {
                "role": "tool",
                "content": content if isinstance(content, str) else json.dumps(content, default=str),
                "tool_call_id": msg.get("tool_call_id", "call_0"),
            }
            if msg.get("name"):
                tool_msg["name"] = msg["name"]
            translated.append(tool_msg)

        # Regular messages
        else:
            new_msg = {"role": role, "content": content}

            # Forward tool_calls from assistant messages
            if role == "assistant" and msg.get("tool_calls"):
                openai_tool_calls = []
                for i, tc in enumerate(msg["tool_calls"]):
                    fn = tc.get("function", tc)
                    openai_tool_calls.append({
                        "id": tc.get("id", f"call_{i}"),
                        "type": "function",
                        "function": {
                            "name": fn.get("name", ""),
                            "arguments": (
                                json.dumps(fn["arguments"], default=str)
                                if isinstance(fn.get("arguments"), dict)
                                else fn.get("arguments", "{}")
                            ),
                        },
                    })
                new_msg["tool_calls"] = openai_tool_calls
                # OpenAI requires content to be None when tool_calls present
                if not content:
                    new_msg["content"] = None

            translated.append(new_msg)

    return translated


def _extract_thinking(content: str) -> tuple:
    """Extract <think>...</think> tags from content.

    Some free reasoning models return their thinking inline.

    Returns:
        (clean_content, thinking_text)
    """
    if not content:
        return "", ""

    think_pattern = re.compile(r"<think>(.*?)</think>", re.DOTALL)
    thinking_parts = think_pattern.findall(content)
    thinking = "\n".join(thinking_parts).strip()

    clean = think_pattern.sub("", content).strip()
    return clean, thinking


def _translate_tool_calls_from_openai(message) -> Optional[List[Dict]]:
    """Translate OpenAI tool call objects to simplified dicts.

    OpenAI: message.tool_calls[i].function.{name, arguments(str)}
    Internal: [{"id": ..., "function": {"name": ..., "arguments": {dict}}}]
    """
    if not message.tool_calls:
        return None

    result = []
    for i, tc in enumerate(message.tool_calls):
        try:
            args = json.loads(tc.function.arguments) if tc.function.arguments else {}
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse tool call arguments: {tc.function.arguments}")
            args = {}
        if not isinstance(args, dict):
            args = {}

        result.append({
            "function": {
                "name": tc.function.name,
                "arguments": args,
            },
            "id": tc.id or f"call_{i}",
        })

    return result if result else None


def _request_error(model: str, exc: Exception) -> ModelRequestError:
    """Map an SDK exception to a ModelRequestError."""
    if isinstance(exc, openai.APITimeoutError):
        return ModelRequestError(f"{model} timed out", model=model, error_type="timeout")
    if isinstance(exc, openai.APIStatusError):
        return ModelRequestError(
            f"{model} returned HTTP {exc.status_code}",
            details=str(exc.message)[:300],
            model=model,
            status_code=exc.status_code,
            error_type="http",
        )
    return ModelRequestError(f"{model} request failed", details=str(exc)[:300], model=model, error_type="transport")


class LLMClient:
    """Async OpenRouter client.

    SDK retries are disabled; fallback and retry policy belongs to the
    ModelGateway.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 60.0,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            base_url: OpenAI-compatible API root (e.g., "https://openrouter.ai/api/v1")
            api_key: OpenRouter API key
            timeout: Request timeout in seconds
            default_headers: Extra headers (OpenRouter attribution)
        """
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._openai = AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key or "missing-key",
            timeout=timeout,
            max_retries=0,
            default_headers=default_headers,
        )

    async def close(self) -> None:
        await self._openai.close()

    @staticmethod
    def _build_kwargs(
        model: str,
        messages: List[Dict],
        tools: Optional[List[Dict]],
        options: Optional[Dict],
    ) -> Dict[str, Any]:
        options = options or {}
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": _translate_messages_for_openai(messages),
        }
        for key in ("temperature", "top_p", "max_tokens"):
            if key in options:
                kwargs[key] = options[key]
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        return kwargs

    async def chat(
        self,
        model: str,
        messages: List[Dict],
        tools: Optional[List[Dict]] = None,
        options: Optional[Dict] = None,
    ) -> Dict[str, Any]:
        """Call the chat completions endpoint once.

        Args:
            model: OpenRouter model id
            messages: List of message dicts
            tools: OpenAI-compatible tool definitions
            options: temperature, top_p, max_tokens

        Returns:
            dict with "model" and "message" keys

        Raises:
            ModelRequestError: HTTP error, transport failure, timeout, or a
                response without choices
        """
        kwargs = self._build_kwargs(model, messages, tools, options)
        try:
            response = await self._openai.chat.completions.create(stream=False, **kwargs)
        except openai.OpenAIError as e:
            raise _request_error(model, e) from e

        if not response.choices:
            raise ModelRequestError(f"{model} returned no choices", model=model, error_type="empty")

        message = response.choices[0].message
        content, thinking = _extract_thinking(message.content or "")
        tool_calls = _translate_tool_calls_from_openai(message)

        result = {
            "model": getattr(response, "model", None) or model,
            "message": {
                "role": "assistant",
                "content": content,
            },
        }
        if thinking:
            result["message"]["thinking"] = thinking
        if tool_calls:
            result["message"]["tool_calls"] = tool_calls
        return result

    async def open_stream(
        self,
        model: str,
        messages: List[Dict],
        options: Optional[Dict] = None,
    ) -> AsyncIterator[str]:
        """Open a streaming completion and return an iterator of content chunks.

        Opening is awaited separately from iteration so that HTTP errors
        surface here, where the gateway can still fall back.
        """
        kwargs = self._build_kwargs(model, messages, None, options)
        try:
            stream = await self._openai.chat.completions.create(stream=True, **kwargs)
        except openai.OpenAIError as e:
            raise _request_error(model, e) from e
        return self._iter_content(model, stream)

    async def _iter_content(self, model: str, stream) -> AsyncIterator[str]:
        """Yield content deltas, dropping <think> blocks.

        Tracks whether we're inside a think block and buffers partial tags.
        """
        in_think = False
        buffer = ""
        tag_open = "<think>"
        tag_close = "</think>"

        try:
            async for chunk in stream:
                delta = chunk.choices[0].delta if chunk.choices else None
                if not delta or not delta.content:
                    continue

                buffer += delta.content
                while buffer:
                    if in_think:
                        close_idx = buffer.find(tag_close)
                        if close_idx >= 0:
                            buffer = buffer[close_idx + len(tag_close):]
                            in_think = False
                        elif len(buffer) > len(tag_close):
                            # Discard thinking, keep tail for partial match
                            buffer = buffer[-(len(tag_close) - 1):]
                            break
                        else:
                            break
                    else:
                        open_idx = buffer.find(tag_open)
                        if open_idx >= 0:
                            before = buffer[:open_idx]
                            if before:
                                yield before
                            buffer = buffer[open_idx + len(tag_open):]
                            in_think = True
                        elif len(buffer) > len(tag_open):
                            safe = buffer[:-(len(tag_open) - 1)]
                            buffer = buffer[len(safe):]
                            yield safe
                        else:
                            break
        except openai.OpenAIError as e:
            raise _request_error(model, e) from e

        if buffer and not in_think:
            yield buffer
