"""
Runtime Configuration for the admin assistant.

Provides a singleton AssistantConfig that holds the model gateway policy,
tool execution deadlines and history window. The gateway, the tool
dispatcher and every session read these on each call, so update() takes
effect on the next request without a restart. Endpoint settings (API key,
base URL, app headers) are read once when the LLM client is built.

Usage:
    from config import runtime_config
    delay = runtime_config.min_request_delay
    runtime_config.update(max_rounds=4, temperature=0.5)
"""

import os
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Any, List
from threading import Lock

logger = logging.getLogger(__name__)


# Free OpenRouter models that support function calling, preferred first
DEFAULT_CANDIDATE_MODELS = [
    "meta-llama/llama-3.3-70b-instruct:free",
    "qwen/qwen-2.5-72b-instruct:free",
    "google/gemini-2.0-flash-thinking-exp:free",
    "meta-llama/llama-3.1-70b-instruct:free",
]

_MODEL_ID_PATTERN = re.compile(r"^[a-zA-Z0-9._:/-]+$")


def _env_list(key: str, default: List[str]) -> List[str]:
    """Comma-separated env var as a list, else a copy of default."""
    raw = os.environ.get(key, "").strip()
    if not raw:
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class AssistantConfig:
    """
    Singleton configuration for runtime-adjustable parameters.

    All values have defaults from environment variables, but can be
    changed at runtime via the update() method.
    """

    # OpenRouter endpoint
    openrouter_api_key: str = field(default_factory=lambda: os.environ.get("OPENROUTER_API_KEY", ""))
    openrouter_base_url: str = field(
        default_factory=lambda: os.environ.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
    )
    app_referer: str = field(default_factory=lambda: os.environ.get("ASSISTANT_APP_URL", "http://localhost:3000"))
    app_title: str = field(
        default_factory=lambda: os.environ.get("ASSISTANT_APP_TITLE", "Membership Admin Assistant")
    )

    # Candidate models, index 0 is tried first on a fresh process
    candidate_models: List[str] = field(
        default_factory=lambda: _env_list("ASSISTANT_MODELS", DEFAULT_CANDIDATE_MODELS)
    )

    # Gateway policy
    min_request_delay: float = field(
        default_factory=lambda: float(os.environ.get("ASSISTANT_MIN_REQUEST_DELAY", "1.0"))
    )
    max_rounds: int = field(default_factory=lambda: int(os.environ.get("ASSISTANT_MAX_ROUNDS", "3")))
    round_backoff_base: float = field(
        default_factory=lambda: float(os.environ.get("ASSISTANT_ROUND_BACKOFF", "2.0"))
    )

    # Deadlines (seconds)
    llm_timeout: float = field(default_factory=lambda: float(os.environ.get("ASSISTANT_LLM_TIMEOUT", "60")))
    tool_timeout: float = field(default_factory=lambda: float(os.environ.get("ASSISTANT_TOOL_TIMEOUT", "20")))

    # Conversation window (most recent turns sent to the model)
    history_window: int = field(
        default_factory=lambda: int(os.environ.get("ASSISTANT_HISTORY_WINDOW", "10"))
    )

    # Model parameters
    temperature: float = field(default_factory=lambda: float(os.environ.get("LLM_TEMPERATURE", "0.7")))
    top_p: float = field(default_factory=lambda: float(os.environ.get("LLM_TOP_P", "1.0")))
    max_output_tokens: int = field(
        default_factory=lambda: int(os.environ.get("LLM_MAX_OUTPUT_TOKENS", "4000"))
    )

    # Web search tool
    web_search_url: str = field(
        default_factory=lambda: os.environ.get("WEB_SEARCH_URL", "https://api.duckduckgo.com/")
    )

    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))

    # Thread safety
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)
    _update_count: int = field(default=0, repr=False, compare=False)

    # Validation ranges for numeric config values
    _VALIDATION_RANGES: Dict[str, tuple] = field(default_factory=lambda: {
        "min_request_delay": (0.0, 30.0),
        "max_rounds": (1, 10),
        "round_backoff_base": (0.0, 60.0),
        "llm_timeout": (1.0, 600.0),
        "tool_timeout": (1.0, 300.0),
        "history_window": (1, 100),
        "temperature": (0.0, 2.0),
        "top_p": (0.0, 1.0),
        "max_output_tokens": (64, 32768),
    }, repr=False, compare=False)

    def update(self, **kwargs) -> Dict[str, Any]:
        """
        Update configuration values at runtime.

        Args:
            **kwargs: Key-value pairs to update (e.g., max_rounds=4)

        Returns:
            Dict with 'updated' (changed keys) and 'ignored' (unknown or rejected keys)
        """
        updated = []
        ignored = []

        with self._lock:
            for key, value in kwargs.items():
                if key.startswith("_"):
                    ignored.append(key)
                    continue

                if not hasattr(self, key):
                    ignored.append(key)
                    logger.warning(f"Config ignored unknown key: {key}")
                    continue

                if key == "openrouter_base_url" and isinstance(value, str):
                    cleaned = value.strip()
                    if not cleaned.startswith(("http://", "https://")):
                        ignored.append(key)
                        logger.warning(f"Config rejected invalid URL: {key}={value!r}")
                        continue
                    value = cleaned.rstrip("/")

                if key == "candidate_models":
                    if isinstance(value, str):
                        value = [part.strip() for part in value.split(",") if part.strip()]
                    if not value or not all(
                        isinstance(m, str) and _MODEL_ID_PATTERN.match(m) and len(m) <= 100 for m in value
                    ):
                        ignored.append(key)
                        logger.warning(f"Config rejected invalid model list: {value!r}")
                        continue
                    value = list(value)

                # Validate numeric ranges
                if key in self._VALIDATION_RANGES:
                    lo, hi = self._VALIDATION_RANGES[key]
                    if not isinstance(value, (int, float)) or not (lo <= value <= hi):
                        ignored.append(key)
                        logger.warning(f"Config rejected {key}={value} (must be {lo}-{hi})")
                        continue

                old_value = getattr(self, key)
                setattr(self, key, value)
                updated.append(key)
                if key == "openrouter_api_key":
                    logger.info("Config updated: openrouter_api_key")
                else:
                    logger.info(f"Config updated: {key} = {value} (was {old_value})")

            self._update_count += 1

        return {"updated": updated, "ignored": ignored, "update_count": self._update_count}

    def get_llm_params(self) -> Dict[str, Any]:
        """Sampling parameters sent with every completion request."""
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_output_tokens,
        }

    def get_app_headers(self) -> Dict[str, str]:
        """OpenRouter attribution headers."""
        return {
            "HTTP-Referer": self.app_referer,
            "X-Title": self.app_title,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Export current config as dict (excludes internal fields, masks the API key)."""
        from dataclasses import fields as dataclass_fields

        result = {}
        for field_info in dataclass_fields(self):
            if not field_info.name.startswith("_"):
                result[field_info.name] = getattr(self, field_info.name)
        if result.get("openrouter_api_key"):
            result["openrouter_api_key"] = "***"
        return result


# Singleton instance
runtime_config = AssistantConfig()


def get_config() -> AssistantConfig:
    """Get the runtime configuration singleton."""
    return runtime_config
