"""
Assistant Chat Prompts - System prompt and answer post-processing

Contains:
- build_system_prompt(): Persona, rules and the tools overview
- CORRECTIVE_INSTRUCTION: One-shot nudge when the model answers blank
- FALLBACK_ANSWER: Shown when the model stays blank after the nudge
- cleanup_response_text(): Strip reasoning artifacts from model output
"""

import re
from typing import Optional

BASE_PERSONALITY = """You are the AI assistant of a membership organization's admin panel.

ABOUT THE PLATFORM:
- Members with subscription plans (monthly, annual, lifetime)
- Loyalty program with points
- Crowdfunding campaign with contributions per item/package
- Events and QR-code scans"""

RULES_SECTION = """INSTRUCTIONS:
- Answer in the language the admin writes in
- Use your tools to answer with real data, never invent figures
- Break complex questions into steps and say which tools you used
- If data is missing, say so and suggest alternatives
- Offer a chart when numbers are easier to read visually
- Offer a navigation card when the admin will want to open a page

SAFETY:
- You never modify data yourself. For account changes (profile edits,
  loyalty points, blocking) call the matching prepare_* tool: it shows the
  admin a confirmation card. Explain the consequences before they confirm.
- Respect the confidentiality of personal data

FORMAT:
- Short sections and bullet lists
- Include figures when relevant"""

CORRECTIVE_INSTRUCTION = (
    "Use the tool results above to answer my previous question in full. "
    "Reply with the answer text only."
)

FALLBACK_ANSWER = (
    "Sorry, I could not put together an answer this time. "
    "Please rephrase your question or try again in a moment."
)


def build_system_prompt(tools_section: Optional[str] = None) -> str:
    """Complete system prompt, optionally listing the available tools."""
    parts = [BASE_PERSONALITY]
    if tools_section:
        parts.append(tools_section)
    parts.append(RULES_SECTION)
    return "\n\n".join(parts)


_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL)


def cleanup_response_text(text: str) -> str:
    """Clean model output of think tags and surrounding whitespace.

    Removes complete <think>...</think> blocks, then orphaned tags. An
    unclosed <think> drops everything after it.
    """
    if not text:
        return ""

    text = _THINK_BLOCK.sub("", text)
    if "<think>" in text:
        text = text.split("<think>", 1)[0]
    text = text.replace("</think>", "")

    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
