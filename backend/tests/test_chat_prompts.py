"""
Tests for system prompt assembly and response cleanup.
"""

from routers.chat_prompts import BASE_PERSONALITY, RULES_SECTION, build_system_prompt, cleanup_response_text


class TestBuildSystemPrompt:
    """Tests for build_system_prompt."""

    def test_tools_section_between_persona_and_rules(self):
        """Tool list sits between the persona and the rules."""
        prompt = build_system_prompt("TOOLS YOU HAVE:\n- get_user: One user")
        assert prompt.index(BASE_PERSONALITY) < prompt.index("TOOLS YOU HAVE") < prompt.index(RULES_SECTION)

    def test_without_tools(self):
        """No tools section means persona followed by rules."""
        assert build_system_prompt() == f"{BASE_PERSONALITY}\n\n{RULES_SECTION}"


class TestCleanupResponseText:
    """Tests for reasoning-block removal and whitespace cleanup."""

    def test_removes_think_block(self):
        """Closed think block is removed."""
        assert cleanup_response_text("<think>reasoning</think>\n\nAnswer") == "Answer"

    def test_unclosed_think_drops_tail(self):
        """Unclosed think block drops everything after it."""
        assert cleanup_response_text("Answer <think>still thinking") == "Answer"

    def test_orphan_closing_tag(self):
        """Stray closing tag is dropped on its own."""
        assert cleanup_response_text("leftover</think>Answer") == "leftoverAnswer"

    def test_collapses_blank_lines(self):
        """Runs of blank lines collapse to one."""
        assert cleanup_response_text("a\n\n\n\nb") == "a\n\nb"

    def test_blank(self):
        """Empty, whitespace and None all clean to empty string."""
        assert cleanup_response_text("") == ""
        assert cleanup_response_text("  \n ") == ""
        assert cleanup_response_text(None) == ""
