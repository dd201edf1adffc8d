"""
Tool-call validation: intent detection, tool/intent mismatch detection,
response coherence checks and the bypasses that keep certain requests
away from tools or from the model entirely.
"""

import logging
import re
from typing import Iterable, Optional, Set

from concierge.agent.validation import patterns
from concierge.agent.validation.arithmetic import attempt_math_fallback

CREATIVE_REDIRECT = (
    "I can't write stories or poems, but I'm happy to help with your calendar, "
    "reminders, the weather or a quick calculation. What would you like to do?"
)

REPHRASE_MESSAGE = (
    "I couldn't work that calculation out. Could you rephrase it as a simple "
    "expression, for example '100 * 0.15'?"
)

ACTION_NOT_COMPLETED = (
    "I wasn't able to complete that action. Please try again, or check that the "
    "feature is enabled in Settings."
)

REFUSAL_FALLBACK = (
    "I'm best at helping with tasks like checking your calendar, setting reminders, "
    "getting weather updates, and doing calculations. What can I help you with?"
)

CONVERSATIONAL_MAX_WORDS = 3

_DIGIT = re.compile(r"\d")


class ToolCallValidator:
    """Regex-based classifiers guarding tool selection and responses."""

    def __init__(self):
        self.logger = logging.getLogger("ToolCallValidator")

    # --- Intent detection ---

    def intent_families(self, text: str) -> Set[str]:
        """Tool names of every primary intent family `text` matches."""
        return {
            tool for tool, matches in patterns.INTENT_FAMILIES.items() if matches(text)
        }

    def restricted_tool_name(self, text: str) -> Optional[str]:
        """The single tool to advertise, or None when zero or several families match."""
        families = self.intent_families(text)
        if len(families) == 1:
            return next(iter(families))
        return None

    def is_conversational(self, text: str) -> bool:
        if self.intent_families(text) or patterns.matches_any(
            patterns.TOOL_TRIGGERS, text
        ):
            return False
        if patterns.matches_any(patterns.CONVERSATIONAL, text):
            return True
        return len(text.split()) <= CONVERSATIONAL_MAX_WORDS

    def is_creative_writing(self, text: str) -> bool:
        return patterns.matches_any(patterns.CREATIVE_WRITING, text)

    def _is_math_only(self, text: str) -> bool:
        return self.intent_families(text) == {"calculator"}

    # --- Validation ---

    def detect_mismatch(self, user_text: str, tool_name: str) -> Optional[str]:
        """
        Describe why `tool_name` is the wrong tool for `user_text`, or None.
        """
        if tool_name != "calculator" and patterns.matches_strong_math(user_text):
            return (
                f"The user asked a math question, but the '{tool_name}' tool was "
                "chosen. Use the calculator tool to evaluate the expression."
            )
        if tool_name == "calendar" and self._is_math_only(user_text):
            return (
                "The calendar tool was chosen for a request that is only about "
                "math. Use the calculator tool instead."
            )
        return None

    def check_coherence(
        self,
        user_text: str,
        response_text: str,
        executed_tools: Iterable[str],
    ) -> Optional[str]:
        """
        Return a corrected response, or None when the response is accepted.
        """
        executed = set(executed_tools)

        if self._is_math_only(user_text):
            irrelevant = patterns.matches_any(patterns.MATH_IRRELEVANT, response_text)
            if irrelevant or "calculator" not in executed or not _DIGIT.search(
                response_text
            ):
                self.logger.info(
                    "Math response rejected (irrelevant=%s, calculator_used=%s)",
                    irrelevant,
                    "calculator" in executed,
                )
                return attempt_math_fallback(user_text) or REPHRASE_MESSAGE

        if not executed and patterns.matches_any(patterns.ACTION_CLAIMS, response_text):
            self.logger.warning("Response claims an action but no tool ran")
            return ACTION_NOT_COMPLETED

        return None

    def attempt_math_fallback(self, text: str) -> Optional[str]:
        return attempt_math_fallback(text)

    def apply_refusal_fallback(self, text: str) -> str:
        lowered = text.lower()
        if any(phrase in lowered for phrase in patterns.REFUSAL_PHRASES):
            self.logger.info("Detected refusal response, applying fallback")
            return REFUSAL_FALLBACK
        return text
