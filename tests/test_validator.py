# Test suite for intent detection, mismatch and coherence checks

import pytest

from concierge.agent.validation import (
    ACTION_NOT_COMPLETED,
    REFUSAL_FALLBACK,
    REPHRASE_MESSAGE,
    ToolCallValidator,
)
from concierge.agent.validation.arithmetic import attempt_math_fallback, format_number
from concierge.agent.validation.patterns import extract_weather_location


@pytest.fixture
def validator():
    return ToolCallValidator()


class TestIntentDetection:
    @pytest.mark.parametrize(
        "text, tool",
        [
            ("What is 9*8?", "calculator"),
            ("What's 20% of 85?", "calculator"),
            ("calculate 5 plus 3", "calculator"),
            ("What's the weather in Paris?", "weather"),
            ("Is it going to rain tomorrow?", "weather"),
            ("What's on my calendar?", "calendar"),
            ("Am I free next friday?", "calendar"),
            ("Remind me to buy milk", "reminders"),
        ],
    )
    def test_single_family_restricts_to_one_tool(self, validator, text, tool):
        assert validator.restricted_tool_name(text) == tool

    @pytest.mark.parametrize(
        "text",
        [
            "Hi there",
            "Remind me about my meeting",
            "What's the weather and what's 5 + 3?",
        ],
    )
    def test_zero_or_many_families_means_no_restriction(self, validator, text):
        assert validator.restricted_tool_name(text) is None

    def test_families_are_reported(self, validator):
        families = validator.intent_families("Remind me about my meeting")
        assert families == {"reminders", "calendar"}

    def test_weather_location_extraction(self):
        assert extract_weather_location("What's the weather in Paris?") == "Paris"
        assert extract_weather_location("forecast for New York.") == "New York"
        assert extract_weather_location("Is it raining?") == ""


class TestConversationalAndCreative:
    @pytest.mark.parametrize(
        "text",
        ["Hi there", "ok", "How are you doing today my friend?", "Thanks a lot!"],
    )
    def test_conversational(self, validator, text):
        assert validator.is_conversational(text)

    @pytest.mark.parametrize(
        "text",
        [
            "What's on my calendar today?",
            "What is 9*8?",
            "Summarize https://example.com",
            "Please summarize the article about climate policy",
        ],
    )
    def test_not_conversational(self, validator, text):
        assert not validator.is_conversational(text)

    @pytest.mark.parametrize(
        "text",
        ["Tell me a story", "Write a poem about cats", "Once upon a time there was a fox"],
    )
    def test_creative_writing(self, validator, text):
        assert validator.is_creative_writing(text)

    def test_practical_request_is_not_creative(self, validator):
        assert not validator.is_creative_writing("What's the weather tomorrow?")


class TestMismatch:
    def test_strong_math_with_non_calculator_tool(self, validator):
        reason = validator.detect_mismatch("What is 9*8?", "weather")
        assert reason is not None
        assert "calculator" in reason

    def test_calculator_for_math_is_fine(self, validator):
        assert validator.detect_mismatch("What is 9*8?", "calculator") is None

    def test_calendar_for_math_only_request(self, validator):
        assert validator.detect_mismatch("calculate 5 plus 3", "calendar") is not None

    def test_unrelated_tool_without_math_is_fine(self, validator):
        assert validator.detect_mismatch("What's the weather?", "weather") is None


class TestCoherence:
    def test_irrelevant_math_answer_is_replaced_with_local_result(self, validator):
        corrected = validator.check_coherence(
            "What is 9*8?", "Your meeting is at 3pm", ["calculator"]
        )
        assert corrected == "9 * 8 = 72"

    def test_math_answer_without_calculator_is_replaced(self, validator):
        assert validator.check_coherence("What is 9*8?", "It's 72", []) == "9 * 8 = 72"

    def test_relevant_math_answer_is_accepted(self, validator):
        assert validator.check_coherence("What is 9*8?", "It's 72", ["calculator"]) is None

    def test_unparseable_math_asks_to_rephrase(self, validator):
        corrected = validator.check_coherence("calculate the square root of pi", "Sure", [])
        assert corrected == REPHRASE_MESSAGE

    def test_action_claim_without_tool_run(self, validator):
        corrected = validator.check_coherence(
            "Remind me to call mom", "I've created the reminder for you.", []
        )
        assert corrected == ACTION_NOT_COMPLETED

    def test_action_claim_backed_by_tool_run(self, validator):
        assert (
            validator.check_coherence(
                "Remind me to call mom", "I've created the reminder.", ["reminders"]
            )
            is None
        )

    def test_refusal_is_replaced(self, validator):
        text = "I'm sorry, but I can't help with that."
        assert validator.apply_refusal_fallback(text) == REFUSAL_FALLBACK

    def test_normal_answer_passes_refusal_check(self, validator):
        assert validator.apply_refusal_fallback("It is sunny.") == "It is sunny."


class TestMathFallback:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("What is 9*8?", "9 * 8 = 72"),
            ("what's 20% of 85", "20% of 85 = 17"),
            ("15 percent of $80", "15% of 80 = 12"),
            ("7 ÷ 2", "7 / 2 = 3.5"),
            ("3 x 4", "3 * 4 = 12"),
            ("10 - 4", "10 - 4 = 6"),
        ],
    )
    def test_evaluates_simple_expressions(self, text, expected):
        assert attempt_math_fallback(text) == expected

    def test_division_by_zero_is_undefined(self):
        result = attempt_math_fallback("9 / 0")
        assert "undefined" in result

    def test_nothing_to_evaluate(self):
        assert attempt_math_fallback("no numbers here") is None

    def test_validator_delegates(self, validator):
        assert validator.attempt_math_fallback("2 + 2") == "2 + 2 = 4"

    def test_format_number(self):
        assert format_number(12.0) == "12"
        assert format_number(0.1 + 0.2) == "0.3"
        assert format_number(2.5) == "2.5"
