from concierge.agent.validation.arithmetic import attempt_math_fallback
from concierge.agent.validation.validator import (
    ACTION_NOT_COMPLETED,
    CREATIVE_REDIRECT,
    REFUSAL_FALLBACK,
    REPHRASE_MESSAGE,
    ToolCallValidator,
)

__all__ = [
    "ToolCallValidator",
    "attempt_math_fallback",
    "CREATIVE_REDIRECT",
    "REPHRASE_MESSAGE",
    "ACTION_NOT_COMPLETED",
    "REFUSAL_FALLBACK",
]
