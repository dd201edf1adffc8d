#!/usr/bin/env python3
"""
Agent Exception Definitions for Concierge

Errors surfaced to the caller of an orchestrator run.
"""

from concierge.exceptions.base import ConciergeError


class AgentError(ConciergeError):
    """Base exception for agent-level errors."""

    pass


class MaxIterationsReachedError(AgentError):
    """Raised when the run loop does not converge within max_iterations."""

    def __init__(self, max_iterations: int):
        super().__init__(
            f"Maximum iterations ({max_iterations}) reached. "
            "The agent may be stuck in a loop.",
            user_hint="I couldn't finish that request. Please try rephrasing it.",
        )
        self.max_iterations = max_iterations


class NoProviderError(AgentError):
    """Raised when a run starts without a model provider configured."""

    def __init__(self, message: str = "No LLM provider configured."):
        super().__init__(
            message,
            user_hint="No language model is configured. Check your provider settings.",
        )


class OrchestrationError(AgentError):
    """Raised when orchestration logic is used incorrectly."""

    pass
