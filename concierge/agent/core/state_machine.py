from enum import Enum
from typing import Dict, Set

from concierge.exceptions import OrchestrationError


class RunState(str, Enum):
    IDLE = "idle"
    PREPARING_PROMPT = "preparing_prompt"
    TRIMMING = "trimming"
    SELECTING_TOOLS = "selecting_tools"
    STREAMING = "streaming"
    HANDLING_TOOL_CALLS = "handling_tool_calls"
    VALIDATING = "validating"
    DONE = "done"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    LOOP_DETECTED = "loop_detected"
    ERROR = "error"


TERMINAL_STATES = frozenset(
    {
        RunState.DONE,
        RunState.MAX_ITERATIONS_REACHED,
        RunState.LOOP_DETECTED,
        RunState.ERROR,
    }
)


class StateMachine:
    """
    Enforces valid state transitions for one orchestrator run.
    Prevents invalid jumps (e.g., IDLE -> STREAMING without a prompt).
    """

    def __init__(self):
        self._current_state = RunState.IDLE

        # Define allowed transitions
        self._transitions: Dict[RunState, Set[RunState]] = {
            RunState.IDLE: {RunState.PREPARING_PROMPT, RunState.ERROR},
            RunState.PREPARING_PROMPT: {RunState.TRIMMING, RunState.ERROR},
            RunState.TRIMMING: {RunState.SELECTING_TOOLS, RunState.ERROR},
            RunState.SELECTING_TOOLS: {
                RunState.STREAMING,
                RunState.DONE,  # Bypasses answered locally
                RunState.ERROR,
            },
            RunState.STREAMING: {
                RunState.HANDLING_TOOL_CALLS,
                RunState.VALIDATING,
                RunState.ERROR,
            },
            RunState.HANDLING_TOOL_CALLS: {
                RunState.STREAMING,  # Next iteration
                RunState.VALIDATING,  # Native tool results
                RunState.LOOP_DETECTED,
                RunState.MAX_ITERATIONS_REACHED,
                RunState.ERROR,
            },
            RunState.VALIDATING: {RunState.DONE, RunState.ERROR},
            RunState.DONE: {RunState.IDLE},
            RunState.MAX_ITERATIONS_REACHED: {RunState.IDLE},
            RunState.LOOP_DETECTED: {RunState.IDLE},
            RunState.ERROR: {RunState.IDLE},  # Reset
        }

    @property
    def current(self) -> RunState:
        return self._current_state

    @property
    def is_terminal(self) -> bool:
        return self._current_state in TERMINAL_STATES

    def can_transition_to(self, new_state: RunState) -> bool:
        return new_state in self._transitions[self._current_state]

    def transition_to(self, new_state: RunState) -> None:
        """
        Attempts to transition to a new state.
        Raises OrchestrationError if the transition is illegal.
        """
        if not self.can_transition_to(new_state):
            raise OrchestrationError(
                f"Invalid State Transition: {self._current_state.value} -> {new_state.value}"
            )
        self._current_state = new_state

    def reset(self) -> None:
        """Force the machine back to IDLE (used after cancellation)."""
        self._current_state = RunState.IDLE
