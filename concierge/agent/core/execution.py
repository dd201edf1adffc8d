import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Optional, Union

from concierge.agent.structs import ToolCall
from concierge.exceptions.tools import ToolError, ToolNotFoundError
from concierge.tools.registry import ToolRegistry


# --- Tool-call outcomes ---


@dataclass(frozen=True)
class ToolSucceeded:
    result: str

    @property
    def success(self) -> bool:
        return True

    def render(self) -> str:
        return self.result


@dataclass(frozen=True)
class ToolFailed:
    error: str
    suggestion: Optional[str] = None

    @property
    def success(self) -> bool:
        return False

    def render(self) -> str:
        return encode_error(self.error, self.suggestion)


@dataclass(frozen=True)
class ToolMismatched:
    """The requested tool does not fit the user's intent; it was not run."""

    reason: str

    @property
    def success(self) -> bool:
        return False

    def render(self) -> str:
        return encode_error(
            "Tool not executed: it does not match the user's request.",
            f"{self.reason} Reconsider which tool to use.",
        )


ToolOutcome = Union[ToolSucceeded, ToolFailed, ToolMismatched]


def encode_error(message: str, suggestion: Optional[str] = None) -> str:
    payload = {"error": message}
    if suggestion:
        payload["suggestion"] = suggestion
    return json.dumps(payload)


# --- Recovery suggestions ---

_PRIVACY_HINT = "{what} access is required. Please enable it in Settings > Privacy > {where}."


def get_suggestion(tool_name: str, error_message: str) -> Optional[str]:
    """Context-aware recovery hint for a failed tool, or None."""
    error = error_message.lower()

    def has(*words: str) -> bool:
        return any(w in error for w in words)

    if tool_name == "weather":
        if has("location", "denied"):
            return "Try specifying a city name like 'weather in San Francisco'"
        if has("timeout"):
            return "Location request timed out. Please try again or specify a city name."
    elif tool_name == "calendar":
        if has("access", "denied"):
            return _PRIVACY_HINT.format(what="Calendar", where="Calendars")
        if has("title"):
            return "Please specify what event you'd like to create."
    elif tool_name == "contacts":
        if has("access", "denied"):
            return _PRIVACY_HINT.format(what="Contacts", where="Contacts")
    elif tool_name == "reminders":
        if has("access", "denied"):
            return _PRIVACY_HINT.format(what="Reminders", where="Reminders")
    elif tool_name == "location":
        if has("denied", "authorization"):
            return _PRIVACY_HINT.format(what="Location", where="Location Services")
    elif tool_name == "web_fetch":
        if has("invalid", "url"):
            return "Please provide a valid URL starting with http:// or https://"
        if has("timeout", "network"):
            return "Network error. Please check your connection and try again."
    elif tool_name == "calculator":
        if has("expression", "invalid"):
            return "Please check the math expression format. Example: '100 * 0.15' for 15% of 100."
    return None


class ToolExecutor:
    """
    The Safe Runner.
    Isolates tool execution from the run loop: timeouts and tool failures
    become ToolFailed outcomes instead of exceptions.
    """

    def __init__(self, registry: ToolRegistry, timeout_seconds: float = 30.0):
        self._registry = registry
        self._timeout = timeout_seconds
        self._logger = logging.getLogger("ToolExecutor")

    async def execute(self, call: ToolCall) -> ToolOutcome:
        self._logger.info(f"Executing {call.name} (ID: {call.id})")
        try:
            result = await asyncio.wait_for(
                self._registry.execute(call.name, call.arguments),
                timeout=self._timeout,
            )
            return ToolSucceeded(result)

        except asyncio.TimeoutError:
            message = f"Execution timeout after {self._timeout:g} seconds."
            self._logger.error(f"Tool {call.name} timed out after {self._timeout}s")
            return ToolFailed(message, get_suggestion(call.name, message))

        except ToolNotFoundError as e:
            self._logger.warning(f"Unknown tool requested: {call.name}")
            available = ", ".join(d.name for d in self._registry.get_definitions())
            return ToolFailed(e.message, f"Use one of the available tools: {available}")

        except ToolError as e:
            self._logger.warning(f"Tool {call.name} failed: {e.message}")
            return ToolFailed(e.message, get_suggestion(call.name, e.message))
