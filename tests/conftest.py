"""Shared fakes for the Concierge test suite."""

from typing import Any, Dict, List, Optional

import pytest

from concierge.agent.structs import StreamChunk, ToolCall
from concierge.config.settings import Settings
from concierge.exceptions import ToolExecutionError
from concierge.providers.base import BaseProvider
from concierge.tools.base import BaseTool
from concierge.tools.calculator import CalculatorTool
from concierge.tools.registry import ToolRegistry


def text_turn(text: str) -> List[StreamChunk]:
    """A model turn that streams `text` in two pieces."""
    middle = len(text) // 2
    return [
        StreamChunk(content=text[:middle]),
        StreamChunk(content=text[middle:]),
        StreamChunk(is_complete=True),
    ]


def tool_turn(*calls: ToolCall, content: str = "") -> List[StreamChunk]:
    chunks = [StreamChunk(content=content)] if content else []
    chunks.append(StreamChunk(tool_calls=list(calls), is_complete=True))
    return chunks


class ScriptedProvider(BaseProvider):
    """
    Replays a scripted list of turns. Each turn is a list of StreamChunks or
    an exception to raise. When the script runs out, answers `default_text`.
    """

    name = "scripted"

    def __init__(
        self,
        script: Optional[List[Any]] = None,
        max_tools: int = 10,
        native: bool = False,
        default_text: str = "OK",
    ):
        self.script = list(script or [])
        self.max_tools = max_tools
        self.handles_tools_natively = native
        self.default_text = default_text
        self.calls: List[Dict[str, Any]] = []
        self.resets = 0

    async def stream_complete(self, messages, tools):
        self.calls.append({"messages": list(messages), "tools": list(tools)})
        step = self.script.pop(0) if self.script else text_turn(self.default_text)
        if isinstance(step, BaseException):
            raise step
        for chunk in step:
            yield chunk

    async def reset_session(self) -> None:
        self.resets += 1

    async def validate_connection(self) -> bool:
        return True

    def advertised_tool_names(self, call_index: int = 0) -> List[str]:
        return [t["function"]["name"] for t in self.calls[call_index]["tools"]]


class StaticTool(BaseTool):
    """Tool returning a fixed result, or raising a fixed error."""

    def __init__(self, name: str, result: str = "done", error: Optional[str] = None, priority: int = 100):
        super().__init__()
        self._name = name
        self.result = result
        self.error = error
        self.priority = priority
        self.capability = f"{name} lookups"
        self.calls: List[Dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"The {self._name} tool"

    async def execute(self, **kwargs) -> str:
        self.calls.append(kwargs)
        if self.error:
            raise ToolExecutionError(self.error, tool_name=self._name)
        return self.result


class RecordingCallbacks:
    """Duck-typed callbacks recording every notification."""

    def __init__(self):
        self.events: List[tuple] = []

    def __getattr__(self, name):
        if not name.startswith("on_"):
            raise AttributeError(name)
        return lambda *args: self.events.append((name, *args))

    def names(self) -> List[str]:
        return [e[0] for e in self.events]


async def no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def registry():
    return ToolRegistry(
        [
            CalculatorTool(),
            StaticTool("weather", result="Sunny, 21°C", priority=20),
            StaticTool("calendar", result="No events today", priority=30),
            StaticTool("reminders", result="Reminder created", priority=40),
        ]
    )
