"""
Observer callbacks fired by the orchestrator.

Callbacks are notifications only: return values are ignored and any
exception they raise is logged and swallowed by the orchestrator.
"""

import asyncio
import logging
from typing import Any, Set

from concierge.protocol.bus import EventBus
from concierge.protocol.events import EventTypes


class AgentCallbacks:
    """No-op base; override what you need."""

    def on_status_changed(self, state: str) -> None:
        pass

    def on_thinking(self) -> None:
        pass

    def on_tool_call(self, name: str, arguments: str) -> None:
        pass

    def on_tool_result(self, name: str, success: bool, result: str) -> None:
        pass

    def on_stream_chunk(self, chunk: str) -> None:
        pass

    def on_response(self, content: str) -> None:
        pass

    def on_error(self, error: BaseException) -> None:
        pass

    def on_history_trimmed(self, removed: int, total_trimmed: int) -> None:
        pass


class EventBusCallbacks(AgentCallbacks):
    """
    Bridges orchestrator callbacks onto the EventBus.
    Each emit runs as a detached task so the run loop never waits on handlers.
    """

    def __init__(self, bus: EventBus):
        self._bus = bus
        self._tasks: Set[asyncio.Task] = set()
        self._logger = logging.getLogger("EventBusCallbacks")

    def _emit(self, event_type: EventTypes, data: Any) -> None:
        try:
            task = asyncio.get_running_loop().create_task(
                self._bus.emit(event_type, data)
            )
        except RuntimeError:
            self._logger.debug("No running loop; dropped %s", event_type.value)
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for every scheduled emit to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def on_status_changed(self, state: str) -> None:
        self._emit(EventTypes.STATUS_CHANGED, {"status": state})

    def on_thinking(self) -> None:
        self._emit(EventTypes.THINKING_STARTED, {})

    def on_tool_call(self, name: str, arguments: str) -> None:
        self._emit(EventTypes.TOOL_CALL, {"tool_name": name, "arguments": arguments})

    def on_tool_result(self, name: str, success: bool, result: str) -> None:
        self._emit(
            EventTypes.TOOL_RESULT,
            {"tool_name": name, "success": success, "result": result},
        )

    def on_stream_chunk(self, chunk: str) -> None:
        self._emit(EventTypes.STREAM_CHUNK, {"chunk": chunk})

    def on_response(self, content: str) -> None:
        self._emit(EventTypes.RESPONSE_COMPLETE, {"content": content})

    def on_error(self, error: BaseException) -> None:
        self._emit(
            EventTypes.ERROR,
            {
                "message": str(error),
                "error_type": type(error).__name__,
                "user_hint": getattr(error, "user_hint", None),
            },
        )

    def on_history_trimmed(self, removed: int, total_trimmed: int) -> None:
        self._emit(
            EventTypes.HISTORY_TRIMMED,
            {"removed": removed, "total_trimmed": total_trimmed},
        )
