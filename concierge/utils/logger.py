import logging
import sys
from typing import Any, Dict, List

from concierge.protocol.bus import EventBus
from concierge.protocol.events import EventTypes

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once for the process."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not any(getattr(h, "_concierge", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._concierge = True
        root.addHandler(handler)


class EventLogger:
    """
    Bus subscriber that logs orchestrator activity.

    Stream chunks are buffered and flushed as one line when the response
    completes, so the log carries whole answers rather than token noise.
    """

    def __init__(self, bus: EventBus):
        self._bus = bus
        self._buffer: List[str] = []
        self._logger = logging.getLogger("Concierge")

    async def start(self):
        await self._bus.subscribe(EventTypes.ERROR, self._log_error)
        await self._bus.subscribe(EventTypes.STATUS_CHANGED, self._log_status)
        await self._bus.subscribe(EventTypes.TOOL_CALL, self._log_tool_call)
        await self._bus.subscribe(EventTypes.TOOL_RESULT, self._log_tool_result)
        await self._bus.subscribe(EventTypes.HISTORY_TRIMMED, self._log_trim)

        await self._bus.subscribe(EventTypes.STREAM_CHUNK, self._handle_chunk)
        await self._bus.subscribe(
            EventTypes.RESPONSE_COMPLETE, self._handle_response_end
        )

    # --- Handlers ---

    async def _log_error(self, data: Dict[str, Any]):
        msg = data.get("message", str(data))
        self._logger.error(f"ERROR ({data.get('error_type', 'unknown')}): {msg}")

    async def _log_status(self, data: Dict[str, Any]):
        self._logger.debug(f"STATUS: {data.get('status')}")

    async def _log_tool_call(self, data: Dict[str, Any]):
        self._logger.info(f"TOOL CALL: {data.get('tool_name')} {data.get('arguments')}")

    async def _log_tool_result(self, data: Dict[str, Any]):
        tool = data.get("tool_name", "unknown")
        outcome = "ok" if data.get("success") else "failed"
        self._logger.info(f"TOOL: {tool} {outcome}")

    async def _log_trim(self, data: Dict[str, Any]):
        self._logger.info(
            f"CONTEXT: trimmed {data.get('removed')} messages "
            f"(total {data.get('total_trimmed')})"
        )

    # --- The Aggregator Logic ---

    async def _handle_chunk(self, data: Dict[str, Any]):
        """Silent buffer. Doesn't print."""
        chunk = data.get("chunk", "")
        if chunk:
            self._buffer.append(chunk)

    async def _handle_response_end(self, data: Dict[str, Any]):
        """Flushes the buffer to the log."""
        full_text = "".join(self._buffer) or data.get("content", "")
        self._logger.info(f"MODEL: {full_text}")
        self._buffer.clear()
