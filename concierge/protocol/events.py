from enum import Enum


class EventTypes(str, Enum):
    """
    Canonical event names emitted by the orchestrator.
    Using an Enum prevents typo bugs (e.g., 'tool_call' vs 'tool_call_started').
    """

    # 1. System Events
    STATUS_CHANGED = "status_changed"
    ERROR = "error"

    # 2. Conversation Events
    THINKING_STARTED = "thinking_started"
    STREAM_CHUNK = "stream_chunk"
    RESPONSE_COMPLETE = "response_complete"

    # 3. Tool Execution Events
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"

    # 4. Context Events
    HISTORY_TRIMMED = "history_trimmed"
