import base64
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# --- 1. Conversation ---


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class ToolCall:
    """A tool invocation requested by the model. `arguments` is JSON text."""

    name: str
    arguments: str = "{}"
    id: str = field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")

    @property
    def signature(self) -> str:
        return f"{self.name}:{self.arguments}"

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class Message:
    """
    A single message in the conversation.

    Attributes:
        role: system, user, assistant or tool.
        content: The text content.
        tool_calls: Calls requested by an assistant message.
        tool_call_id / tool_name: Link a tool result to its call.
        attachment: Optional binary payload (e.g. an image thumbnail).
    """

    role: Role
    content: str = ""
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    attachment: Optional[bytes] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str, attachment: Optional[bytes] = None) -> "Message":
        return cls(role=Role.USER, content=content, attachment=attachment)

    @classmethod
    def assistant(
        cls, content: str, tool_calls: Optional[List[ToolCall]] = None
    ) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool(cls, call_id: str, name: str, content: str) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=call_id, tool_name=name)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used by conversation stores."""
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "tool_calls": (
                [c.to_dict() for c in self.tool_calls] if self.tool_calls else None
            ),
            "tool_call_id": self.tool_call_id,
            "tool_name": self.tool_name,
            "attachment": (
                base64.b64encode(self.attachment).decode("ascii")
                if self.attachment
                else None
            ),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        tool_calls = data.get("tool_calls")
        attachment = data.get("attachment")
        created_at = data.get("created_at")
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            role=Role(data["role"]),
            content=data.get("content") or "",
            tool_calls=[ToolCall(**c) for c in tool_calls] if tool_calls else None,
            tool_call_id=data.get("tool_call_id"),
            tool_name=data.get("tool_name"),
            attachment=base64.b64decode(attachment) if attachment else None,
            created_at=(
                datetime.fromisoformat(created_at)
                if created_at
                else datetime.now(timezone.utc)
            ),
        )


# --- 2. Provider Stream Contract ---


@dataclass
class ToolExecution:
    """A tool run, either by the orchestrator or reported by a native backend."""

    name: str
    arguments: str
    result: str
    success: bool = True


@dataclass
class StreamChunk:
    """
    One element of a provider stream.

    content -> incremental text
    tool_calls -> the finalized set of requested calls (replaces earlier sets)
    tool_executions -> tools the backend already ran, in execution order
    """

    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_executions: Optional[List[ToolExecution]] = None
    is_complete: bool = False


# --- 3. Run Configuration & Results ---


@dataclass(frozen=True)
class AgentConfig:
    """Immutable per-run loop configuration."""

    max_iterations: int = 10
    max_retries: int = 3
    base_retry_delay: float = 1.0

    @classmethod
    def from_settings(cls, settings) -> "AgentConfig":
        return cls(
            max_iterations=settings.max_iterations,
            max_retries=settings.max_retries,
            base_retry_delay=settings.base_retry_delay,
        )


@dataclass
class AgentResponse:
    """Final output of one orchestrator run."""

    content: str
    state: Any  # RunState
    iterations: int = 0
    was_aborted: bool = False


@dataclass(frozen=True)
class ContextStats:
    """Snapshot of context window usage. Derived, never stored."""

    current_tokens: int
    max_tokens: int
    usage_percent: float
    system_tokens: int
    user_tokens: int
    assistant_tokens: int
    tool_tokens: int
    message_count: int
    trimmed_count: int

    @property
    def is_near_limit(self) -> bool:
        return self.usage_percent >= 0.8

    @property
    def is_critical(self) -> bool:
        return self.usage_percent >= 0.95
