"""
Base classes and interfaces for the tool system.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class ToolDefinition:
    """Describes a tool's interface to the model."""

    name: str
    description: str
    parameters: Dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_function_schema(self) -> Dict[str, Any]:
        """OpenAI-compatible function schema (also accepted by Ollama)."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class DisabledTool:
    """A registered but disabled tool, described for the system prompt."""

    name: str
    capability: str


class BaseTool(ABC):
    """Abstract base class for all tools."""

    #: Lower values are advertised first when the provider caps tool count.
    priority: int = 100
    #: Short user-facing description used when the tool is disabled.
    capability: str = ""

    def __init__(self):
        self.logger = logging.getLogger(f"tools.{self.__class__.__name__}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Description shown to the model."""

    @property
    def parameters(self) -> Dict[str, Any]:
        return {"type": "object", "properties": {}}

    @property
    def required_params(self) -> List[str]:
        return list(self.parameters.get("required", []))

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(self.name, self.description, self.parameters)

    @abstractmethod
    async def execute(self, **kwargs) -> str:
        """Execute the tool and return the result text."""
