"""
Tool Registry - registration, enablement and execution of tools.
"""

import json
import logging
from typing import Dict, Iterable, List, Optional, Set

from concierge.exceptions import (
    ToolError,
    ToolExecutionError,
    ToolInputValidationError,
    ToolNotFoundError,
    ToolRegistryError,
)
from concierge.tools.base import BaseTool, DisabledTool, ToolDefinition


class ToolRegistry:
    """Manages registration, enablement and execution of tools."""

    def __init__(self, tools: Iterable[BaseTool] = ()):
        self.logger = logging.getLogger("ToolRegistry")
        self._tools: Dict[str, BaseTool] = {}
        self._disabled: Set[str] = set()
        for tool in tools:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        """
        Register a tool instance.

        Raises:
            ToolRegistryError: If a tool with the same name is already registered.
        """
        if tool.name in self._tools:
            raise ToolRegistryError(
                f"Tool '{tool.name}' is already registered", tool_name=tool.name
            )
        self._tools[tool.name] = tool
        self.logger.debug("Registered tool: %s", tool.name)

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)
        self._disabled.discard(name)

    def get_tool(self, name: str) -> Optional[BaseTool]:
        return self._tools.get(name)

    def list_tools(self) -> List[str]:
        return sorted(self._tools)

    # --- Enablement ---

    def enable(self, name: str) -> None:
        self._disabled.discard(name)

    def disable(self, name: str) -> None:
        if name not in self._tools:
            raise ToolNotFoundError(f"Tool '{name}' not found.", tool_name=name)
        self._disabled.add(name)

    def is_enabled(self, name: str) -> bool:
        return name in self._tools and name not in self._disabled

    def _enabled_tools(self) -> List[BaseTool]:
        enabled = [t for t in self._tools.values() if t.name not in self._disabled]
        return sorted(enabled, key=lambda t: t.priority)

    # --- Definitions ---

    def get_definitions(self) -> List[ToolDefinition]:
        """Definitions of enabled tools, highest priority first."""
        return [t.to_definition() for t in self._enabled_tools()]

    def get_definitions_limited(self, max_tools: int) -> List[ToolDefinition]:
        """Definitions capped for providers with tool limits."""
        return self.get_definitions()[: max(0, max_tools)]

    def get_disabled_tool_descriptions(self) -> List[DisabledTool]:
        disabled = sorted(
            (self._tools[n] for n in self._disabled if n in self._tools),
            key=lambda t: t.priority,
        )
        return [DisabledTool(t.name, t.capability or t.description) for t in disabled]

    # --- Execution ---

    async def execute(self, name: str, arguments: str) -> str:
        """
        Execute a tool with JSON arguments.

        Args:
            name: The name of the tool to execute.
            arguments: JSON object text.

        Returns:
            str: The tool's result text.

        Raises:
            ToolNotFoundError: If the tool is unknown or disabled.
            ToolInputValidationError: If arguments are not a JSON object or miss required keys.
            ToolExecutionError: If the tool fails.
        """
        tool = self._tools.get(name)
        if tool is None or name in self._disabled:
            available = [t.name for t in self._enabled_tools()]
            raise ToolNotFoundError(
                f"Tool '{name}' not found. Available: {available}", tool_name=name
            )

        kwargs = self._parse_arguments(name, arguments)
        missing = [p for p in tool.required_params if p not in kwargs]
        if missing:
            raise ToolInputValidationError(
                f"Missing required parameters: {missing}",
                tool_name=name,
                invalid_input=arguments,
            )

        try:
            return await tool.execute(**kwargs)
        except ToolError:
            raise
        except Exception as e:
            self.logger.error("Tool execution error '%s'", name, exc_info=True)
            raise ToolExecutionError(
                f"Tool '{name}' failed: {e}", tool_name=name, original_error=e
            ) from e

    @staticmethod
    def _parse_arguments(name: str, arguments: str) -> dict:
        if not arguments or not arguments.strip():
            return {}
        try:
            parsed = json.loads(arguments)
        except json.JSONDecodeError as e:
            raise ToolInputValidationError(
                f"Invalid JSON arguments for '{name}': {e.msg}",
                tool_name=name,
                invalid_input=arguments,
            ) from e
        if not isinstance(parsed, dict):
            raise ToolInputValidationError(
                f"Arguments for '{name}' must be a JSON object",
                tool_name=name,
                invalid_input=arguments,
            )
        return parsed
