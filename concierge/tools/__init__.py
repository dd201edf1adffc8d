from .base import BaseTool, DisabledTool, ToolDefinition
from .registry import ToolRegistry

__all__ = ["BaseTool", "DisabledTool", "ToolDefinition", "ToolRegistry"]
