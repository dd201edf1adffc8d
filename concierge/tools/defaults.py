"""Default runtime tool registration."""

from typing import Iterable

from concierge.config.settings import Settings
from concierge.tools.base import BaseTool
from concierge.tools.calculator import CalculatorTool
from concierge.tools.registry import ToolRegistry
from concierge.tools.web_fetch import WebFetchTool


def iter_default_tools(settings: Settings) -> Iterable[BaseTool]:
    """Build the default runtime tool set."""
    return (
        CalculatorTool(),
        WebFetchTool(timeout=settings.tool_timeout),
    )


def register_default_tools(registry: ToolRegistry, settings: Settings) -> None:
    """Register all runtime tools in deterministic order."""
    for tool in iter_default_tools(settings):
        registry.register(tool)
