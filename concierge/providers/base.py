import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List

from concierge.agent.structs import Message, StreamChunk


class BaseProvider(ABC):
    """
    The Abstract Base Class (Contract) for all LLM Providers.

    Capability flags:
        max_tools: Most tool definitions the backend accepts per request.
        handles_tools_natively: The backend runs tools itself and reports
            them as `StreamChunk.tool_executions`.
    """

    name: str = "base"
    max_tools: int = 10
    handles_tools_natively: bool = False

    @abstractmethod
    def stream_complete(
        self,
        messages: List[Message],
        tools: List[Dict[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream one model response.

        Yields:
            StreamChunk: Incremental content, then the finalized tool calls.
        """

    async def reset_session(self) -> None:
        """Drop any cached backend session state. Stateless backends do nothing."""
        logging.getLogger(self.__class__.__name__).debug("Session reset (stateless)")

    @abstractmethod
    async def validate_connection(self) -> bool:
        """
        Ping the provider to ensure availability/authentication.
        """
