import json
import logging
from typing import Any, AsyncIterator, Dict, List

import httpx
from ollama import AsyncClient, ResponseError

from concierge.agent.structs import Message, Role, StreamChunk, ToolCall
from concierge.config.settings import Settings
from concierge.exceptions import (
    ContextOverflowError,
    ModelTimeoutError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
)
from concierge.providers.base import BaseProvider

logger = logging.getLogger("OllamaProvider")

_OVERFLOW_MARKERS = ("context length", "context window", "too many tokens")


def _parse_arguments(arguments: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OllamaProvider(BaseProvider):
    """
    Adapter for Ollama (Local & Cloud).
    Maps native SDK objects -> StreamChunk.
    """

    name = "ollama"

    def __init__(self, settings: Settings):
        self.host = settings.ollama_host
        self.api_key = settings.ollama_api_key
        self.model_name = settings.model_name
        self.max_tools = settings.provider_max_tools

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        # One client, reused for every request.
        self.client = AsyncClient(
            host=self.host, headers=headers, timeout=settings.llm_timeout
        )

    async def validate_connection(self) -> bool:
        try:
            await self.client.list()
            return True
        except Exception as e:
            logger.error(f"Ollama Connection Failed: {e}")
            return False

    async def stream_complete(
        self,
        messages: List[Message],
        tools: List[Dict[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        payload = self._serialize_messages(messages)
        tool_calls: List[ToolCall] = []

        try:
            stream = await self.client.chat(
                model=self.model_name,
                messages=payload,
                tools=tools or None,
                stream=True,
            )

            async for chunk in stream:
                if chunk.message.content:
                    yield StreamChunk(content=chunk.message.content)

                for tc in chunk.message.tool_calls or []:
                    tool_calls.append(
                        ToolCall(
                            name=tc.function.name,
                            arguments=json.dumps(dict(tc.function.arguments or {})),
                        )
                    )

                if chunk.done:
                    logger.debug(
                        "Ollama done: prompt_eval=%s eval=%s",
                        chunk.prompt_eval_count,
                        chunk.eval_count,
                    )
        except ResponseError as e:
            raise self._map_response_error(e) from e
        except httpx.TimeoutException as e:
            raise ModelTimeoutError(f"Ollama request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ProviderConnectionError(
                f"Ollama connection failed: {e}",
                provider_name=self.name,
                original_error=e,
            ) from e

        yield StreamChunk(tool_calls=tool_calls or None, is_complete=True)

    def _map_response_error(self, error: ResponseError) -> Exception:
        message = str(error.error or error)
        logger.error(f"Ollama error ({error.status_code}): {message}")
        if error.status_code == 429:
            return ProviderRateLimitError(
                f"Ollama rate limit: {message}",
                provider_name=self.name,
                model_name=self.model_name,
            )
        if any(marker in message.lower() for marker in _OVERFLOW_MARKERS):
            return ContextOverflowError(f"Ollama context overflow: {message}")
        return ProviderError(
            f"Ollama stream failed: {message}",
            provider_name=self.name,
            model_name=self.model_name,
            original_error=error,
        )

    @staticmethod
    def _serialize_messages(messages: List[Message]) -> List[Dict[str, Any]]:
        """Convert internal messages into the Ollama chat payload format."""
        serialized: List[Dict[str, Any]] = []
        for message in messages:
            payload: Dict[str, Any] = {
                "role": message.role.value,
                "content": message.content,
            }
            if message.attachment:
                payload["images"] = [message.attachment]

            if message.role == Role.ASSISTANT and message.tool_calls:
                payload["tool_calls"] = [
                    {
                        "function": {
                            "name": call.name,
                            "arguments": _parse_arguments(call.arguments),
                        }
                    }
                    for call in message.tool_calls
                ]
            elif message.role == Role.TOOL and message.tool_name:
                payload["tool_name"] = message.tool_name

            serialized.append(payload)
        return serialized
