import base64
import json
import logging
from typing import Any, AsyncIterator, Dict, List

import openai
from openai import AsyncOpenAI

from concierge.agent.structs import Message, Role, StreamChunk, ToolCall
from concierge.config.settings import Settings
from concierge.exceptions import (
    ContextOverflowError,
    ModelTimeoutError,
    ProviderConfigurationError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
)
from concierge.providers.base import BaseProvider

logger = logging.getLogger("OpenRouterProvider")

_OVERFLOW_MARKERS = ("context length", "context_length", "maximum context", "too many tokens")


class OpenRouterProvider(BaseProvider):
    """
    Adapter for OpenRouter using OpenAI-compatible chat-completions streaming.
    """

    name = "openrouter"

    def __init__(self, settings: Settings):
        self.base_url = settings.openrouter_base_url.rstrip("/")
        self.api_key = settings.openrouter_api_key
        self.model_name = settings.model_name
        self.max_tools = settings.provider_max_tools

        if not self.api_key:
            raise ProviderConfigurationError(
                "OPENROUTER_API_KEY is required when using OpenRouterProvider.",
                provider_name=self.name,
            )

        self.client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=settings.llm_timeout,
            max_retries=0,  # Retries belong to the orchestrator's RetryPolicy
        )

    async def validate_connection(self) -> bool:
        try:
            await self.client.models.list()
            return True
        except Exception as exc:
            logger.error("OpenRouter connection failed: %s", exc)
            return False

    async def stream_complete(
        self,
        messages: List[Message],
        tools: List[Dict[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        request_payload: Dict[str, Any] = {
            "model": self.model_name,
            "messages": self._serialize_messages(messages),
            "stream": True,
        }
        if tools:
            request_payload["tools"] = tools

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "OpenRouter request payload: %s",
                json.dumps(request_payload, ensure_ascii=False, default=str),
            )

        pending: Dict[int, Dict[str, Any]] = {}
        try:
            stream = await self.client.chat.completions.create(**request_payload)
            async for chunk in stream:
                for choice in chunk.choices or []:
                    delta = choice.delta
                    if delta is None:
                        continue
                    if delta.content:
                        yield StreamChunk(content=delta.content)
                    self._merge_tool_call_chunks(pending, delta.tool_calls or [])
        except openai.RateLimitError as exc:
            raise ProviderRateLimitError(
                f"OpenRouter rate limit: {exc}",
                provider_name=self.name,
                model_name=self.model_name,
            ) from exc
        except openai.APITimeoutError as exc:
            raise ModelTimeoutError(f"OpenRouter request timed out: {exc}") from exc
        except openai.APIConnectionError as exc:
            raise ProviderConnectionError(
                f"OpenRouter connection failed: {exc}",
                provider_name=self.name,
                original_error=exc,
            ) from exc
        except openai.BadRequestError as exc:
            if any(m in str(exc).lower() for m in _OVERFLOW_MARKERS):
                raise ContextOverflowError(f"OpenRouter context overflow: {exc}") from exc
            raise ProviderResponseError(
                f"OpenRouter rejected the request: {exc}", provider_name=self.name
            ) from exc
        except openai.APIError as exc:
            logger.error("OpenRouter stream failed: %s", exc, exc_info=True)
            raise ProviderError(
                f"OpenRouter stream failed: {exc}",
                provider_name=self.name,
                model_name=self.model_name,
                original_error=exc,
            ) from exc

        yield StreamChunk(tool_calls=self._flush_tool_calls(pending), is_complete=True)

    @staticmethod
    def _merge_tool_call_chunks(pending: Dict[int, Dict[str, Any]], deltas: List[Any]) -> None:
        for item in deltas:
            slot = pending.setdefault(
                item.index or 0, {"id": None, "name": None, "arguments_parts": []}
            )
            if item.id:
                slot["id"] = item.id
            function = item.function
            if function is not None:
                if function.name:
                    slot["name"] = function.name
                if function.arguments:
                    slot["arguments_parts"].append(function.arguments)

    @staticmethod
    def _flush_tool_calls(pending: Dict[int, Dict[str, Any]]):
        calls = []
        for index in sorted(pending):
            entry = pending[index]
            if not entry["name"]:
                continue
            arguments = "".join(entry["arguments_parts"]).strip() or "{}"
            call = ToolCall(name=entry["name"], arguments=arguments)
            if entry["id"]:
                call.id = entry["id"]
            calls.append(call)
        return calls or None

    @staticmethod
    def _serialize_messages(messages: List[Message]) -> List[Dict[str, Any]]:
        serialized: List[Dict[str, Any]] = []
        for message in messages:
            if message.role == Role.TOOL:
                serialized.append(
                    {
                        "role": "tool",
                        "tool_call_id": message.tool_call_id,
                        "content": message.content,
                    }
                )
                continue

            payload: Dict[str, Any] = {
                "role": message.role.value,
                "content": message.content,
            }
            if message.role == Role.USER and message.attachment:
                encoded = base64.b64encode(message.attachment).decode("ascii")
                payload["content"] = [
                    {"type": "text", "text": message.content},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:image/jpeg;base64,{encoded}"},
                    },
                ]
            if message.role == Role.ASSISTANT and message.tool_calls:
                payload["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.arguments},
                    }
                    for call in message.tool_calls
                ]
            serialized.append(payload)
        return serialized
