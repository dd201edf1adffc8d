#!/usr/bin/env python3
"""
Conversation Summarization
==========================
Holds the single optional conversation summary and runs summarization
requests as detached, single-flight background tasks.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from concierge.agent.structs import Message, Role
from concierge.exceptions import ConciergeError, SummarizationError
from concierge.exceptions.base import wrap_exception

SUMMARY_INSTRUCTIONS = (
    "Summarize the conversation below in 2-3 sentences. Keep names, dates, "
    "numbers and any open requests. Reply with the summary only."
)


class Summarizer(ABC):
    """Produces a short summary of a plain-text transcript."""

    @abstractmethod
    async def summarize(self, transcript: str) -> str:
        """Return the summary text. Any raised error leaves the summary unset."""


class ProviderSummarizer(Summarizer):
    """Summarizes through a model provider with no tools advertised."""

    def __init__(self, provider):
        self.provider = provider

    @wrap_exception(SummarizationError, user_hint="Could not summarize the conversation.")
    async def summarize(self, transcript: str) -> str:
        messages = [Message.system(SUMMARY_INSTRUCTIONS), Message.user(transcript)]
        parts: List[str] = []
        try:
            async for chunk in self.provider.stream_complete(messages, []):
                if chunk.content:
                    parts.append(chunk.content)
        except ConciergeError as e:
            raise SummarizationError(
                f"Summarization failed: {e.message}", original_error=e
            ) from e

        summary = "".join(parts).strip()
        if not summary:
            raise SummarizationError("Summarizer returned an empty summary")
        return summary


def build_transcript(messages: List[Message]) -> str:
    """Plain transcript of non-system messages, one line per message."""
    lines = []
    for msg in messages:
        if msg.role == Role.USER:
            lines.append(f"User: {msg.content}")
        elif msg.role == Role.ASSISTANT:
            if msg.content:
                lines.append(f"Assistant: {msg.content}")
        elif msg.role == Role.TOOL:
            lines.append(f"Tool({msg.tool_name or 'unknown'}): {msg.content}")
    return "\n".join(lines)


class SummaryState:
    """
    The conversation summary plus its single-flight guard.

    At most one summarization task is in flight at a time. Failures are
    logged and leave the summary unset.
    """

    def __init__(self, summarizer: Optional[Summarizer] = None):
        self.summarizer = summarizer
        self.summary: Optional[str] = None
        self.in_flight = False
        self._task: Optional[asyncio.Task] = None
        self.logger = logging.getLogger("SummaryState")

    @property
    def pending(self) -> Optional[asyncio.Task]:
        return self._task if self._task and not self._task.done() else None

    def can_request(self) -> bool:
        return self.summarizer is not None and self.summary is None and not self.in_flight

    def request(self, transcript: str) -> bool:
        """
        Start a detached summarization task.

        Returns:
            bool: True if a task was started.
        """
        if not self.can_request() or not transcript:
            return False
        self.in_flight = True
        self._task = asyncio.create_task(self._run(transcript))
        self.logger.info("Background summarization requested (%d chars)", len(transcript))
        return True

    async def _run(self, transcript: str) -> None:
        try:
            self.summary = await self.summarizer.summarize(transcript)
            self.logger.info("Conversation summary ready")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning("Background summarization failed: %s", e)
        finally:
            self.in_flight = False

    async def summarize_now(self, transcript: str) -> Optional[str]:
        """Synchronous (awaited) summarization used for overflow recovery."""
        if self.summarizer is None or not transcript:
            return None
        try:
            self.summary = await self.summarizer.summarize(transcript)
        except Exception as e:
            self.logger.warning("Summarization failed: %s", e)
        return self.summary

    async def wait(self) -> None:
        """Await the in-flight task, if any."""
        task = self.pending
        if task is not None:
            await task

    def clear(self) -> None:
        task = self.pending
        if task is not None:
            task.cancel()
        self._task = None
        self.summary = None
        self.in_flight = False
