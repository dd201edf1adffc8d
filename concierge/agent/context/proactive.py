#!/usr/bin/env python3
"""
Proactive Context
=================
Detects explicit weather/calendar intent in a user message and prefetches
the matching tool data so the model can answer with richer context.
Prefetches run concurrently, each under a short timeout; failures and
timeouts are simply left out.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from concierge.agent.validation.patterns import (
    extract_weather_location,
    matches_calendar,
    matches_weather,
)

HEADER = "PROACTIVE CONTEXT (auto-fetched, may be useful):"
MAX_CONTEXT_CHARS = 400
MIN_RESULT_CHARS = 20


@dataclass(frozen=True)
class DetectedIntent:
    tool_name: str
    arguments: str
    label: str


class ProactiveContext:
    def __init__(self, registry, timeout: float = 2.0):
        self.registry = registry
        self.timeout = timeout
        self.logger = logging.getLogger("ProactiveContext")

    @staticmethod
    def detect_intents(text: str) -> List[DetectedIntent]:
        intents = []
        if matches_weather(text):
            location = extract_weather_location(text)
            args = json.dumps({"location": location}) if location else "{}"
            intents.append(DetectedIntent("weather", args, "weather"))
        if matches_calendar(text):
            intents.append(
                DetectedIntent("calendar", json.dumps({"action": "list"}), "calendar")
            )
        return intents

    async def _fetch(self, intent: DetectedIntent) -> Optional[Tuple[str, str]]:
        try:
            result = await asyncio.wait_for(
                self.registry.execute(intent.tool_name, intent.arguments),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            self.logger.info("Prefetch of %s timed out", intent.label)
            return None
        except Exception as e:
            self.logger.info("Prefetch of %s failed: %s", intent.label, e)
            return None
        return intent.label, result

    async def prefetch(self, intents: List[DetectedIntent]) -> Optional[str]:
        """
        Run prefetches for enabled tools and format the results.

        Returns:
            Context text capped at 400 characters, or None.
        """
        valid = [i for i in intents if self.registry.is_enabled(i.tool_name)]
        if not valid:
            return None

        self.logger.info("Prefetching %s", [i.label for i in valid])
        fetched = await asyncio.gather(*(self._fetch(i) for i in valid))
        results = [r for r in fetched if r is not None]
        if not results:
            return None

        context = HEADER
        remaining = MAX_CONTEXT_CHARS
        for label, result in results:
            prefix = f"\n[{label}] "
            available = remaining - len(prefix)
            if available <= MIN_RESULT_CHARS:
                break
            if len(result) > available:
                result = result[: available - 3] + "..."
            context += prefix + result
            remaining -= len(prefix) + len(result)

        self.logger.info("Injected %d chars of proactive context", len(context))
        return context

    async def build(self, text: str) -> Optional[str]:
        return await self.prefetch(self.detect_intents(text))
