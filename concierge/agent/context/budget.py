#!/usr/bin/env python3
"""
Prompt Budget Allocator
=======================
Assembles the system prompt from priority-ordered sections under a fixed
token ceiling. Sections are added highest priority first; once the budget is
spent, later sections are dropped entirely.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from concierge.tools.base import DisabledTool
from concierge.utils.token_estimation import CHARS_PER_TOKEN, estimate_tokens

ELLIPSIS = "..."

CORE_INSTRUCTIONS = """You are Concierge, a helpful personal assistant.

RULES:
- Answer directly and concisely.
- Use a tool only when the request needs live data or an action (weather, calendar, reminders, contacts, location, web pages, math).
- For arithmetic, always use the calculator tool and report its result.
- Never claim to have created, scheduled, sent or deleted anything unless a tool did it.
- If a tool fails, explain briefly and pass on its suggestion."""


class PromptBudget:
    """Running token counter against a fixed total budget."""

    def __init__(self, total_budget: int):
        self.total_budget = max(0, total_budget)
        self.used_tokens = 0

    @property
    def remaining(self) -> int:
        return max(0, self.total_budget - self.used_tokens)

    def add(self, text: str, cap: int) -> Optional[str]:
        """
        Charge a section against the budget.

        Returns:
            The text (whole or truncated) to include, or None when omitted.
        """
        if self.remaining <= 0:
            return None

        effective_cap = min(cap, self.remaining)
        if effective_cap <= 0:
            return None

        cost = estimate_tokens(text)
        if cost <= effective_cap:
            self.used_tokens += cost
            return text

        max_chars = max(0, effective_cap * CHARS_PER_TOKEN - len(ELLIPSIS))
        self.used_tokens += effective_cap
        return text[:max_chars] + ELLIPSIS


@dataclass
class SectionCaps:
    """Per-section token caps; the defaults sum to the 500-token reserve."""

    core: int = 250
    template: int = 60
    summary: int = 100
    memories: int = 80
    proactive: int = 80
    disabled_tools: int = 40

    @classmethod
    def from_settings(cls, settings) -> "SectionCaps":
        return cls(
            core=settings.budget_core,
            template=settings.budget_template,
            summary=settings.budget_summary,
            memories=settings.budget_memories,
            proactive=settings.budget_proactive,
            disabled_tools=settings.budget_disabled_tools,
        )


class SystemPromptBuilder:
    """Builds the system prompt in strict section order."""

    def __init__(
        self,
        total_budget: int = 500,
        caps: Optional[SectionCaps] = None,
        core_instructions: str = CORE_INSTRUCTIONS,
    ):
        self.total_budget = total_budget
        self.caps = caps or SectionCaps()
        self.core_instructions = core_instructions
        self.logger = logging.getLogger("SystemPromptBuilder")
        self.last_used_tokens = 0

    @classmethod
    def from_settings(cls, settings) -> "SystemPromptBuilder":
        return cls(
            total_budget=settings.system_reserve,
            caps=SectionCaps.from_settings(settings),
        )

    def build(
        self,
        template_focus: Optional[str] = None,
        summary: Optional[str] = None,
        memories: Optional[str] = None,
        proactive: Optional[str] = None,
        disabled_tools: Iterable[DisabledTool] = (),
    ) -> str:
        budget = PromptBudget(self.total_budget)
        sections: List[str] = []

        def add(text: Optional[str], cap: int, label: str) -> None:
            if not text:
                return
            accepted = budget.add(text, cap)
            if accepted is None:
                self.logger.debug("Section '%s' omitted: prompt budget exhausted", label)
                return
            sections.append(accepted)

        add(self.core_instructions, self.caps.core, "core")
        if template_focus:
            add(f"FOCUS: {template_focus}", self.caps.template, "template")
        if summary:
            add(f"CONVERSATION SUMMARY:\n{summary}", self.caps.summary, "summary")
        add(memories, self.caps.memories, "memories")
        add(proactive, self.caps.proactive, "proactive")
        add(self._format_disabled(disabled_tools), self.caps.disabled_tools, "disabled")

        self.last_used_tokens = budget.used_tokens
        return "\n\n".join(sections)

    @staticmethod
    def _format_disabled(disabled_tools: Iterable[DisabledTool]) -> Optional[str]:
        lines = [f"- {t.name}: {t.capability}" for t in disabled_tools]
        if not lines:
            return None
        return "DISABLED FEATURES (suggest enabling them in Settings):\n" + "\n".join(
            lines
        )
