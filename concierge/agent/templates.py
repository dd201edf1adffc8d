"""
Conversation templates: a focus line for the system prompt, an optional
tool allow-list and an optional opening prompt.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, field_validator


class ConversationTemplate(BaseModel):
    id: str
    name: str
    system_prompt_focus: Optional[str] = None
    tool_names: Optional[List[str]] = None
    initial_prompt: Optional[str] = None

    @field_validator("tool_names")
    @classmethod
    def _dedupe_tools(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        return list(dict.fromkeys(value))

    def allows(self, tool_name: str) -> bool:
        return self.tool_names is None or tool_name in self.tool_names


BUILTIN_TEMPLATES: Dict[str, ConversationTemplate] = {
    t.id: t
    for t in (
        ConversationTemplate(
            id="morning_briefing",
            name="Morning Briefing",
            system_prompt_focus="Give a short morning briefing: weather, today's events and due reminders.",
            tool_names=["weather", "calendar", "reminders"],
            initial_prompt="Give me my morning briefing.",
        ),
        ConversationTemplate(
            id="quick_math",
            name="Quick Math",
            system_prompt_focus="Answer calculations precisely using the calculator tool.",
            tool_names=["calculator"],
        ),
        ConversationTemplate(
            id="research",
            name="Research",
            system_prompt_focus="Read the linked pages and summarize them accurately.",
            tool_names=["web_fetch"],
        ),
    )
}
