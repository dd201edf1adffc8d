"""
Long-term memory facts and their ranking for the system prompt.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Set

DEFAULT_CONFIDENCE = 0.5
PROMPT_LIMIT = 20
RELEVANT_LIMIT = 10
RECENCY_WINDOW_DAYS = 90


class MemoryCategory(str, Enum):
    PREFERENCE = "preference"
    ROUTINE = "routine"
    RELATIONSHIP = "relationship"
    FACT = "fact"
    OTHER = "other"


CATEGORY_BONUS = {
    MemoryCategory.PREFERENCE: 0.1,
    MemoryCategory.ROUTINE: 0.08,
    MemoryCategory.RELATIONSHIP: 0.06,
}
DEFAULT_CATEGORY_BONUS = 0.02


@dataclass
class Memory:
    content: str
    topics: List[str] = field(default_factory=list)
    confidence: Optional[float] = None
    category: MemoryCategory = MemoryCategory.FACT
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def effective_confidence(self) -> float:
        return DEFAULT_CONFIDENCE if self.confidence is None else self.confidence

    def render(self) -> str:
        if self.topics:
            return f"- {self.content} [{', '.join(self.topics)}]"
        return f"- {self.content}"


def format_memories(memories: Iterable[Memory]) -> Optional[str]:
    lines = [m.render() for m in memories]
    if not lines:
        return None
    return "USER FACTS:\n" + "\n".join(lines)


class MemoryProvider(ABC):
    """Source of long-term facts for the system prompt."""

    @abstractmethod
    def get_for_prompt(self) -> Optional[str]:
        """Facts ranked by confidence, or None when there are none."""

    @abstractmethod
    def get_relevant_for_conversation(self, topics: Iterable[str]) -> Optional[str]:
        """Facts ranked by relevance to the given topics."""


class InMemoryMemoryStore(MemoryProvider):
    """Process-local fact store."""

    def __init__(self, memories: Iterable[Memory] = ()):
        self._memories: List[Memory] = list(memories)

    def add(self, content: str, **kwargs) -> Memory:
        memory = Memory(content=content, **kwargs)
        self._memories.append(memory)
        return memory

    def remove(self, memory_id: str) -> None:
        self._memories = [m for m in self._memories if m.id != memory_id]

    def clear(self) -> None:
        self._memories.clear()

    def all(self) -> List[Memory]:
        return list(self._memories)

    def get_for_prompt(self) -> Optional[str]:
        ranked = sorted(
            self._memories, key=lambda m: m.effective_confidence, reverse=True
        )
        return format_memories(ranked[:PROMPT_LIMIT])

    def get_relevant_for_conversation(self, topics: Iterable[str]) -> Optional[str]:
        wanted = {t.lower() for t in topics}
        now = datetime.now(timezone.utc)
        ranked = sorted(
            self._memories,
            key=lambda m: self.relevance(m, wanted, now),
            reverse=True,
        )
        return format_memories(ranked[:RELEVANT_LIMIT])

    @staticmethod
    def relevance(memory: Memory, topics: Set[str], now: datetime) -> float:
        """Weighted score: topic overlap, confidence, recency, category."""
        if memory.topics:
            own = {t.lower() for t in memory.topics}
            overlap = len(own & topics) / len(own)
            topic_score = 0.4 * overlap
        else:
            topic_score = 0.04

        age_days = max(0.0, (now - memory.created_at).total_seconds() / 86400)
        recency = max(0.0, 1.0 - age_days / RECENCY_WINDOW_DAYS)

        return (
            topic_score
            + 0.3 * memory.effective_confidence
            + 0.2 * recency
            + CATEGORY_BONUS.get(memory.category, DEFAULT_CATEGORY_BONUS)
        )
