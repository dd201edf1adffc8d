#!/usr/bin/env python3
"""
History Trimmer Module
======================
Keeps the conversation history under its token ceiling.
Removes the lowest-priority messages first (user, then assistant, then tool;
oldest first) and requests a background summary once usage passes the
summarization threshold.
"""

import logging
from typing import List, Optional

from concierge.agent.context.summarizer import SummaryState, build_transcript
from concierge.agent.structs import ContextStats, Message, Role
from concierge.utils.token_estimation import estimate_messages, estimate_tokens

# Removal order, lowest priority first.
REMOVAL_ORDER = (Role.USER, Role.ASSISTANT, Role.TOOL)

PROTECTED_TAIL = 2
SUMMARY_KEEP_RECENT = 4


class HistoryTrimmer:
    """Priority-based trimming of the message list, in place."""

    def __init__(
        self,
        max_history_tokens: int,
        summary_state: Optional[SummaryState] = None,
        summarization_threshold: float = 0.8,
        system_reserve: int = 500,
    ):
        self.max_history_tokens = max_history_tokens
        self.summary_state = summary_state or SummaryState()
        self.summarization_threshold = summarization_threshold
        self.system_reserve = system_reserve
        self.trimmed_count = 0
        self.logger = logging.getLogger("HistoryTrimmer")

    @classmethod
    def from_settings(cls, settings, summary_state: Optional[SummaryState] = None):
        return cls(
            max_history_tokens=settings.max_history_tokens,
            summary_state=summary_state,
            summarization_threshold=settings.summarization_threshold,
            system_reserve=settings.system_reserve,
        )

    @staticmethod
    def _non_system(messages: List[Message]) -> List[Message]:
        return [m for m in messages if m.role != Role.SYSTEM]

    def history_tokens(self, messages: List[Message]) -> int:
        return estimate_messages(self._non_system(messages))

    def trim(self, messages: List[Message]) -> int:
        """
        Trim `messages` in place.

        Returns:
            int: Number of messages removed by this call.
        """
        if len(messages) <= 2:
            return 0

        history_cost = self.history_tokens(messages)
        self._maybe_request_summary(messages, history_cost)

        removed = 0
        iterations = 0
        max_iterations = len(messages)
        while (
            history_cost > self.max_history_tokens
            and len(messages) > 3
            and iterations < max_iterations
        ):
            iterations += 1
            index = self._find_removable(messages)
            if index is None:
                self.logger.debug("No eligible message to trim; stopping early")
                break
            victim = messages.pop(index)
            history_cost -= estimate_tokens(victim.content)
            removed += 1

        if removed:
            self.trimmed_count += removed
            self.logger.info(
                "Trimmed %d messages (total trimmed: %d, history tokens: %d/%d)",
                removed,
                self.trimmed_count,
                history_cost,
                self.max_history_tokens,
            )
        return removed

    def _maybe_request_summary(self, messages: List[Message], history_cost: int) -> None:
        if self.max_history_tokens <= 0:
            return
        ratio = history_cost / self.max_history_tokens
        if ratio < self.summarization_threshold or not self.summary_state.can_request():
            return
        older = self._non_system(messages)[:-SUMMARY_KEEP_RECENT]
        if older:
            self.summary_state.request(build_transcript(older))

    @staticmethod
    def _find_removable(messages: List[Message]) -> Optional[int]:
        non_system_indices = [
            i for i, m in enumerate(messages) if m.role != Role.SYSTEM
        ]
        eligible = non_system_indices[:-PROTECTED_TAIL]
        for role in REMOVAL_ORDER:
            for i in eligible:
                if messages[i].role == role:
                    return i
        return None

    async def aggressive_trim(self, messages: List[Message], provider=None) -> int:
        """
        Out-of-budget recovery: summarize everything except the last two
        non-system messages, drop it, and reset the backend session.

        Returns:
            int: Number of messages removed.
        """
        non_system = self._non_system(messages)
        older = non_system[:-PROTECTED_TAIL]
        if not older:
            return 0

        await self.summary_state.summarize_now(build_transcript(older))

        keep = [m for m in messages if m.role == Role.SYSTEM] + non_system[-PROTECTED_TAIL:]
        messages[:] = keep
        self.trimmed_count += len(older)
        self.logger.warning(
            "Aggressive trim removed %d messages (total trimmed: %d)",
            len(older),
            self.trimmed_count,
        )

        if provider is not None:
            await provider.reset_session()
        return len(older)

    def reset(self) -> None:
        self.trimmed_count = 0
        self.summary_state.clear()

    def stats(self, messages: List[Message]) -> ContextStats:
        by_role = {role: 0 for role in Role}
        for msg in messages:
            by_role[msg.role] += estimate_tokens(msg.content)
        current = sum(by_role.values())
        max_tokens = self.max_history_tokens + self.system_reserve
        usage = min(1.0, current / max_tokens) if max_tokens > 0 else 1.0
        return ContextStats(
            current_tokens=current,
            max_tokens=max_tokens,
            usage_percent=usage,
            system_tokens=by_role[Role.SYSTEM],
            user_tokens=by_role[Role.USER],
            assistant_tokens=by_role[Role.ASSISTANT],
            tool_tokens=by_role[Role.TOOL],
            message_count=len(messages),
            trimmed_count=self.trimmed_count,
        )
