#!/usr/bin/env python3
"""
Heuristic Token Estimation for the Concierge Agent

Character-based proxy for context-window cost. Not a tokenizer:
- Latin-heavy text: ~4 characters per token
- Dense scripts (CJK etc.): ~1 character per token
"""

from typing import Iterable, Optional

CHARS_PER_TOKEN = 4


def estimate_tokens(text: Optional[str]) -> int:
    """
    Estimate tokens for a single string.

    Args:
        text: Text to estimate; None and "" cost nothing.

    Returns:
        int: Non-negative token estimate.
    """
    if not text:
        return 0
    length = len(text)
    ascii_count = sum(1 for ch in text if ord(ch) < 128)
    if ascii_count > length // 2:
        return max(1, length // CHARS_PER_TOKEN)
    return length


def estimate_messages(messages: Iterable) -> int:
    """Sum of content estimates for a message list."""
    return sum(estimate_tokens(m.content) for m in messages)
