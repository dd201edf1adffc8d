#!/usr/bin/env python3
"""
Context Exception Definitions for Concierge

All context-related exceptions inherit from ConciergeError.
"""

from typing import Any

from concierge.exceptions.base import ConciergeError


class ContextError(ConciergeError):
    """Base exception for context management errors."""

    pass


class ContextOverflowError(ContextError):
    """Raised when the backend reports that the context window is exceeded."""

    def __init__(self, message, current_tokens=None, max_tokens=None):
        super().__init__(message)
        self.current_tokens = current_tokens
        self.max_tokens = max_tokens


class ContextValidationError(ContextError):
    """Raised when context validation fails."""

    def __init__(
        self, message: str, validation_type: str = None, invalid_value: Any = None
    ):
        super().__init__(message)
        self.validation_type = validation_type
        self.invalid_value = invalid_value


class SummarizationError(ContextError):
    """Raised when a conversation summary cannot be produced."""

    pass


class ConversationStoreError(ContextError):
    """Raised when a conversation cannot be saved or loaded."""

    def __init__(self, message, session_id=None, original_error=None):
        super().__init__(message, original_error=original_error)
        self.session_id = session_id
