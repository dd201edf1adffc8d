#!/usr/bin/env python3
"""
Model Exception Definitions for Concierge

All model-related exceptions inherit from ConciergeError.
"""

from concierge.exceptions.base import ConciergeError


class ModelError(ConciergeError):
    """Base exception for model-related errors."""

    pass


class ModelTimeoutError(ModelError):
    """Raised when a model request times out."""

    def __init__(self, message, timeout_seconds=None, details=None):
        super().__init__(message, details=details)
        self.timeout_seconds = timeout_seconds
        self.user_hint = "The model took too long to respond. Please try again."


class ModelRateLimitError(ModelError):
    """Raised when the model backend answers with a 429 status."""

    def __init__(self, message, retry_after=None, details=None):
        super().__init__(message, details=details)
        self.retry_after = retry_after or 60
        self.user_hint = f"Rate limit exceeded. Retry after {self.retry_after} seconds."
