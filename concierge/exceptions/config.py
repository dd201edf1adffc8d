#!/usr/bin/env python3
"""
Configuration Exception Definitions for Concierge
"""

from concierge.exceptions.base import ConciergeError


class ConfigError(ConciergeError):
    """Raised when settings fail validation."""

    def __init__(self, message, field_name=None, invalid_value=None):
        super().__init__(message, user_hint="Check your .env file and environment variables.")
        self.field_name = field_name
        self.invalid_value = invalid_value
