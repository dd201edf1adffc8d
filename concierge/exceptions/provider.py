#!/usr/bin/env python3
"""
Provider Exception Classes
==========================

Provider-specific exception classes for proper error handling
in the multi-provider architecture.
"""

from typing import Optional
from .base import ConciergeError


class ProviderError(ConciergeError):
    """
    Base exception for all provider-related errors.

    This is the parent class for all provider-specific exceptions
    and provides common functionality for provider error handling.
    """

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        model_name: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)

        if "provider_name" not in self.details and provider_name:
            self.details["provider_name"] = provider_name
        if "model_name" not in self.details and model_name:
            self.details["model_name"] = model_name


class ProviderConfigurationError(ProviderError):
    """
    Raised when provider configuration is invalid or missing.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.user_hint = (
            "The provider configuration is invalid. "
            "Please check your configuration files and environment variables."
        )


class ProviderRateLimitError(ProviderError):
    """
    Raised when provider rate limits are exceeded.

    This exception includes retry information and guidance
    for handling rate limiting scenarios.
    """

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        limit_type: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)

        if retry_after is not None:
            self.details["retry_after_seconds"] = retry_after
        if limit_type:
            self.details["limit_type"] = limit_type

        if retry_after:
            self.user_hint = (
                f"Rate limit exceeded. Please wait {retry_after} seconds before trying again."
            )
        else:
            self.user_hint = (
                "Rate limit exceeded. Please wait before making additional requests."
            )


class ProviderConcurrencyError(ProviderRateLimitError):
    """
    Raised when the backend rejects a request because another one is
    still in progress on the same session.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(message, limit_type="concurrency", **kwargs)
        self.user_hint = "The assistant is busy with another request. Please try again."


class ProviderConnectionError(ProviderError):
    """
    Raised when the connection to the provider is lost or cannot be opened.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.user_hint = (
            "Failed to connect to the provider. "
            "Please check your internet connection and provider status."
        )


class ProviderResponseError(ProviderError):
    """
    Raised when provider response is invalid or malformed.
    """

    def __init__(self, message: str, response_data: Optional[dict] = None, **kwargs):
        super().__init__(message, **kwargs)

        if response_data:
            self.details["response_data"] = response_data

        self.user_hint = (
            "The provider returned an invalid response. "
            "This may be a temporary issue or provider API change."
        )
