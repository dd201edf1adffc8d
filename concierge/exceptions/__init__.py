#!/usr/bin/env python3
"""
Concierge Exceptions Package

Unified exception hierarchy for the Concierge agent.
"""

# Base exceptions
from .base import ConciergeError, wrap_exception

# Agent exceptions
from .agent import (
    AgentError,
    MaxIterationsReachedError,
    NoProviderError,
    OrchestrationError,
)

# Model exceptions
from .model import ModelError, ModelRateLimitError, ModelTimeoutError

# Provider exceptions
from .provider import (
    ProviderConcurrencyError,
    ProviderConfigurationError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
)

# Tool exceptions
from .tools import (
    ToolError,
    ToolExecutionError,
    ToolInputValidationError,
    ToolNotFoundError,
    ToolRegistryError,
)

# Context exceptions
from .context import (
    ContextError,
    ContextOverflowError,
    ContextValidationError,
    ConversationStoreError,
    SummarizationError,
)

# Config / bus exceptions
from .config import ConfigError
from .bus import EventBusError


__all__ = [
    # Base
    "ConciergeError",
    "wrap_exception",
    # Agent
    "AgentError",
    "MaxIterationsReachedError",
    "NoProviderError",
    "OrchestrationError",
    # Model
    "ModelError",
    "ModelRateLimitError",
    "ModelTimeoutError",
    # Provider
    "ProviderError",
    "ProviderConfigurationError",
    "ProviderRateLimitError",
    "ProviderConcurrencyError",
    "ProviderConnectionError",
    "ProviderResponseError",
    # Tool
    "ToolError",
    "ToolExecutionError",
    "ToolInputValidationError",
    "ToolNotFoundError",
    "ToolRegistryError",
    # Context
    "ContextError",
    "ContextOverflowError",
    "ContextValidationError",
    "ConversationStoreError",
    "SummarizationError",
    # Config / bus
    "ConfigError",
    "EventBusError",
]
