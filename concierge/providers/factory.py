"""Provider factory helpers."""

from concierge.config.settings import Settings
from concierge.providers.base import BaseProvider


def create_provider(settings: Settings) -> BaseProvider:
    """Instantiate the configured provider implementation."""
    provider_name = (getattr(settings, "llm_provider", "ollama") or "ollama").lower()
    if provider_name == "openrouter":
        from concierge.providers.openrouter import OpenRouterProvider

        return OpenRouterProvider(settings)

    from concierge.providers.ollama import OllamaProvider

    return OllamaProvider(settings)
