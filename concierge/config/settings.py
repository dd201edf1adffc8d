# concierge/config/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator
from pathlib import Path
import logging
from typing import Optional

from concierge.exceptions.config import ConfigError

logger = logging.getLogger("Settings")


class Settings(BaseSettings):
    # === Environment Variables (CLEAN NAMES) ===
    log_level: str = "INFO"
    llm_provider: str = "ollama"
    model_name: str = "llama3.2"
    ollama_host: str = "http://localhost:11434"
    ollama_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    llm_timeout: float = 120.0
    provider_max_tools: int = 10

    # === Agent Loop ===
    max_iterations: int = Field(default=10, ge=1)
    max_retries: int = Field(default=3, ge=1)
    base_retry_delay: float = Field(default=1.0, ge=0.0)
    tool_timeout: float = Field(default=30.0, gt=0.0)

    # === Token Budget ===
    context_window: int = 4096
    system_reserve: int = 500
    tool_schema_reserve: int = 400
    response_reserve: int = 1200
    summarization_threshold: float = 0.8

    # Per-section caps within system_reserve
    budget_core: int = 250
    budget_template: int = 60
    budget_summary: int = 100
    budget_memories: int = 80
    budget_proactive: int = 80
    budget_disabled_tools: int = 40

    # === Proactive Context ===
    proactive_context_enabled: bool = False
    prefetch_timeout: float = 2.0

    # === Persistence ===
    conversation_dir: Path = Field(default=Path(".concierge/sessions"))

    # === Pydantic V2 Configuration ===
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        # NO prefix - clean names match exactly
        extra="ignore",
        case_sensitive=False,
    )

    # === Model Validator ===

    @model_validator(mode="after")
    def validate_and_compute(self) -> "Settings":
        """Validate and normalize derived fields."""

        # 1. Validate log level
        if self.log_level.upper() not in logging._nameToLevel:
            raise ConfigError(
                f"Invalid log level: {self.log_level}",
                field_name="log_level",
                invalid_value=self.log_level,
            )
        self.log_level = self.log_level.upper()

        # 2. Validate provider selection
        normalized_provider = (self.llm_provider or "ollama").strip().lower()
        if normalized_provider not in {"ollama", "openrouter"}:
            raise ConfigError(
                "Invalid llm_provider value. Expected 'ollama' or 'openrouter'. "
                f"Got: {self.llm_provider}",
                field_name="llm_provider",
                invalid_value=self.llm_provider,
            )
        self.llm_provider = normalized_provider

        if self.llm_provider == "openrouter" and not self.openrouter_api_key:
            raise ConfigError(
                "OPENROUTER_API_KEY is required when LLM_PROVIDER=openrouter.",
                field_name="openrouter_api_key",
            )

        # 3. Budget sanity
        if self.max_history_tokens <= 0:
            raise ConfigError(
                "context_window is too small for the configured reserves "
                f"({self.context_window} <= {self.reserved_tokens})",
                field_name="context_window",
                invalid_value=self.context_window,
            )
        if not 0.0 < self.summarization_threshold <= 1.0:
            raise ConfigError(
                "summarization_threshold must be in (0, 1]",
                field_name="summarization_threshold",
                invalid_value=self.summarization_threshold,
            )

        return self

    # === Convenience Properties ===

    @property
    def reserved_tokens(self) -> int:
        return self.system_reserve + self.tool_schema_reserve + self.response_reserve

    @property
    def max_history_tokens(self) -> int:
        """Tokens left for conversation history after all reserves."""
        return self.context_window - self.reserved_tokens


def load_settings(env_file: Optional[Path] = None, **overrides) -> Settings:
    """Create Settings, optionally from a specific .env file."""
    if env_file is not None:
        return Settings(_env_file=env_file, **overrides)
    return Settings(**overrides)
