"""Configuration management for Taleforge.

This module provides centralized configuration management using pydantic-settings,
supporting environment variables, .env files, and runtime configuration overrides.
API keys are held as SecretStr and only unwrapped by the model transport.

Example:
    >>> from taleforge.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.game.max_roll_depth
    3

Environment Variables:
    TALEFORGE_PROVIDER: Model provider (openai, openrouter, gemini)
    TALEFORGE_OPENAI_API_KEY: OpenAI API key
    TALEFORGE_OPENROUTER_API_KEY: OpenRouter API key
    TALEFORGE_GEMINI_API_KEY: Google Gemini API key
    TALEFORGE_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    TALEFORGE_GAME_MAX_ROLL_DEPTH: Chained follow-up turns per user action
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from taleforge.core.constants import DEFAULT_DC, MAX_ROLL_DEPTH, NPC_MODIFIER_RANGE
from taleforge.core.exceptions import ConfigurationError


ProviderName = Literal["openai", "openrouter", "gemini"]


class AIProviderSettings(BaseSettings):
    """Configuration for the model provider connection.

    Attributes:
        provider: Which OpenAI-compatible provider to talk to.
        openai_api_key: OpenAI API key.
        openrouter_api_key: OpenRouter API key.
        gemini_api_key: Google Gemini API key.
        model: Model identifier; None picks the provider default.
        temperature: Sampling temperature.
        max_tokens: Completion token cap.
        max_retries: Maximum API retry attempts.
        timeout_seconds: API request timeout in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="TALEFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider: ProviderName = Field(
        default="openai",
        description="Model provider to use",
    )
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI API key",
    )
    openrouter_api_key: SecretStr | None = Field(
        default=None,
        description="OpenRouter API key",
    )
    gemini_api_key: SecretStr | None = Field(
        default=None,
        description="Google Gemini API key",
    )
    model: str | None = Field(
        default=None,
        description="Model identifier (provider default when unset)",
    )
    temperature: float = Field(
        default=0.9,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )
    max_tokens: int = Field(
        default=4096,
        ge=1,
        description="Maximum completion tokens",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum API retry attempts",
    )
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=300,
        description="API request timeout",
    )

    def api_key_for(self, provider: str | None = None) -> SecretStr | None:
        """Return the configured key for a provider.

        Args:
            provider: Provider name; defaults to the active provider.

        Returns:
            The secret key, or None when that provider has no key.
        """
        name = provider or self.provider
        return {
            "openai": self.openai_api_key,
            "openrouter": self.openrouter_api_key,
            "gemini": self.gemini_api_key,
        }.get(name)


class GameSettings(BaseSettings):
    """Configuration for roll resolution and conversation behavior.

    Attributes:
        max_roll_depth: Chained automatic follow-up turns per user action.
        default_dc: Difficulty class used when the model omits one.
        npc_modifier_min: Lower bound of the hidden NPC modifier.
        npc_modifier_max: Upper bound of the hidden NPC modifier.
        message_window: Messages of history sent to the model.
    """

    model_config = SettingsConfigDict(
        env_prefix="TALEFORGE_GAME_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    max_roll_depth: int = Field(
        default=MAX_ROLL_DEPTH,
        ge=1,
        le=10,
        description="Maximum chained follow-up turns",
    )
    default_dc: int = Field(
        default=DEFAULT_DC,
        ge=1,
        le=40,
        description="Default difficulty class",
    )
    npc_modifier_min: int = Field(
        default=NPC_MODIFIER_RANGE[0],
        description="Minimum hidden NPC modifier",
    )
    npc_modifier_max: int = Field(
        default=NPC_MODIFIER_RANGE[1],
        description="Maximum hidden NPC modifier",
    )
    message_window: int = Field(
        default=30,
        ge=1,
        le=200,
        description="History messages sent with each request",
    )

    @model_validator(mode="after")
    def validate_npc_modifier_range(self) -> "GameSettings":
        """Ensure the NPC modifier range is not inverted.

        Returns:
            Self if validation passes.

        Raises:
            ConfigurationError: If npc_modifier_min > npc_modifier_max.
        """
        if self.npc_modifier_min > self.npc_modifier_max:
            raise ConfigurationError(
                f"npc_modifier_min ({self.npc_modifier_min}) must not exceed "
                f"npc_modifier_max ({self.npc_modifier_max})",
                config_key="npc_modifier_min",
            )
        return self


class Settings(BaseSettings):
    """Main application settings aggregating all configuration domains.

    Attributes:
        app_name: Application name.
        app_version: Application version string.
        debug: Enable debug mode.
        log_level: Application logging level.
        log_json: Render logs as JSON instead of the console format.
        ai: Model provider settings.
        game: Roll resolution settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="TALEFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application metadata
    app_name: str = Field(
        default="Taleforge",
        description="Application name",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Emit JSON log lines",
    )

    ai: AIProviderSettings = Field(default_factory=AIProviderSettings)
    game: GameSettings = Field(default_factory=GameSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production mode.

        Returns:
            True if not in debug mode.
        """
        return not self.debug


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The application Settings instance.

    Raises:
        ConfigurationError: If required configuration is missing or invalid.
    """
    try:
        return Settings()
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(
            f"Failed to load application settings: {exc}",
            details={"original_error": str(exc)},
        ) from exc


def clear_settings_cache() -> None:
    """Clear the settings cache, forcing a reload on next access.

    Example:
        >>> clear_settings_cache()
        >>> settings = get_settings()  # Reloads from environment
    """
    get_settings.cache_clear()


__all__ = [
    "ProviderName",
    "AIProviderSettings",
    "GameSettings",
    "Settings",
    "get_settings",
    "clear_settings_cache",
]
