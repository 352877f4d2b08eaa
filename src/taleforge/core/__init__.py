"""Core module providing configuration, logging, and base exceptions.

Exports:
    Exceptions:
        TaleforgeError: Base exception for all application errors.
        DiceRollError: Impossible or malformed dice.
        AIControlError: Model transport errors and their subclasses.
        ConfigurationError: Invalid or missing configuration.

    Configuration:
        Settings: Main application settings class.
        get_settings: Get the settings singleton.
        clear_settings_cache: Force settings reload.

    Logging:
        configure_logging: Set up application logging.
        configure_from_settings: Set up logging from Settings.
        get_logger: Get a configured logger instance.
        bind_context: Add context to log entries.
        clear_context: Clear logging context.
"""

from __future__ import annotations

from taleforge.core.config import (
    AIProviderSettings,
    GameSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)
from taleforge.core.exceptions import (
    AIConnectionError,
    AIControlError,
    AIRateLimitError,
    AIResponseError,
    ConfigurationError,
    DiceRollError,
    GameEngineError,
    TaleforgeError,
    TurnCancelledError,
)
from taleforge.core.logging import (
    bind_context,
    clear_context,
    configure_from_settings,
    configure_logging,
    get_logger,
)


__all__ = [
    # Base exception
    "TaleforgeError",
    # Game engine exceptions
    "GameEngineError",
    "DiceRollError",
    # AI control exceptions
    "AIControlError",
    "AIConnectionError",
    "AIResponseError",
    "AIRateLimitError",
    "TurnCancelledError",
    # Configuration exceptions
    "ConfigurationError",
    # Configuration
    "Settings",
    "AIProviderSettings",
    "GameSettings",
    "get_settings",
    "clear_settings_cache",
    # Logging
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "bind_context",
    "clear_context",
]
