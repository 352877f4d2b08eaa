"""Custom exception hierarchy for Taleforge.

All exceptions inherit from TaleforgeError so callers can handle every
application failure at one boundary while keeping domain context in
``details``. Parsing and normalization never raise these past their own
boundary; only the model transport lets errors reach the top-level caller.

Example:
    >>> from taleforge.core.exceptions import DiceRollError
    >>> raise DiceRollError("Invalid dice notation", expression="2x6")
"""

from __future__ import annotations

from typing import Any


class TaleforgeError(Exception):
    """Base exception for all Taleforge errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with optional details.

        Returns:
            Formatted error message including any provided details.
        """
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        """Return a detailed string representation of the exception."""
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# =============================================================================
# Game Engine Domain Exceptions
# =============================================================================


class GameEngineError(TaleforgeError):
    """Base exception for rules, dice and roll resolution errors."""


class DiceRollError(GameEngineError):
    """Raised when dice notation cannot be parsed or a roll is impossible.

    The roll resolver catches this per roll, so a malformed damage notation
    drops only that roll from its batch.
    """

    def __init__(
        self,
        message: str,
        *,
        expression: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize dice roll error with expression context.

        Args:
            message: Human-readable error description.
            expression: The dice expression that caused the error.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if expression is not None:
            combined_details["expression"] = expression
        super().__init__(message, details=combined_details)


# =============================================================================
# AI Control Domain Exceptions
# =============================================================================


class AIControlError(TaleforgeError):
    """Base exception for all model transport errors."""

    def __init__(
        self,
        message: str,
        *,
        model: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize AI control error with model context.

        Args:
            message: Human-readable error description.
            model: Name of the AI model involved.
            provider: Name of the AI provider (e.g., 'gemini', 'openai').
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if model:
            combined_details["model"] = model
        if provider:
            combined_details["provider"] = provider
        super().__init__(message, details=combined_details)


class AIConnectionError(AIControlError):
    """Raised when the model provider cannot be reached."""


class AIResponseError(AIControlError):
    """Raised when the provider answers with an error status or no content."""


class AIRateLimitError(AIControlError):
    """Raised when rate limits persist after all retries."""

    def __init__(
        self,
        message: str,
        *,
        retry_after_seconds: float | None = None,
        model: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize rate limit error with retry context.

        Args:
            message: Human-readable error description.
            retry_after_seconds: Seconds to wait before retrying.
            model: Name of the AI model involved.
            provider: Name of the AI provider.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if retry_after_seconds is not None:
            combined_details["retry_after_seconds"] = retry_after_seconds
        super().__init__(message, model=model, provider=provider, details=combined_details)


class TurnCancelledError(AIControlError):
    """Raised when the caller cancels an in-flight model call.

    Dice already rolled in the turn keep their dispatched records;
    cancellation only stops future narration.
    """


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(TaleforgeError):
    """Raised when application configuration is invalid or incomplete."""

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize configuration error with config key context.

        Args:
            message: Human-readable error description.
            config_key: The configuration key that caused the error.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if config_key:
            combined_details["config_key"] = config_key
        super().__init__(message, details=combined_details)


__all__ = [
    "TaleforgeError",
    "GameEngineError",
    "DiceRollError",
    "AIControlError",
    "AIConnectionError",
    "AIResponseError",
    "AIRateLimitError",
    "TurnCancelledError",
    "ConfigurationError",
]
