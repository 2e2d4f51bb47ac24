"""Exception hierarchy for the secrets package."""
from __future__ import annotations

from typing import Any


class AwsSecretsError(RuntimeError):
    """Base exception that carries structured context."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = context or {}


class AwsSecretsManagerError(AwsSecretsError):
    """Raised by secret handlers when a read or write fails.

    The failure that caused it (remote error, decode error, invalid input) is
    kept on ``previous_error`` and is also chained as ``__cause__``.
    """

    def __init__(self, error: BaseException | str, *, context: dict[str, Any] | None = None) -> None:
        message = str(error) if isinstance(error, BaseException) else error
        super().__init__(message or type(error).__name__, context=context)
        self.previous_error: BaseException | None = (
            error if isinstance(error, BaseException) else None
        )


class SecretValidationError(ValueError):
    """Raised when a value handed to ``update_value`` cannot be stored."""


class ConfigError(AwsSecretsError):
    """Raised when configuration validation fails."""


__all__ = [
    "AwsSecretsError",
    "AwsSecretsManagerError",
    "SecretValidationError",
    "ConfigError",
]
