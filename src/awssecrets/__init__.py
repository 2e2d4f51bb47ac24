"""Cached, concurrency-safe access to AWS Secrets Manager secrets."""
from __future__ import annotations

from .cache import SecretValueCache
from .client import SecretsManagerStore, build_secretsmanager_client
from .config import Settings, load_settings
from .errors import AwsSecretsError, AwsSecretsManagerError, ConfigError, SecretValidationError
from .handler import SecretHandler, parse_value_secret
from .registry import SecretRegistry, get_registry, reset_registry, secret

__all__ = [
    "AwsSecretsError",
    "AwsSecretsManagerError",
    "ConfigError",
    "SecretHandler",
    "SecretRegistry",
    "SecretValidationError",
    "SecretValueCache",
    "SecretsManagerStore",
    "Settings",
    "build_secretsmanager_client",
    "get_registry",
    "load_settings",
    "parse_value_secret",
    "reset_registry",
    "secret",
]
