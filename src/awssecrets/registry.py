"""Registry handing out one :class:`SecretHandler` per secret name."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Dict, Iterator, List

from .cache import SecretValueCache
from .client import SecretsManagerStore
from .config import Settings, load_settings
from .handler import SecretHandler, SecretStore
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


class SecretRegistry:
    """Memoizes handlers by secret name.

    A handler is created the first time its name is requested and lives as
    long as the registry; there is no eviction. All handlers share ``store``.
    """

    def __init__(self, store: SecretStore | None = None, *, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()
        self.store: SecretStore = store or SecretsManagerStore(settings=self.settings)
        self._handlers: Dict[str, SecretHandler] = {}

    def secret(self, secret_name: str) -> SecretHandler:
        """Return the handler for ``secret_name``, creating it on first use."""

        if not secret_name:
            raise ValueError("Secret name must be provided.")
        handler = self._handlers.get(secret_name)
        if handler is None:
            cache = SecretValueCache(ttl=self.settings.cache_ttl_seconds)
            handler = SecretHandler(secret_name, self.store, cache=cache)
            self._handlers[secret_name] = handler
            logger.debug("Created secret handler", extra={"secret_name": secret_name})
        return handler

    def names(self) -> List[str]:
        return list(self._handlers)

    def __contains__(self, secret_name: object) -> bool:
        return secret_name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[SecretHandler]:
        return iter(list(self._handlers.values()))


@lru_cache(maxsize=None)
def get_registry() -> SecretRegistry:
    """Return the process-wide registry, built from :func:`load_settings`."""

    settings = load_settings()
    if settings.log_level:
        configure_logging(settings.log_level)
    return SecretRegistry(settings=settings)


def reset_registry() -> None:
    """Drop the process-wide registry so the next lookup builds a fresh one."""

    get_registry.cache_clear()


def secret(secret_name: str) -> SecretHandler:
    """Shortcut for ``get_registry().secret(secret_name)``."""

    return get_registry().secret(secret_name)


__all__ = ["SecretRegistry", "get_registry", "reset_registry", "secret"]
