"""Per-handler cache of in-flight and completed secret value lookups."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .config import DEFAULT_CACHE_TTL_SECONDS


@dataclass
class CacheEntry:
    expires_at: float
    value: Optional[Any]


class SecretValueCache:
    """Maps ``version_id -> version_stage -> CacheEntry``.

    Values are usually :class:`asyncio.Future` handles that may still be
    pending; storing them before they resolve is what lets concurrent callers
    share one remote call. Expiry is checked lazily in :meth:`get` and entries
    are never deleted, only emptied.
    """

    def __init__(
        self,
        *,
        ttl: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Dict[str, CacheEntry]] = {}

    def set(self, version_id: str, version_stage: str, value: Any) -> None:
        """Store ``value`` under the version coordinate, expiring after ``ttl``."""

        stages = self._entries.setdefault(version_id, {})
        stages[version_stage] = CacheEntry(expires_at=self._clock() + self.ttl, value=value)

    def get(self, version_id: str, version_stage: str) -> Optional[Any]:
        """Return the cached handle, or ``None`` if absent, cleared or expired."""

        entry = self._entries.get(version_id, {}).get(version_stage)
        if entry is None or entry.value is None:
            return None
        if entry.expires_at >= self._clock():
            return entry.value
        return None

    def clear(self, version_id: str, version_stage: str) -> None:
        entry = self._entries.get(version_id, {}).get(version_stage)
        if entry is not None:
            entry.value = None

    def discard(self, version_id: str, version_stage: str, value: Any) -> bool:
        """Clear the entry only while it still holds ``value``.

        Returns ``True`` when the entry was cleared.
        """

        entry = self._entries.get(version_id, {}).get(version_stage)
        if entry is None or entry.value is not value:
            return False
        entry.value = None
        return True


__all__ = ["CacheEntry", "SecretValueCache"]
