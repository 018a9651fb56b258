"""Abstract base class for the key-value store holding drafts and chat state.

Values are strings (JSON documents serialised by callers).  TTL expiry is
enforced by the store itself; callers must tolerate a key disappearing
between two reads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: RedisKeyValueStore, MemoryKeyValueStore
# Located in: ragler/providers/kv/
class IKeyValueStore(ABC):
    """Contract for string key-value storage with TTL and sorted sets."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored under *key*, or ``None`` if absent/expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store *value* under *key*.

        Parameters
        ----------
        key:
            Namespaced key, e.g. ``session:<id>``.
        value:
            String payload.
        ttl:
            Time-to-live in seconds.  ``None`` means no expiry.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*.  No-op when absent."""

    @abstractmethod
    async def scan_keys(self, pattern: str) -> list[str]:
        """Return keys matching a glob *pattern* (``*`` wildcard), sorted."""

    @abstractmethod
    async def zadd(self, key: str, score: float, member: str) -> None:
        """Add or update *member* in the sorted set *key* with *score*."""

    @abstractmethod
    async def zrevrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        """Return sorted-set members from highest to lowest score."""

    @abstractmethod
    async def zrem(self, key: str, member: str) -> None:
        """Remove *member* from the sorted set *key*."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return ``True`` if the store is reachable."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections held by the store."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"redis"``."""
