"""In-memory key-value store using cachetools.TLRUCache.

Suitable for development, single-process deployments and tests.  Unlike a
plain ``TTLCache`` the time-aware LRU cache computes expiry per item, so
``set(..., ttl=...)`` is honoured for each key.
"""

from __future__ import annotations

import fnmatch
import math
from typing import Any

import structlog
from cachetools import TLRUCache

from ragler.interfaces.kv_store import IKeyValueStore

logger = structlog.get_logger(logger_name=__name__)


def _time_to_use(_key: str, value: tuple[str, int | None], now: float) -> float:
    ttl = value[1]
    return math.inf if ttl is None else now + ttl


class MemoryKeyValueStore(IKeyValueStore):
    """In-process key-value store with per-key TTL.

    Parameters
    ----------
    max_size:
        Maximum number of string entries before the least-recently-used
        one is evicted.
    timer:
        Clock used for expiry; tests inject a fake to step time forward.
    """

    def __init__(self, max_size: int = 10000, timer: Any = None) -> None:
        cache_kwargs: dict[str, Any] = {"maxsize": max_size, "ttu": _time_to_use}
        if timer is not None:
            cache_kwargs["timer"] = timer
        self._cache: TLRUCache[str, tuple[str, int | None]] = TLRUCache(**cache_kwargs)
        self._sorted_sets: dict[str, dict[str, float]] = {}

    # ------------------------------------------------------------------
    # IKeyValueStore implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        entry = self._cache.get(key)
        return entry[0] if entry is not None else None

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        self._cache[key] = (value, ttl)
        logger.debug("kv_set", key=key, ttl=ttl)

    async def delete(self, key: str) -> None:
        self._cache.pop(key, None)
        self._sorted_sets.pop(key, None)

    async def scan_keys(self, pattern: str) -> list[str]:
        self._cache.expire()
        return sorted(key for key in list(self._cache.keys()) if fnmatch.fnmatchcase(key, pattern))

    async def zadd(self, key: str, score: float, member: str) -> None:
        self._sorted_sets.setdefault(key, {})[member] = score

    async def zrevrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        members = self._sorted_sets.get(key, {})
        ordered = [m for m, _ in sorted(members.items(), key=lambda item: (-item[1], item[0]))]
        end = None if stop == -1 else stop + 1
        return ordered[start:end]

    async def zrem(self, key: str, member: str) -> None:
        self._sorted_sets.get(key, {}).pop(member, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._cache.clear()
        self._sorted_sets.clear()

    def get_provider_name(self) -> str:
        return "memory"
