"""Key-value store adapters.

RedisKeyValueStore  -- production store (redis.asyncio).
MemoryKeyValueStore -- in-process store for development and tests.
"""

from ragler.providers.kv.memory_store import MemoryKeyValueStore
from ragler.providers.kv.redis_store import RedisKeyValueStore

__all__ = ["MemoryKeyValueStore", "RedisKeyValueStore"]
