"""Redis-backed key-value store.

Implements :class:`IKeyValueStore` over ``redis.asyncio`` with
``decode_responses=True`` so every value round-trips as ``str``.  Redis
enforces TTL expiry; this adapter never tracks time itself.
"""

from __future__ import annotations

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from ragler.interfaces.kv_store import IKeyValueStore
from ragler.utils.errors import UpstreamError

logger = structlog.get_logger(logger_name=__name__)

_SCAN_BATCH = 200


class RedisKeyValueStore(IKeyValueStore):
    """Key-value store backed by a Redis server.

    Parameters
    ----------
    url:
        Connection string, e.g. ``redis://localhost:6379/0``.
    client:
        Optional pre-built ``redis.asyncio.Redis`` (tests, shared pools).
    """

    def __init__(self, url: str = "redis://localhost:6379/0", client: redis.Redis | None = None) -> None:
        self._url = url
        self._client = client or redis.from_url(url, decode_responses=True)

    # ------------------------------------------------------------------
    # IKeyValueStore implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise self._wrap("get", key, exc) from exc

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl)
        except RedisError as exc:
            raise self._wrap("set", key, exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as exc:
            raise self._wrap("delete", key, exc) from exc

    async def scan_keys(self, pattern: str) -> list[str]:
        """Iterate with SCAN (never KEYS) so large keyspaces do not block Redis."""
        try:
            keys = [key async for key in self._client.scan_iter(match=pattern, count=_SCAN_BATCH)]
        except RedisError as exc:
            raise self._wrap("scan", pattern, exc) from exc
        return sorted(set(keys))

    async def zadd(self, key: str, score: float, member: str) -> None:
        try:
            await self._client.zadd(key, {member: score})
        except RedisError as exc:
            raise self._wrap("zadd", key, exc) from exc

    async def zrevrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        try:
            return list(await self._client.zrevrange(key, start, stop))
        except RedisError as exc:
            raise self._wrap("zrevrange", key, exc) from exc

    async def zrem(self, key: str, member: str) -> None:
        try:
            await self._client.zrem(key, member)
        except RedisError as exc:
            raise self._wrap("zrem", key, exc) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            logger.warning("redis_ping_failed", error=str(exc))
            return False

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("redis_closed")

    def get_provider_name(self) -> str:
        return "redis"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _wrap(self, op: str, key: str, exc: RedisError) -> UpstreamError:
        logger.error("redis_operation_failed", op=op, key=key, error=str(exc))
        return UpstreamError(
            message=f"Redis {op} failed for {key}: {exc}",
            provider_name=self.get_provider_name(),
            retryable=True,
        )
