"""Abstract base class for the vector index receiving published fragments.

Filters are flat payload matches expressed as dotted-path equality, e.g.
``{"doc.source_id": "ab12..."}``; implementations translate them into the
backend's native filter language.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ragler.models.payload import VectorPoint


class ScrollPage:
    """One page of a scroll over index entries.

    Attributes
    ----------
    points:
        ``{"id": ..., "payload": {...}}`` dicts (vectors are not returned).
    next_offset:
        Opaque offset for the next page, or ``None`` when exhausted.
    """

    def __init__(self, points: list[dict[str, Any]], next_offset: Any | None = None) -> None:
        self._points = list(points)
        self._next_offset = next_offset

    @property
    def points(self) -> list[dict[str, Any]]:
        return list(self._points)

    @property
    def next_offset(self) -> Any | None:
        return self._next_offset


# Concrete implementation: QdrantVectorIndex (ragler/providers/vector/)
class IVectorIndex(ABC):
    """Contract for vector-index storage used by publishing and collection browsing."""

    @abstractmethod
    async def collection_exists(self, collection: str) -> bool:
        """Return ``True`` if *collection* exists in the backend."""

    @abstractmethod
    async def ensure_collection(self, collection: str, dimension: int) -> None:
        """Create *collection* with fixed vector *dimension* if it does not exist."""

    @abstractmethod
    async def upsert(self, collection: str, points: list[VectorPoint]) -> None:
        """Insert or overwrite *points*.

        Raises
        ------
        ragler.utils.errors.UpstreamError
            If the index rejects the write.
        """

    @abstractmethod
    async def delete_by_filter(self, collection: str, filters: dict[str, Any]) -> None:
        """Delete every entry whose payload matches *filters*."""

    @abstractmethod
    async def delete_points(self, collection: str, ids: list[str]) -> None:
        """Delete entries by id."""

    @abstractmethod
    async def scroll(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: Any | None = None,
        order_by: str | None = None,
    ) -> ScrollPage:
        """Page through entries matching *filters* (payload only)."""

    @abstractmethod
    async def get_points(self, collection: str, ids: list[str]) -> list[dict[str, Any]]:
        """Return ``{"id", "payload"}`` dicts for the ids that exist, in request order."""

    @abstractmethod
    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
        filters: dict[str, Any] | None = None,
        exclude: dict[str, Any] | None = None,
        score_threshold: float | None = None,
    ) -> list[dict[str, Any]]:
        """Nearest entries to *vector*, best first, as ``{"id", "score", "payload"}``.

        *exclude* uses the same shape as *filters* and drops matching entries.
        """

    @abstractmethod
    async def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        """Return the exact number of entries matching *filters*."""

    @abstractmethod
    async def set_payload(
        self,
        collection: str,
        payload: dict[str, Any],
        filters: dict[str, Any] | None = None,
        ids: list[str] | None = None,
    ) -> None:
        """Merge *payload* into entries selected by *filters* or *ids*."""

    @abstractmethod
    async def delete_collection(self, collection: str) -> None:
        """Drop *collection* and every entry in it."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return ``True`` if the index is reachable."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying client."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"qdrant"``."""
