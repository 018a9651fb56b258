"""Qdrant-backed implementation of :class:`IVectorIndex`.

Payload filters arrive as flat ``{"dotted.path": value}`` dicts and are
translated into Qdrant ``must`` conditions.  Every write waits for the
server to apply it (``wait=True``) so the publish engine can rely on
insert-then-delete ordering.
"""

from __future__ import annotations

from typing import Any

import structlog
from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models as qm
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from ragler.interfaces.vector_index import IVectorIndex, ScrollPage
from ragler.models.payload import VectorPoint
from ragler.utils.errors import NotFoundError, UpstreamError

logger = structlog.get_logger(logger_name=__name__)

# Payload fields indexed on collection creation.  The publish engine
# filters on the source id; browsing and search filter on the rest.
_KEYWORD_INDEXES = ("doc.source_id", "doc.source_type", "chunk.type", "chunk.lang", "tags")


def _conditions(filters: dict[str, Any] | None) -> list[qm.Condition]:
    conditions: list[qm.Condition] = []
    for key, value in (filters or {}).items():
        if isinstance(value, (list, tuple, set)):
            conditions.append(qm.FieldCondition(key=key, match=qm.MatchAny(any=list(value))))
        else:
            conditions.append(qm.FieldCondition(key=key, match=qm.MatchValue(value=value)))
    return conditions


def build_filter(
    filters: dict[str, Any] | None, exclude: dict[str, Any] | None = None
) -> qm.Filter | None:
    """Translate ``{"doc.source_id": "abc"}`` into a Qdrant ``Filter``.

    *exclude* becomes ``must_not`` conditions.
    """
    must = _conditions(filters)
    must_not = _conditions(exclude)
    if not must and not must_not:
        return None
    return qm.Filter(must=must or None, must_not=must_not or None)


class QdrantVectorIndex(IVectorIndex):
    """Vector index adapter backed by Qdrant.

    Parameters
    ----------
    url:
        Qdrant REST endpoint.
    api_key:
        Optional API key for managed deployments.
    client:
        Pre-built ``AsyncQdrantClient`` (tests, shared clients).
    """

    def __init__(
        self,
        url: str = "http://localhost:6333",
        api_key: str | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        self._client = client or AsyncQdrantClient(url=url, api_key=api_key or None)

    # ------------------------------------------------------------------
    # IVectorIndex implementation
    # ------------------------------------------------------------------

    async def collection_exists(self, collection: str) -> bool:
        try:
            return bool(await self._client.collection_exists(collection_name=collection))
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise self._wrap("collection_exists", collection, exc) from exc

    async def ensure_collection(self, collection: str, dimension: int) -> None:
        try:
            if await self._client.collection_exists(collection_name=collection):
                return
            await self._client.create_collection(
                collection_name=collection,
                vectors_config=qm.VectorParams(size=dimension, distance=qm.Distance.COSINE),
            )
            for field_name in _KEYWORD_INDEXES:
                await self._client.create_payload_index(
                    collection_name=collection,
                    field_name=field_name,
                    field_schema=qm.PayloadSchemaType.KEYWORD,
                )
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise self._wrap("ensure_collection", collection, exc) from exc
        logger.info("qdrant_collection_created", collection=collection, dimension=dimension)

    async def upsert(self, collection: str, points: list[VectorPoint]) -> None:
        if not points:
            return
        structs = [
            qm.PointStruct(id=point.id, vector=point.vector, payload=point.payload)
            for point in points
        ]
        try:
            await self._client.upsert(collection_name=collection, points=structs, wait=True)
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise self._wrap("upsert", collection, exc) from exc
        logger.info("qdrant_upsert", collection=collection, points=len(structs))

    async def delete_by_filter(self, collection: str, filters: dict[str, Any]) -> None:
        qfilter = build_filter(filters)
        if qfilter is None:
            # An empty filter would match every point in the collection.
            raise UpstreamError(
                message="Refusing to delete with an empty filter",
                provider_name=self.get_provider_name(),
                retryable=False,
            )
        try:
            await self._client.delete(
                collection_name=collection,
                points_selector=qm.FilterSelector(filter=qfilter),
                wait=True,
            )
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise self._wrap("delete_by_filter", collection, exc) from exc
        logger.info("qdrant_delete_by_filter", collection=collection, filters=filters)

    async def delete_points(self, collection: str, ids: list[str]) -> None:
        if not ids:
            return
        try:
            await self._client.delete(
                collection_name=collection,
                points_selector=qm.PointIdsList(points=list(ids)),
                wait=True,
            )
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise self._wrap("delete_points", collection, exc) from exc

    async def scroll(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: Any | None = None,
        order_by: str | None = None,
    ) -> ScrollPage:
        kwargs: dict[str, Any] = {
            "collection_name": collection,
            "scroll_filter": build_filter(filters),
            "limit": limit,
            "offset": offset,
            "with_payload": True,
            "with_vectors": False,
        }
        if order_by:
            kwargs["order_by"] = qm.OrderBy(key=order_by)
        try:
            records, next_offset = await self._client.scroll(**kwargs)
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise self._wrap("scroll", collection, exc) from exc
        points = [{"id": str(record.id), "payload": record.payload or {}} for record in records]
        return ScrollPage(points=points, next_offset=next_offset)

    async def get_points(self, collection: str, ids: list[str]) -> list[dict[str, Any]]:
        if not ids:
            return []
        try:
            records = await self._client.retrieve(
                collection_name=collection,
                ids=list(ids),
                with_payload=True,
                with_vectors=False,
            )
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise self._wrap("retrieve", collection, exc) from exc
        by_id = {str(record.id): record.payload or {} for record in records}
        return [{"id": point_id, "payload": by_id[point_id]} for point_id in ids if point_id in by_id]

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
        filters: dict[str, Any] | None = None,
        exclude: dict[str, Any] | None = None,
        score_threshold: float | None = None,
    ) -> list[dict[str, Any]]:
        try:
            response = await self._client.query_points(
                collection_name=collection,
                query=vector,
                query_filter=build_filter(filters, exclude),
                limit=limit,
                score_threshold=score_threshold,
                with_payload=True,
                with_vectors=False,
            )
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise self._wrap("query_points", collection, exc) from exc
        return [
            {"id": str(point.id), "score": float(point.score), "payload": point.payload or {}}
            for point in response.points
        ]

    async def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        try:
            result = await self._client.count(
                collection_name=collection,
                count_filter=build_filter(filters),
                exact=True,
            )
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise self._wrap("count", collection, exc) from exc
        return int(result.count)

    async def set_payload(
        self,
        collection: str,
        payload: dict[str, Any],
        filters: dict[str, Any] | None = None,
        ids: list[str] | None = None,
    ) -> None:
        selector: Any = list(ids) if ids else build_filter(filters)
        if selector is None:
            raise UpstreamError(
                message="set_payload needs a filter or point ids",
                provider_name=self.get_provider_name(),
                retryable=False,
            )
        try:
            await self._client.set_payload(
                collection_name=collection, payload=payload, points=selector, wait=True
            )
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise self._wrap("set_payload", collection, exc) from exc

    async def delete_collection(self, collection: str) -> None:
        try:
            await self._client.delete_collection(collection_name=collection)
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            raise self._wrap("delete_collection", collection, exc) from exc
        logger.info("qdrant_collection_deleted", collection=collection)

    async def ping(self) -> bool:
        try:
            await self._client.get_collections()
        except (UnexpectedResponse, ResponseHandlingException) as exc:
            logger.warning("qdrant_ping_failed", error=str(exc))
            return False
        return True

    async def close(self) -> None:
        await self._client.close()
        logger.info("qdrant_closed")

    def get_provider_name(self) -> str:
        return "qdrant"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _wrap(
        self, op: str, collection: str, exc: UnexpectedResponse | ResponseHandlingException
    ) -> UpstreamError | NotFoundError:
        status = getattr(exc, "status_code", None)
        logger.error("qdrant_operation_failed", op=op, collection=collection, status=status, error=str(exc))
        if status == 404:
            return NotFoundError(
                message=f"Collection not found: {collection}",
                provider_name=self.get_provider_name(),
            )
        return UpstreamError(
            message=f"Qdrant {op} failed on {collection}: {exc}",
            provider_name=self.get_provider_name(),
            retryable=status is None or status >= 500,
            status=status,
        )
