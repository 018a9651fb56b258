"""Collection registry, browsing and semantic search over published entries.

Registered collections are recorded as points in a one-dimensional
``sys_registry`` collection of the same vector index, one point per
collection with a deterministic id derived from its name.  The data
collection itself is created with the embedder's dimension when the
collection is registered; publish refuses collections that were never
registered.

Published entries are only ever replaced by a republish of their source.
The read side here never rewrites their content; the single exception is
the editor quality score, which is curation metadata outside the
document's text.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Any

import structlog

from ragler.interfaces.embedding_provider import IEmbeddingProvider
from ragler.interfaces.vector_index import IVectorIndex
from ragler.models.collection import (
    ChunkPage,
    CollectionInfo,
    DocumentDetail,
    DocumentSummary,
    PublishedChunk,
    SearchHit,
    SearchResponse,
)
from ragler.models.payload import VectorPoint
from ragler.utils.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from ragler.utils.logging import get_logger
from ragler.utils.text_normalizer import normalize_tag

REGISTRY_COLLECTION = "sys_registry"

_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]{0,62}$")
_REGISTRY_NAMESPACE = uuid.UUID("6f1c3a52-9a0e-4d8c-b5f4-2f3d8e7a1c90")
_SCROLL_PAGE = 256
_MAX_PAGE = 200
_MAX_RESULTS = 100


def registry_point_id(name: str) -> str:
    """Deterministic registry point id for collection *name*."""
    return str(uuid.uuid5(_REGISTRY_NAMESPACE, name))


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


class CollectionService:
    """Registry of target collections plus the read side over their entries.

    Parameters
    ----------
    vector_index:
        Backend holding both the registry and the data collections.
    embedder:
        Fixes the dimension of new collections and embeds search queries.
    """

    def __init__(self, vector_index: IVectorIndex, embedder: IEmbeddingProvider) -> None:
        self._index = vector_index
        self._embedder = embedder
        self._registry_ready = False
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    async def list_collections(self) -> list[CollectionInfo]:
        await self._ensure_registry()
        infos: list[CollectionInfo] = []
        offset: Any | None = None
        while True:
            page = await self._index.scroll(REGISTRY_COLLECTION, limit=_SCROLL_PAGE, offset=offset)
            infos.extend(CollectionInfo.model_validate(point["payload"]) for point in page.points)
            offset = page.next_offset
            if offset is None:
                break
        return sorted(infos, key=lambda info: info.created_at)

    async def find(self, name: str) -> CollectionInfo | None:
        await self._ensure_registry()
        points = await self._index.get_points(REGISTRY_COLLECTION, [registry_point_id(name)])
        if not points:
            return None
        return CollectionInfo.model_validate(points[0]["payload"])

    async def get(self, name: str) -> CollectionInfo:
        """Return the registered collection or raise :class:`NotFoundError`."""
        info = await self.find(name)
        if info is None:
            raise NotFoundError(message=f"Collection {name} not found")
        return info

    async def create(self, name: str, description: str = "", created_by: str | None = None) -> CollectionInfo:
        """Register *name* and create its data collection.

        Raises
        ------
        ValidationError
            Name is not a lower-case slug or is reserved.
        ConflictError
            A collection with this name is already registered.
        """
        if not _NAME_RE.match(name) or name == REGISTRY_COLLECTION:
            raise ValidationError(
                message=(
                    "Collection name must be 1-63 lower-case letters, digits, '-' or '_' "
                    f"and not '{REGISTRY_COLLECTION}'"
                )
            )
        if await self.find(name) is not None:
            raise ConflictError(message=f"Collection {name} already exists")

        info = CollectionInfo(
            name=name,
            description=description,
            dimension=self._embedder.get_dimension(),
            created_by=created_by,
            created_at=datetime.now(tz=timezone.utc),
        )
        await self._index.ensure_collection(name, info.dimension)
        await self._index.upsert(
            REGISTRY_COLLECTION,
            [
                VectorPoint(
                    id=registry_point_id(name),
                    vector=[1.0],
                    payload=info.model_dump(mode="json"),
                )
            ],
        )
        self._logger.info("collection_created", collection=name, dimension=info.dimension, user=created_by)
        return info

    async def ensure_registered(self, name: str) -> CollectionInfo:
        """Return *name*'s record, registering it first when missing."""
        info = await self.find(name)
        if info is not None:
            return info
        return await self.create(name, description="Default collection", created_by="system")

    async def delete(self, name: str) -> None:
        """Drop the data collection and its registry record."""
        await self.get(name)
        if await self._index.collection_exists(name):
            await self._index.delete_collection(name)
        await self._index.delete_points(REGISTRY_COLLECTION, [registry_point_id(name)])
        self._logger.info("collection_deleted", collection=name)

    # ------------------------------------------------------------------
    # Published entries
    # ------------------------------------------------------------------

    async def list_documents(self, name: str) -> list[DocumentSummary]:
        """Group the collection's entries by ``doc.source_id``, newest first."""
        await self.get(name)
        groups: dict[str, list[dict[str, Any]]] = {}
        for point in await self._scroll_all(name, None):
            source_id = (point["payload"].get("doc") or {}).get("source_id")
            if source_id:
                groups.setdefault(source_id, []).append(point["payload"])

        documents = [self._summarize(source_id, payloads) for source_id, payloads in groups.items()]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        documents.sort(key=lambda doc: doc.last_modified_at or epoch, reverse=True)
        self._logger.info("documents_listed", collection=name, documents=len(documents))
        return documents

    async def get_document(self, name: str, source_id: str) -> DocumentDetail:
        await self.get(name)
        points = await self._scroll_all(name, {"doc.source_id": source_id})
        if not points:
            raise NotFoundError(message=f"Document {source_id} not found in collection {name}")
        chunks = sorted(
            (PublishedChunk.from_point(point["id"], point["payload"]) for point in points),
            key=lambda chunk: chunk.index,
        )
        return DocumentDetail(
            document=self._summarize(source_id, [point["payload"] for point in points]),
            chunks=chunks,
        )

    async def list_chunks(
        self,
        name: str,
        source_id: str | None = None,
        source_type: str | None = None,
        chunk_type: str | None = None,
        tag: str | None = None,
        limit: int = 50,
        offset: str | None = None,
    ) -> ChunkPage:
        """One page of entries matching the given payload filters."""
        if not 1 <= limit <= _MAX_PAGE:
            raise ValidationError(message=f"limit must be between 1 and {_MAX_PAGE}")
        await self.get(name)
        filters: dict[str, Any] = {}
        if source_id:
            filters["doc.source_id"] = source_id
        if source_type:
            filters["doc.source_type"] = source_type
        if chunk_type:
            filters["chunk.type"] = chunk_type
        if tag:
            filters["tags"] = normalize_tag(tag)

        total = await self._index.count(name, filters or None)
        page = await self._index.scroll(name, filters=filters or None, limit=limit, offset=offset)
        return ChunkPage(
            chunks=[PublishedChunk.from_point(point["id"], point["payload"]) for point in page.points],
            total=total,
            limit=limit,
            next_offset=None if page.next_offset is None else str(page.next_offset),
        )

    async def get_chunk(self, name: str, point_id: str) -> PublishedChunk:
        await self.get(name)
        points = await self._index.get_points(name, [point_id])
        if not points:
            raise NotFoundError(message=f"Chunk {point_id} not found in collection {name}")
        return PublishedChunk.from_point(point_id, points[0]["payload"])

    async def update_quality(
        self,
        name: str,
        point_id: str,
        score: int,
        issues: list[str],
        user_id: str | None = None,
    ) -> PublishedChunk:
        """Record a 0-100 quality score on one published entry."""
        if not 0 <= score <= 100:
            raise ValidationError(message="score must be between 0 and 100")
        await self.get(name)
        points = await self._index.get_points(name, [point_id])
        if not points:
            raise NotFoundError(message=f"Chunk {point_id} not found in collection {name}")

        editor = dict(points[0]["payload"].get("editor") or {})
        editor.update(
            quality_score=score,
            quality_issues=list(issues),
            last_edited_at=datetime.now(tz=timezone.utc).isoformat(),
            last_edited_by=user_id,
        )
        await self._index.set_payload(name, {"editor": editor}, ids=[point_id])
        self._logger.info("chunk_quality_updated", collection=name, point_id=point_id, score=score)
        return await self.get_chunk(name, point_id)

    async def search(
        self,
        name: str,
        query: str,
        limit: int = 10,
        source_types: list[str] | None = None,
        chunk_types: list[str] | None = None,
        tags: list[str] | None = None,
        exclude_navigation: bool = True,
        score_threshold: float | None = None,
    ) -> SearchResponse:
        """Embed *query* and return the nearest published entries.

        Navigation fragments (link lists, menus) are left out unless
        *exclude_navigation* is ``False``.
        """
        if not query.strip():
            raise ValidationError(message="Search query must not be empty")
        if not 1 <= limit <= _MAX_RESULTS:
            raise ValidationError(message=f"limit must be between 1 and {_MAX_RESULTS}")
        await self.get(name)

        filters: dict[str, Any] = {}
        if source_types:
            filters["doc.source_type"] = list(source_types)
        if chunk_types:
            filters["chunk.type"] = list(chunk_types)
        if tags:
            filters["tags"] = [normalize_tag(tag) for tag in tags]
        exclude = {"chunk.type": "navigation"} if exclude_navigation else None

        vectors = await self._embedder.embed([query])
        if len(vectors) != 1:
            raise UpstreamError(
                message="Embedding provider returned no vector for the query",
                provider_name=self._embedder.get_provider_name(),
                retryable=False,
            )
        hits = await self._index.search(
            name,
            vectors[0],
            limit=limit,
            filters=filters or None,
            exclude=exclude,
            score_threshold=score_threshold,
        )
        self._logger.info(
            "search_complete",
            collection=name,
            query_length=len(query),
            results=len(hits),
            filtered=bool(filters),
        )
        return SearchResponse(
            query=query,
            collection=name,
            results=[
                SearchHit(score=hit["score"], chunk=PublishedChunk.from_point(hit["id"], hit["payload"]))
                for hit in hits
            ],
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_registry(self) -> None:
        if self._registry_ready:
            return
        await self._index.ensure_collection(REGISTRY_COLLECTION, 1)
        self._registry_ready = True

    async def _scroll_all(self, name: str, filters: dict[str, Any] | None) -> list[dict[str, Any]]:
        points: list[dict[str, Any]] = []
        offset: Any | None = None
        while True:
            page = await self._index.scroll(name, filters=filters, limit=_SCROLL_PAGE, offset=offset)
            points.extend(page.points)
            offset = page.next_offset
            if offset is None:
                return points

    @staticmethod
    def _summarize(source_id: str, payloads: list[dict[str, Any]]) -> DocumentSummary:
        latest = max(
            payloads,
            key=lambda payload: ((payload.get("doc") or {}).get("revision") or 0),
        )
        doc = latest.get("doc") or {}
        scores = [
            (payload.get("editor") or {}).get("quality_score")
            for payload in payloads
        ]
        scores = [score for score in scores if isinstance(score, int)]
        return DocumentSummary(
            source_id=source_id,
            title=doc.get("title"),
            source_type=doc.get("source_type"),
            url=doc.get("url"),
            filename=doc.get("filename"),
            revision=doc.get("revision"),
            chunk_count=len(payloads),
            avg_quality_score=round(sum(scores) / len(scores)) if scores else None,
            ingest_date=_parse_datetime(doc.get("ingest_date")),
            last_modified_at=_parse_datetime(doc.get("last_modified_at")),
            last_modified_by=doc.get("last_modified_by"),
        )
