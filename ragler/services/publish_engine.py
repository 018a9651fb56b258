"""Atomic replace-publish of a draft session into the vector index.

The engine treats every source as one document: all live entries sharing
``doc.source_id`` are replaced wholesale on each publish, never merged
or updated in place.  The order of steps is what keeps this safe:

1. Load + validate   -- PREVIEW (or DRAFT when allowed), at least one
                        non-empty fragment, a registered target
                        collection whose dimension matches the embedder.
2. Embed             -- all vectors are computed before the index is
                        touched.
3. Revision          -- ids of the source's live entries are collected
                        and the next revision is their max + 1.
4. Insert            -- fresh random ids, new revision, audit fields.
5. Delete stale      -- the entries collected in step 3, by id.
6. Teardown          -- the draft session is removed from the store.

Until step 5 finishes the previous revision stays live, so the source is
never without entries.  An insert failure rolls back what was inserted
and leaves the previous revision as the only live set.  A failure in
step 5 leaves both revisions live; it is reported as
``publish_incomplete`` and the session is kept.  Because the previous
revision is still readable from the index, a retry always publishes at a
higher revision than anything already stored.
"""

from __future__ import annotations

import asyncio
import hashlib
import time
import uuid
from datetime import datetime, timezone
from typing import Any

import structlog

from ragler.interfaces.embedding_provider import IEmbeddingProvider
from ragler.interfaces.vector_index import IVectorIndex
from ragler.models.payload import (
    AclPayload,
    ChunkPayload,
    DocPayload,
    EditorPayload,
    PointPayload,
    PublishRequest,
    PublishResult,
    VectorPoint,
)
from ragler.models.session import Chunk, Session, SessionStatus
from ragler.services.chunk_classifier import enrich_chunk
from ragler.services.collection_service import CollectionService
from ragler.services.session_store import DraftSessionStore
from ragler.utils.concurrency import batch_ranges, throttled_gather
from ragler.utils.errors import (
    InvalidStateError,
    NotFoundError,
    RaglerError,
    UpstreamError,
)
from ragler.utils.logging import get_logger
from ragler.utils.text_normalizer import compute_content_hash, normalize_tag

_SCROLL_PAGE = 256
_UPSERT_BATCH = 100


def derive_source_id(source_url: str) -> str:
    """Return the stable document id for a source (md5 of its url)."""
    return hashlib.md5(source_url.encode("utf-8")).hexdigest()


def normalize_tags(tags: list[str], limit: int = 12) -> list[str]:
    """Lower-case, de-duplicate (keeping first occurrence) and cap *tags*."""
    seen: list[str] = []
    for tag in tags:
        normalized = normalize_tag(tag)
        if normalized and normalized not in seen:
            seen.append(normalized)
    return seen[:limit]


class PublishEngine:
    """Replaces a source's live entries with a session's fragments.

    Parameters
    ----------
    store:
        Draft session store; the session is removed after a successful
        publish.
    vector_index:
        Destination index.
    embedder:
        Computes one vector per fragment.
    collections:
        Registry consulted for the target collection.
    default_collection:
        Used when the request names no target collection.
    batch_size:
        Fragments per embedding call.
    concurrency:
        Maximum embedding calls in flight.
    allow_draft:
        Accept sessions that were never previewed.
    max_tags, visibility:
        Payload policy for ``tags`` and ``acl.visibility``.
    """

    def __init__(
        self,
        store: DraftSessionStore,
        vector_index: IVectorIndex,
        embedder: IEmbeddingProvider,
        collections: CollectionService,
        default_collection: str = "knowledge",
        batch_size: int = 100,
        concurrency: int = 4,
        allow_draft: bool = False,
        max_tags: int = 12,
        visibility: str = "internal",
    ) -> None:
        self._store = store
        self._index = vector_index
        self._embedder = embedder
        self._collections = collections
        self._default_collection = default_collection
        self._batch_size = max(1, batch_size)
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._allow_draft = allow_draft
        self._max_tags = max_tags
        self._visibility = visibility
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def default_collection(self) -> str:
        return self._default_collection

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def publish(self, session_id: str, request: PublishRequest | None = None) -> PublishResult:
        """Publish *session_id* into the target collection.

        Raises
        ------
        NotFoundError
            Unknown or expired session, or an unregistered collection.
        InvalidStateError
            Wrong status, nothing publishable, or a collection whose
            vector dimension differs from the embedder's.
        UpstreamError
            Embedding or index failure.  The session is kept in every
            case and a retry re-runs the full replace.
        """
        request = request or PublishRequest()
        started = time.monotonic()
        collection = request.target_collection or self._default_collection

        # Step 1: load and validate
        session = await self._store.get(session_id)
        if session is None:
            raise NotFoundError(message=f"Session {session_id} not found")
        self._check_status(session)
        chunks = [chunk for chunk in session.chunks if chunk.text.strip()]
        if not chunks:
            raise InvalidStateError(message="Session has no non-empty chunks to publish")

        info = await self._collections.get(collection)
        if info.dimension != self._embedder.get_dimension():
            raise InvalidStateError(
                message=(
                    f"Collection {collection} stores {info.dimension}-dimensional vectors "
                    f"but the embedder produces {self._embedder.get_dimension()}"
                )
            )

        source_id = derive_source_id(session.source_url)
        log = self._logger.bind(
            session_id=session_id,
            source_id=source_id,
            collection=collection,
        )
        log.info("publish_started", chunks=len(chunks), skipped_empty=len(session.chunks) - len(chunks))

        # Step 2: embed everything before touching the index
        vectors = await self._embed_all([chunk.text for chunk in chunks])

        # Step 3: live entries and next revision
        stale_ids, previous = await self._live_entries(collection, source_id)
        revision = previous + 1

        points = self._build_points(session, chunks, vectors, source_id, revision, request)

        # Step 4: insert replacements alongside the previous revision
        inserted: list[str] = []
        try:
            for start in range(0, len(points), _UPSERT_BATCH):
                batch = points[start:start + _UPSERT_BATCH]
                await self._index.upsert(collection, batch)
                inserted.extend(point.id for point in batch)
        except RaglerError as exc:
            log.error(
                "publish_insert_failed",
                inserted=len(inserted),
                expected=len(points),
                revision=revision,
                error=str(exc),
            )
            await self._roll_back(collection, inserted, log)
            raise UpstreamError(
                message=(
                    f"Publish failed after inserting {len(inserted)} of {len(points)} entries; "
                    f"revision {previous} is still live, retry the publish"
                ),
                provider_name=self._index.get_provider_name(),
                retryable=True,
            ) from exc

        # Step 5: drop the previous revision
        try:
            for start in range(0, len(stale_ids), _UPSERT_BATCH):
                await self._index.delete_points(collection, stale_ids[start:start + _UPSERT_BATCH])
        except RaglerError as exc:
            log.error(
                "publish_incomplete",
                stale=len(stale_ids),
                revision=revision,
                previous_revision=previous,
                error=str(exc),
            )
            raise UpstreamError(
                message=(
                    f"Publish incomplete: revision {revision} was inserted but entries of "
                    f"revision {previous} could not be removed; retry the publish"
                ),
                provider_name=self._index.get_provider_name(),
                retryable=True,
            ) from exc
        log.info("publish_stale_entries_deleted", deleted=len(stale_ids), previous_revision=previous)

        # Step 6: teardown
        await self._store.delete(session_id)

        log.info(
            "publish_complete",
            published_chunks=len(points),
            revision=revision,
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        return PublishResult(
            published_chunks=len(points),
            collection_id=collection,
            source_id=source_id,
            revision=revision,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_status(self, session: Session) -> None:
        if session.status == SessionStatus.PREVIEW:
            return
        if session.status == SessionStatus.DRAFT and self._allow_draft:
            return
        raise InvalidStateError(
            message=f"Cannot publish a session in {session.status.value} status; preview it first"
        )

    async def _embed_all(self, texts: list[str]) -> list[list[float]]:
        ranges = batch_ranges(len(texts), self._batch_size)
        results = await throttled_gather(
            [self._embedder.embed(texts[start:end]) for start, end in ranges],
            self._semaphore,
        )

        dimension = self._embedder.get_dimension()
        vectors: list[list[float]] = []
        for (start, end), result in zip(ranges, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                self._logger.error(
                    "publish_embedding_failed",
                    first_chunk=start,
                    last_chunk=end - 1,
                    error=str(result),
                )
                raise UpstreamError(
                    message=f"Embedding failed for chunks {start}-{end - 1}: {result}",
                    provider_name=self._embedder.get_provider_name(),
                    retryable=getattr(result, "retryable", True),
                ) from result
            if len(result) != end - start or any(len(vector) != dimension for vector in result):
                raise UpstreamError(
                    message=f"Embedding provider returned malformed vectors for chunks {start}-{end - 1}",
                    provider_name=self._embedder.get_provider_name(),
                    retryable=False,
                )
            vectors.extend(result)
        return vectors

    async def _live_entries(self, collection: str, source_id: str) -> tuple[list[str], int]:
        """Ids of every live entry for *source_id* and their highest revision."""
        ids: list[str] = []
        highest = 0
        offset: Any | None = None
        while True:
            page = await self._index.scroll(
                collection,
                filters={"doc.source_id": source_id},
                limit=_SCROLL_PAGE,
                offset=offset,
            )
            for point in page.points:
                ids.append(point["id"])
                revision = (point.get("payload") or {}).get("doc", {}).get("revision")
                if isinstance(revision, int) and revision > highest:
                    highest = revision
            offset = page.next_offset
            if offset is None:
                return ids, highest

    async def _roll_back(self, collection: str, inserted: list[str], log: structlog.BoundLogger) -> None:
        if not inserted:
            return
        try:
            await self._index.delete_points(collection, inserted)
        except RaglerError as exc:
            # The leftovers carry a revision above the live one; the next
            # publish of this source sees them as stale and removes them.
            log.error("publish_rollback_failed", orphaned=len(inserted), error=str(exc))
            return
        log.info("publish_rolled_back", removed=len(inserted))

    def _build_points(
        self,
        session: Session,
        chunks: list[Chunk],
        vectors: list[list[float]],
        source_id: str,
        revision: int,
        request: PublishRequest,
    ) -> list[VectorPoint]:
        now = datetime.now(tz=timezone.utc)
        doc = DocPayload(
            source_id=source_id,
            source_type=session.source_type.value,
            url=session.source_url,
            filename=session.metadata.get("filename"),
            title=request.title or session.title,
            revision=revision,
            ingest_date=session.created_at,
            last_modified_at=now,
            last_modified_by=request.user_id,
        )
        acl = AclPayload(
            visibility=self._visibility,
            allowed_groups=list(request.allowed_groups),
            allowed_users=list(request.allowed_users),
        )
        tags = normalize_tags(request.tags, self._max_tags)

        points: list[VectorPoint] = []
        for index, (chunk, vector) in enumerate(zip(chunks, vectors)):
            enriched = enrich_chunk(chunk)
            payload = PointPayload(
                doc=doc,
                chunk=ChunkPayload(
                    id=enriched.id,
                    index=index,
                    type=enriched.type.value if enriched.type else "knowledge",
                    heading_path=list(enriched.heading_path),
                    section=enriched.section,
                    text=enriched.text,
                    content_hash=compute_content_hash(enriched.text),
                    lang=enriched.lang or "en",
                ),
                tags=tags,
                acl=acl,
                editor=EditorPayload(
                    position=index,
                    last_edited_at=enriched.last_edited_at,
                    last_edited_by=enriched.last_edited_by,
                    edit_count=enriched.edit_count,
                ),
            )
            points.append(
                VectorPoint(
                    id=str(uuid.uuid4()),
                    vector=vector,
                    payload=payload.model_dump(mode="json"),
                )
            )
        return points
