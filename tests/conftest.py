"""Shared pytest fixtures for the ragler test suite."""

from __future__ import annotations

import hashlib
import math
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragler.interfaces.embedding_provider import IEmbeddingProvider
from ragler.interfaces.llm_provider import ILLMProvider
from ragler.interfaces.vector_index import IVectorIndex, ScrollPage
from ragler.models.payload import VectorPoint
from ragler.models.session import Chunk, Session, SessionStatus, SourceType
from ragler.providers.kv.memory_store import MemoryKeyValueStore
from ragler.services.chunking_service import ChunkingService
from ragler.services.session_service import SessionService
from ragler.services.session_store import DraftSessionStore
from ragler.utils.errors import UpstreamError

# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_markdown() -> str:
    """A short Markdown document with headings and several paragraphs."""
    return (
        "# Deployment Guide\n\n"
        "This guide explains how the service is deployed to production. "
        "Every release goes through staging first.\n\n"
        "## Rollback\n\n"
        "If a release misbehaves, roll back with the deploy tool. "
        "Rollbacks take about five minutes.\n\n"
        "## Contacts\n\n"
        "Useful links: the on-call rota and the release calendar.\n"
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 8


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Deterministic unit vector derived from the text's sha256 digest."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = [digest[i % len(digest)] / 255.0 + 0.01 for i in range(dim)]
    norm = math.sqrt(sum(v * v for v in raw))
    return [v / norm for v in raw]


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Hash-based embedder; records every batch it is asked for."""

    def __init__(self, dim: int = _EMBEDDING_DIM) -> None:
        self._dim = dim
        self.batches: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.batches.append(list(texts))
        return [_hash_to_vector(text, self._dim) for text in texts]

    def get_dimension(self) -> int:
        return self._dim

    def get_provider_name(self) -> str:
        return "fake_embedding"

    def is_available(self) -> bool:
        return True


def _lookup(payload: dict[str, Any], dotted: str) -> Any:
    value: Any = payload
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _matches(payload: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    """Equality per key; a list on either side matches on any shared value."""
    for key, expected in (filters or {}).items():
        actual = _lookup(payload, key)
        wanted = list(expected) if isinstance(expected, (list, tuple, set)) else [expected]
        present = actual if isinstance(actual, list) else [actual]
        if not any(value in wanted for value in present):
            return False
    return True


class FakeVectorIndex(IVectorIndex):
    """In-memory index with dotted-path equality filters.

    ``fail_upserts`` makes every upsert raise after the given number of
    successful calls and ``fail_deletes`` makes ``delete_points`` raise, to
    exercise partial-publish handling.
    """

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, Any]] = {}
        self.fail_upserts: int | None = None
        self.fail_deletes = False
        self.upsert_calls = 0
        self.calls: list[str] = []

    def points(self, collection: str) -> list[dict[str, Any]]:
        return list(self.collections.get(collection, {}).get("points", {}).values())

    def seed(self, collection: str, points: list[VectorPoint], dimension: int = _EMBEDDING_DIM) -> None:
        store = self.collections.setdefault(collection, {"dimension": dimension, "points": {}})
        for point in points:
            store["points"][point.id] = point.model_dump()

    async def collection_exists(self, collection: str) -> bool:
        return collection in self.collections

    async def ensure_collection(self, collection: str, dimension: int) -> None:
        self.calls.append("ensure_collection")
        self.collections.setdefault(collection, {"dimension": dimension, "points": {}})

    async def upsert(self, collection: str, points: list[VectorPoint]) -> None:
        self.calls.append("upsert")
        if self.fail_upserts is not None and self.upsert_calls >= self.fail_upserts:
            raise UpstreamError(message="upsert rejected", provider_name="fake_index")
        self.upsert_calls += 1
        store = self.collections.setdefault(collection, {"dimension": len(points[0].vector), "points": {}})
        for point in points:
            if len(point.vector) != store["dimension"]:
                raise UpstreamError(message="dimension mismatch", provider_name="fake_index", retryable=False)
            store["points"][point.id] = point.model_dump()

    async def delete_by_filter(self, collection: str, filters: dict[str, Any]) -> None:
        self.calls.append("delete_by_filter")
        store = self.collections.get(collection, {}).get("points", {})
        for point_id in [pid for pid, p in store.items() if _matches(p["payload"], filters)]:
            del store[point_id]

    async def delete_points(self, collection: str, ids: list[str]) -> None:
        self.calls.append("delete_points")
        if self.fail_deletes:
            raise UpstreamError(message="delete rejected", provider_name="fake_index")
        store = self.collections.get(collection, {}).get("points", {})
        for point_id in ids:
            store.pop(point_id, None)

    async def scroll(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: Any | None = None,
        order_by: str | None = None,
    ) -> ScrollPage:
        self.calls.append("scroll")
        matched = [p for p in self.points(collection) if _matches(p["payload"], filters)]
        start = int(offset or 0)
        page = matched[start:start + limit]
        next_offset = start + limit if start + limit < len(matched) else None
        return ScrollPage(
            points=[{"id": p["id"], "payload": p["payload"]} for p in page],
            next_offset=next_offset,
        )

    async def get_points(self, collection: str, ids: list[str]) -> list[dict[str, Any]]:
        store = self.collections.get(collection, {}).get("points", {})
        return [{"id": pid, "payload": store[pid]["payload"]} for pid in ids if pid in store]

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
        filters: dict[str, Any] | None = None,
        exclude: dict[str, Any] | None = None,
        score_threshold: float | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append("search")
        hits = []
        for point in self.points(collection):
            if not _matches(point["payload"], filters):
                continue
            if exclude and any(_matches(point["payload"], {key: value}) for key, value in exclude.items()):
                continue
            score = sum(a * b for a, b in zip(vector, point["vector"]))
            if score_threshold is None or score >= score_threshold:
                hits.append({"id": point["id"], "score": score, "payload": point["payload"]})
        hits.sort(key=lambda hit: hit["score"], reverse=True)
        return hits[:limit]

    async def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        return sum(1 for p in self.points(collection) if _matches(p["payload"], filters))

    async def set_payload(
        self,
        collection: str,
        payload: dict[str, Any],
        filters: dict[str, Any] | None = None,
        ids: list[str] | None = None,
    ) -> None:
        for point in self.points(collection):
            if (ids is not None and point["id"] in ids) or (ids is None and _matches(point["payload"], filters)):
                point["payload"].update(payload)

    async def delete_collection(self, collection: str) -> None:
        self.calls.append("delete_collection")
        self.collections.pop(collection, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    def get_provider_name(self) -> str:
        return "fake_index"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def vector_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """Return a mock ILLMProvider; tests set ``complete``/``chat`` results."""
    mock = MagicMock(spec=ILLMProvider)
    mock.complete = AsyncMock(return_value='{"chunks": [{"id": "temp_1", "text": "x", "is_dirty": false}]}')
    mock.chat = AsyncMock()
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    return mock


@pytest.fixture
def session_store(kv_store: MemoryKeyValueStore) -> DraftSessionStore:
    return DraftSessionStore(kv_store, ttl=3600)


@pytest.fixture
def chunking_service() -> ChunkingService:
    """Boundary-only chunking measured in characters."""
    return ChunkingService(semantic_chunker=None, length_function=len, chars_per_token=1.0)


@pytest.fixture
def session_service(session_store: DraftSessionStore, chunking_service: ChunkingService) -> SessionService:
    return SessionService(session_store, chunking_service)


def make_session(
    texts: list[str],
    status: SessionStatus = SessionStatus.DRAFT,
    session_id: str = "session_test",
    source_url: str = "https://docs.example.com/guide",
    raw_content: str | None = None,
) -> Session:
    """Build a session whose chunks are ``c1..cN`` with the given texts."""
    return Session(
        session_id=session_id,
        source_type=SourceType.WEB,
        source_url=source_url,
        raw_content=raw_content if raw_content is not None else "\n\n".join(texts),
        title="Guide",
        status=status,
        chunks=[Chunk(id=f"c{idx}", text=text) for idx, text in enumerate(texts, start=1)],
    )
