"""Unit tests for the Qdrant vector index adapter."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from qdrant_client.http import models as qm
from qdrant_client.http.exceptions import UnexpectedResponse

from ragler.models.payload import VectorPoint
from ragler.providers.vector.qdrant_index import QdrantVectorIndex, build_filter
from ragler.utils.errors import NotFoundError, UpstreamError


def _unexpected(status: int) -> UnexpectedResponse:
    return UnexpectedResponse(
        status_code=status,
        reason_phrase="error",
        content=b"{}",
        headers=httpx.Headers(),
    )


def _client() -> MagicMock:
    client = MagicMock()
    for name in (
        "collection_exists",
        "create_collection",
        "create_payload_index",
        "upsert",
        "delete",
        "scroll",
        "count",
        "set_payload",
        "get_collections",
        "retrieve",
        "query_points",
        "delete_collection",
        "close",
    ):
        setattr(client, name, AsyncMock())
    return client


class TestBuildFilter:
    def test_empty(self) -> None:
        assert build_filter(None) is None
        assert build_filter({}) is None

    def test_scalar_and_list_values(self) -> None:
        qfilter = build_filter({"doc.source_id": "abc", "chunk.type": ["faq", "glossary"]})

        assert isinstance(qfilter, qm.Filter)
        first, second = qfilter.must
        assert first.key == "doc.source_id"
        assert first.match == qm.MatchValue(value="abc")
        assert second.match == qm.MatchAny(any=["faq", "glossary"])
        assert qfilter.must_not is None

    def test_exclude_becomes_must_not(self) -> None:
        qfilter = build_filter({"tags": ["ops"]}, exclude={"chunk.type": "navigation"})

        assert qfilter.must[0].match == qm.MatchAny(any=["ops"])
        assert qfilter.must_not[0].key == "chunk.type"
        assert qfilter.must_not[0].match == qm.MatchValue(value="navigation")

    def test_exclude_only(self) -> None:
        qfilter = build_filter(None, exclude={"chunk.type": "navigation"})
        assert qfilter.must is None
        assert len(qfilter.must_not) == 1


class TestQdrantVectorIndex:
    @pytest.mark.asyncio
    async def test_ensure_collection_creates_once(self) -> None:
        client = _client()
        client.collection_exists.return_value = False
        index = QdrantVectorIndex(client=client)

        await index.ensure_collection("kb", 8)

        params = client.create_collection.await_args.kwargs["vectors_config"]
        assert params.size == 8
        assert params.distance == qm.Distance.COSINE
        indexed = [call.kwargs["field_name"] for call in client.create_payload_index.await_args_list]
        assert indexed == ["doc.source_id", "doc.source_type", "chunk.type", "chunk.lang", "tags"]

    @pytest.mark.asyncio
    async def test_ensure_collection_existing(self) -> None:
        client = _client()
        client.collection_exists.return_value = True
        await QdrantVectorIndex(client=client).ensure_collection("kb", 8)
        client.create_collection.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upsert_waits(self) -> None:
        client = _client()
        point = VectorPoint(
            id="5f2b6c1e-0d7c-4c3e-9b0e-2a4f7d1c9e11",
            vector=[0.1, 0.2],
            payload={"doc": {"source_id": "abc"}},
        )

        await QdrantVectorIndex(client=client).upsert("kb", [point])

        kwargs = client.upsert.await_args.kwargs
        assert kwargs["wait"] is True
        assert kwargs["points"][0].payload == {"doc": {"source_id": "abc"}}

    @pytest.mark.asyncio
    async def test_delete_by_filter_refuses_empty_filter(self) -> None:
        client = _client()
        with pytest.raises(UpstreamError):
            await QdrantVectorIndex(client=client).delete_by_filter("kb", {})
        client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_by_filter(self) -> None:
        client = _client()
        await QdrantVectorIndex(client=client).delete_by_filter("kb", {"doc.source_id": "abc"})
        selector = client.delete.await_args.kwargs["points_selector"]
        assert isinstance(selector, qm.FilterSelector)
        assert selector.filter.must[0].key == "doc.source_id"

    @pytest.mark.asyncio
    async def test_scroll_maps_records(self) -> None:
        client = _client()
        record = MagicMock(id="p1", payload={"doc": {"revision": 2}})
        client.scroll.return_value = ([record], "p2")

        page = await QdrantVectorIndex(client=client).scroll("kb", {"doc.source_id": "abc"}, limit=10)

        assert page.points == [{"id": "p1", "payload": {"doc": {"revision": 2}}}]
        assert page.next_offset == "p2"
        assert client.scroll.await_args.kwargs["with_vectors"] is False

    @pytest.mark.asyncio
    async def test_count(self) -> None:
        client = _client()
        client.count.return_value = MagicMock(count=5)
        assert await QdrantVectorIndex(client=client).count("kb") == 5

    @pytest.mark.asyncio
    async def test_missing_collection_is_not_found(self) -> None:
        client = _client()
        client.count.side_effect = _unexpected(404)
        with pytest.raises(NotFoundError):
            await QdrantVectorIndex(client=client).count("missing")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,retryable", [(503, True), (400, False)])
    async def test_server_errors(self, status: int, retryable: bool) -> None:
        client = _client()
        client.upsert.side_effect = _unexpected(status)
        point = VectorPoint(id="p1", vector=[0.1], payload={})
        with pytest.raises(UpstreamError) as exc_info:
            await QdrantVectorIndex(client=client).upsert("kb", [point])
        assert exc_info.value.retryable is retryable

    @pytest.mark.asyncio
    async def test_ping(self) -> None:
        client = _client()
        assert await QdrantVectorIndex(client=client).ping() is True
        client.get_collections.side_effect = _unexpected(500)
        assert await QdrantVectorIndex(client=client).ping() is False

    @pytest.mark.asyncio
    async def test_get_points_keeps_request_order(self) -> None:
        client = _client()
        client.retrieve.return_value = [
            MagicMock(id="p2", payload={"doc": {"revision": 2}}),
            MagicMock(id="p1", payload=None),
        ]

        points = await QdrantVectorIndex(client=client).get_points("kb", ["p1", "p3", "p2"])

        assert points == [{"id": "p1", "payload": {}}, {"id": "p2", "payload": {"doc": {"revision": 2}}}]
        assert client.retrieve.await_args.kwargs["with_vectors"] is False

    @pytest.mark.asyncio
    async def test_get_points_without_ids(self) -> None:
        client = _client()
        assert await QdrantVectorIndex(client=client).get_points("kb", []) == []
        client.retrieve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search(self) -> None:
        client = _client()
        client.query_points.return_value = MagicMock(
            points=[MagicMock(id="p1", score=0.92, payload={"chunk": {"text": "hello"}})]
        )

        hits = await QdrantVectorIndex(client=client).search(
            "kb",
            [0.1, 0.2],
            limit=5,
            filters={"tags": ["ops"]},
            exclude={"chunk.type": "navigation"},
            score_threshold=0.5,
        )

        assert hits == [{"id": "p1", "score": 0.92, "payload": {"chunk": {"text": "hello"}}}]
        kwargs = client.query_points.await_args.kwargs
        assert kwargs["query"] == [0.1, 0.2]
        assert kwargs["limit"] == 5
        assert kwargs["score_threshold"] == 0.5
        assert kwargs["query_filter"].must_not[0].key == "chunk.type"

    @pytest.mark.asyncio
    async def test_search_missing_collection(self) -> None:
        client = _client()
        client.query_points.side_effect = _unexpected(404)
        with pytest.raises(NotFoundError):
            await QdrantVectorIndex(client=client).search("missing", [0.1])

    @pytest.mark.asyncio
    async def test_delete_collection(self) -> None:
        client = _client()
        await QdrantVectorIndex(client=client).delete_collection("kb")
        client.delete_collection.assert_awaited_once_with(collection_name="kb")

    @pytest.mark.asyncio
    async def test_collection_exists(self) -> None:
        client = _client()
        client.collection_exists.return_value = True
        assert await QdrantVectorIndex(client=client).collection_exists("kb") is True
