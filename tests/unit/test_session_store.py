"""Unit tests for DraftSessionStore over the in-memory key-value store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ragler.providers.kv.memory_store import MemoryKeyValueStore
from ragler.services.session_store import DraftSessionStore, session_key
from tests.conftest import make_session


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestDraftSessionStore:
    @pytest.mark.asyncio
    async def test_save_and_get_round_trip(self, session_store: DraftSessionStore) -> None:
        session = make_session(["one", "two"])
        await session_store.save(session)

        loaded = await session_store.get(session.session_id)

        assert loaded is not None
        assert loaded.model_dump() == session.model_dump()

    @pytest.mark.asyncio
    async def test_missing_session_is_none(self, session_store: DraftSessionStore) -> None:
        assert await session_store.get("nope") is None

    @pytest.mark.asyncio
    async def test_corrupt_payload_is_none(self, kv_store: MemoryKeyValueStore) -> None:
        store = DraftSessionStore(kv_store)
        await kv_store.set(session_key("bad"), '{"session_id": "bad"}')
        assert await store.get("bad") is None

    @pytest.mark.asyncio
    async def test_delete(self, session_store: DraftSessionStore) -> None:
        session = make_session(["one"])
        await session_store.save(session)
        await session_store.delete(session.session_id)
        assert await session_store.get(session.session_id) is None

    @pytest.mark.asyncio
    async def test_ttl_expiry_and_refresh(self) -> None:
        clock = _Clock()
        store = DraftSessionStore(MemoryKeyValueStore(timer=clock), ttl=60)
        session = make_session(["one"])
        await store.save(session)

        clock.now += 50
        await store.save(session)  # refreshes the TTL
        clock.now += 50
        assert await store.get(session.session_id) is not None

        clock.now += 61
        assert await store.get(session.session_id) is None

    @pytest.mark.asyncio
    async def test_list_sessions_newest_first(self, session_store: DraftSessionStore) -> None:
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        older = make_session(["a"], session_id="s_old").model_copy(update={"updated_at": base})
        newer = make_session(["a", "b"], session_id="s_new").model_copy(
            update={"updated_at": base + timedelta(hours=1)}
        )
        await session_store.save(older)
        await session_store.save(newer)

        summaries = await session_store.list_sessions()

        assert [s.session_id for s in summaries] == ["s_new", "s_old"]
        assert summaries[0].chunk_count == 2

    @pytest.mark.asyncio
    async def test_list_ignores_other_keys(self, kv_store: MemoryKeyValueStore, session_store: DraftSessionStore) -> None:
        await kv_store.set("agent:session:s1", "{}")
        await session_store.save(make_session(["a"], session_id="s1"))
        assert [s.session_id for s in await session_store.list_sessions()] == ["s1"]

    def test_provider_name(self, session_store: DraftSessionStore) -> None:
        assert session_store.get_provider_name() == "draft_session_store:memory"
