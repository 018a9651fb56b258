"""Unit tests for ChunkingService strategy selection."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from ragler.models.session import Chunk, ChunkingConfig, ChunkingMethod
from ragler.services.chunking_service import ChunkingService
from ragler.services.semantic_chunker import SemanticChunker
from ragler.utils.errors import ForbiddenError, UnsupportedSourceError


def _semantic(chunks: list[Chunk] | None = None) -> SemanticChunker:
    mock = MagicMock(spec=SemanticChunker)
    mock.chunk = AsyncMock(return_value=chunks or [Chunk(id="chunk_s1", text="semantic")])
    return mock


class TestChunkingService:
    @pytest.mark.asyncio
    async def test_boundary_method(self) -> None:
        service = ChunkingService(length_function=len, chars_per_token=1.0)
        text = "First paragraph content here.\n\nSecond paragraph content here."

        chunks = await service.chunk(text, ChunkingConfig(chunk_size=34))

        assert [c.text for c in chunks] == [
            "First paragraph content here.",
            "Second paragraph content here.",
        ]

    @pytest.mark.asyncio
    async def test_max_ratio_bounds_fragments(self) -> None:
        service = ChunkingService(length_function=len, chars_per_token=1.0, max_ratio=1.0)
        chunks = await service.chunk("x" * 100, ChunkingConfig(chunk_size=40))
        assert [len(c.text) for c in chunks] == [40, 40, 20]

    @pytest.mark.asyncio
    async def test_llm_method_uses_semantic_chunker(self) -> None:
        semantic = _semantic()
        service = ChunkingService(semantic_chunker=semantic)

        chunks = await service.chunk("some text", ChunkingConfig(method=ChunkingMethod.LLM))

        assert [c.id for c in chunks] == ["chunk_s1"]
        semantic.chunk.assert_awaited_once_with("some text")

    @pytest.mark.asyncio
    async def test_llm_method_disabled(self) -> None:
        service = ChunkingService(semantic_chunker=_semantic(), semantic_enabled=False)
        with pytest.raises(ForbiddenError):
            await service.chunk("text", ChunkingConfig(method=ChunkingMethod.LLM))

    @pytest.mark.asyncio
    async def test_llm_method_without_chunker(self) -> None:
        service = ChunkingService(semantic_chunker=None)
        with pytest.raises(UnsupportedSourceError) as exc_info:
            await service.chunk("text", ChunkingConfig(method=ChunkingMethod.LLM))
        assert exc_info.value.supported == ["boundary"]

    def test_supported_methods(self) -> None:
        assert ChunkingService().supported_methods() == ["boundary"]
        assert ChunkingService(semantic_chunker=_semantic()).supported_methods() == ["boundary", "llm"]
