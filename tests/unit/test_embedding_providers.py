"""Unit tests for the OpenAI embedding adapter."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from ragler.config.settings import Settings
from ragler.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from ragler.utils.errors import RateLimitError, UpstreamError

_PATCH_TARGET = "ragler.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI"


def _settings(**overrides) -> Settings:
    defaults = {
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "embedding_model": "text-embedding-3-small",
    }
    defaults.update(overrides)
    return Settings(**defaults)


def _embedding_response(vectors: list[tuple[int, list[float]]]) -> MagicMock:
    response = MagicMock()
    response.data = [MagicMock(index=index, embedding=vector) for index, vector in vectors]
    response.usage = MagicMock(total_tokens=10)
    return response


class TestOpenAIEmbeddingProvider:
    def test_known_model_dimension(self) -> None:
        assert OpenAIEmbeddingProvider(_settings()).get_dimension() == 1536
        large = OpenAIEmbeddingProvider(_settings(embedding_model="text-embedding-3-large"))
        assert large.get_dimension() == 3072

    def test_unknown_model_uses_configured_dimension(self) -> None:
        provider = OpenAIEmbeddingProvider(
            _settings(embedding_model="bge-m3", embedding_dimensions=1024, openai_base_url="http://gw/v1")
        )
        assert provider.get_dimension() == 1024
        assert provider.get_provider_name() == "openai-compatible_embedding"

    @pytest.mark.asyncio
    async def test_embed_orders_by_index(self) -> None:
        client = AsyncMock()
        client.embeddings.create = AsyncMock(
            return_value=_embedding_response([(1, [0.2, 0.2]), (0, [0.1, 0.1])])
        )
        with patch(_PATCH_TARGET, return_value=client):
            provider = OpenAIEmbeddingProvider(_settings())
            vectors = await provider.embed(["first", "second"])

        assert vectors == [[0.1, 0.1], [0.2, 0.2]]
        client.embeddings.create.assert_awaited_once_with(
            input=["first", "second"], model="text-embedding-3-small"
        )

    @pytest.mark.asyncio
    async def test_empty_batch_skips_request(self) -> None:
        client = AsyncMock()
        with patch(_PATCH_TARGET, return_value=client):
            provider = OpenAIEmbeddingProvider(_settings())
            assert await provider.embed([]) == []
        client.embeddings.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oversized_batch(self) -> None:
        with patch(_PATCH_TARGET, return_value=AsyncMock()):
            provider = OpenAIEmbeddingProvider(_settings())
            with pytest.raises(UpstreamError) as exc_info:
                await provider.embed(["x"] * 2049)
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_rate_limit_is_mapped(self) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        error = openai.RateLimitError(
            "slow down",
            response=httpx.Response(429, request=request, headers={"retry-after": "3"}),
            body=None,
        )
        client = AsyncMock()
        client.embeddings.create = AsyncMock(side_effect=error)
        with patch(_PATCH_TARGET, return_value=client):
            provider = OpenAIEmbeddingProvider(_settings())
            with pytest.raises(RateLimitError) as exc_info:
                await provider.embed(["text"])
        assert exc_info.value.retry_after == 3.0
