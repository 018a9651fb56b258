"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
The publish engine hands in pre-sized batches; this adapter still guards
the provider's hard per-call input limit.
"""

from __future__ import annotations

import time

import openai
import structlog

from ragler.config.settings import Settings
from ragler.interfaces.embedding_provider import IEmbeddingProvider
from ragler.providers.llm.openai_errors import map_openai_error
from ragler.utils.errors import UpstreamError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` (1536 dims) by default.  For models
    not in the known table the dimension comes from
    ``settings.embedding_dimensions``.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key
        client_kwargs: dict = {
            "api_key": self._api_key or "unset",
            "timeout": openai.Timeout(settings.embedding_timeout, connect=5.0),
            "max_retries": settings.embedding_max_retries,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.embedding_model
        self._dimension = _MODEL_DIMENSIONS.get(self._model, settings.embedding_dimensions)
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts."""
        if not texts:
            return []
        if len(texts) > _OPENAI_BATCH_LIMIT:
            raise UpstreamError(
                message=f"Batch of {len(texts)} exceeds the {_OPENAI_BATCH_LIMIT} input limit",
                provider_name=self.get_provider_name(),
                retryable=False,
            )

        started = time.monotonic()
        try:
            response = await self._client.embeddings.create(input=texts, model=self._model)
        except openai.APIError as exc:
            raise map_openai_error(
                exc, self.get_provider_name(), elapsed=time.monotonic() - started
            ) from exc

        # The API may return items out of order; ``index`` is authoritative.
        ordered = sorted(response.data, key=lambda item: item.index)
        logger.info(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch_size=len(texts),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return [item.embedding for item in ordered]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)
