"""Abstract base class for text-embedding service providers."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OpenAIEmbeddingProvider (ragler/providers/embedding/)
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the publish engine."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            Text strings to embed.  The caller is responsible for keeping
            batches within the provider's per-call limit.

        Returns
        -------
        list[list[float]]
            Vectors corresponding positionally to *texts*, each of length
            :meth:`get_dimension`.

        Raises
        ------
        ragler.utils.errors.RateLimitError, ProviderTimeoutError, UpstreamError
            Classified provider failures.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the fixed dimensionality of produced vectors."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
