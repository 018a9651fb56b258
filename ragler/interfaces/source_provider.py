"""Abstract base classes for raw-content sources (files and web pages).

Both produce a :class:`ParsedDocument` that the ingestion service turns
into a draft session.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ParsedDocument:
    """Text extracted from a source plus optional title and metadata."""

    def __init__(
        self,
        content: str,
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
        source_url: str | None = None,
    ) -> None:
        self._content = content
        self._title = title
        self._metadata = dict(metadata or {})
        self._source_url = source_url

    @property
    def content(self) -> str:
        return self._content

    @property
    def title(self) -> str | None:
        return self._title

    @property
    def metadata(self) -> dict[str, Any]:
        return dict(self._metadata)

    @property
    def source_url(self) -> str | None:
        return self._source_url


# Concrete implementation: TextFileParser (ragler/providers/parser/)
class IFileParser(ABC):
    """Contract for file-format parsers, resolved by file extension."""

    @abstractmethod
    def supported_extensions(self) -> list[str]:
        """Return lower-case extensions handled, including the dot (``".md"``)."""

    @abstractmethod
    async def parse(self, data: bytes, filename: str) -> ParsedDocument:
        """Extract text from *data*.

        Raises
        ------
        ragler.utils.errors.ValidationError
            If the bytes cannot be decoded as the declared format.
        """


# Concrete implementation: WebPageFetcher (ragler/providers/parser/)
class IWebSource(ABC):
    """Contract for fetching and extracting readable text from a URL."""

    @abstractmethod
    async def fetch(self, url: str) -> ParsedDocument:
        """Fetch *url* and return its main text content.

        Raises
        ------
        ragler.utils.errors.ValidationError
            Invalid or blocked URL, or unsupported content type.
        ragler.utils.errors.ProviderTimeoutError, UpstreamError
            Network failures (retryable for timeouts, 429 and 5xx).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this source."""
