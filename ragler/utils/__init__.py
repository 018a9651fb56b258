"""Utility modules for ragler.

- **errors** -- Typed exception hierarchy rooted at RaglerError; each class
  declares the stable ``reason``, HTTP ``status_code`` and ``retryable``
  flag the API layer reports to clients.
- **logging** -- structlog setup with a console/JSON dual renderer.
- **concurrency** -- ``batch_ranges`` and ``throttled_gather`` for embedding fan-out.
- **text_normalizer** -- Hash normalization, language detection, tag
  normalization and fuzzy similarity for duplicate detection.
"""

from ragler.utils.concurrency import batch_ranges, throttled_gather
from ragler.utils.errors import (
    ConfigurationError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ParseError,
    ProviderTimeoutError,
    RaglerError,
    RateLimitError,
    UnsupportedSourceError,
    UpstreamError,
    ValidationError,
)
from ragler.utils.logging import configure_logging, get_logger
from ragler.utils.text_normalizer import (
    compute_content_hash,
    detect_language,
    normalize_for_hash,
)

__all__ = [
    "ConfigurationError",
    "ConflictError",
    "ForbiddenError",
    "InvalidStateError",
    "NotFoundError",
    "ParseError",
    "ProviderTimeoutError",
    "RaglerError",
    "RateLimitError",
    "UnsupportedSourceError",
    "UpstreamError",
    "ValidationError",
    "batch_ranges",
    "compute_content_hash",
    "configure_logging",
    "detect_language",
    "get_logger",
    "normalize_for_hash",
    "throttled_gather",
]
