"""Translation of ``openai`` SDK exceptions into ragler's typed errors.

Shared by the chat and embedding adapters so both classify failures the
same way:

    APITimeoutError        -> ProviderTimeoutError (retryable)
    RateLimitError (429)   -> RateLimitError (retryable, Retry-After)
    AuthenticationError    -> UpstreamError (not retryable)
    APIConnectionError     -> UpstreamError (retryable)
    APIStatusError         -> UpstreamError (retryable iff status >= 500)
"""

from __future__ import annotations

import openai

from ragler.utils.errors import (
    ProviderTimeoutError,
    RaglerError,
    RateLimitError,
    UpstreamError,
)


def parse_retry_after(exc: openai.APIStatusError) -> float | None:
    """Return the provider's suggested wait in seconds, if any header carries it."""
    headers = exc.response.headers if exc.response is not None else {}
    retry_after_ms = headers.get("retry-after-ms")
    if retry_after_ms:
        try:
            return float(retry_after_ms) / 1000.0
        except ValueError:
            pass
    retry_after = headers.get("retry-after")
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            return None
    return None


def map_openai_error(
    exc: openai.APIError,
    provider_name: str,
    elapsed: float | None = None,
) -> RaglerError:
    """Return the typed error matching an ``openai`` SDK exception."""
    if isinstance(exc, openai.APITimeoutError):
        return ProviderTimeoutError(
            message=f"Request timed out after {elapsed:.1f}s" if elapsed else "Request timed out",
            provider_name=provider_name,
            elapsed=elapsed,
        )
    if isinstance(exc, openai.RateLimitError):
        return RateLimitError(
            message=f"Rate limit exceeded: {exc.message}",
            provider_name=provider_name,
            retry_after=parse_retry_after(exc),
        )
    if isinstance(exc, openai.AuthenticationError):
        return UpstreamError(
            message="Authentication with the provider failed",
            provider_name=provider_name,
            retryable=False,
            status=exc.status_code,
        )
    if isinstance(exc, openai.APIConnectionError):
        return UpstreamError(
            message=f"Connection to provider failed: {exc.message}",
            provider_name=provider_name,
            retryable=True,
        )
    if isinstance(exc, openai.APIStatusError):
        return UpstreamError(
            message=f"Provider API error ({exc.status_code}): {exc.message}",
            provider_name=provider_name,
            retryable=exc.status_code >= 500,
            status=exc.status_code,
        )
    return UpstreamError(
        message=f"Provider API error: {exc}",
        provider_name=provider_name,
        retryable=False,
    )
