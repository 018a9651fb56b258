"""Custom exception hierarchy for ragler.

All application exceptions inherit from :class:`RaglerError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "qdrant", "redis") caused the failure.

Every class also declares three class-level attributes consumed by the
HTTP error middleware:

- ``reason`` -- stable machine-readable code returned to clients
- ``status_code`` -- HTTP status the error maps to
- ``retryable`` -- whether a client may safely retry the same request

The hierarchy:

    RaglerError  (base)
    +-- ValidationError          (malformed caller input, 400)
    |   +-- UnsupportedSourceError (unknown file type / source, 400)
    +-- NotFoundError            (session / chunk / collection absent, 404)
    +-- ForbiddenError           (role or disabled capability, 403)
    +-- InvalidStateError        (operation illegal in lifecycle state, 400)
    +-- ConflictError            (resource already exists, 409)
    +-- RateLimitError           (provider backpressure, 429, retryable)
    +-- ProviderTimeoutError     (provider deadline exceeded, 504, retryable)
    +-- UpstreamError            (provider / infra failure, 502)
    +-- ParseError               (unparseable provider response, 422)
    +-- ConfigurationError       (startup / missing config, 500)
"""

from __future__ import annotations

from typing import Any


class RaglerError(Exception):
    """Base exception for all ragler errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    reason: str = "INTERNAL_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    @property
    def details(self) -> dict[str, Any]:
        """Extra structured context for the client-facing error body."""
        return {}

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Caller errors (never retried by the system)
# ---------------------------------------------------------------------------

class ValidationError(RaglerError):
    """Raised when caller input is malformed."""

    reason = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._details = dict(details or {})

    @property
    def details(self) -> dict[str, Any]:
        return dict(self._details)


class UnsupportedSourceError(ValidationError):
    """Raised when no parser or strategy handles the requested source.

    The message enumerates the supported values so the caller can correct
    the request without consulting documentation.
    """

    reason = "UNSUPPORTED_SOURCE"

    def __init__(self, requested: str, supported: list[str]) -> None:
        self._supported = sorted(supported)
        super().__init__(
            message=(
                f"Unsupported source type: {requested}. "
                f"Supported: {', '.join(self._supported)}"
            ),
            details={"requested": requested, "supported": self._supported},
        )

    @property
    def supported(self) -> list[str]:
        return list(self._supported)


class NotFoundError(RaglerError):
    """Raised when a referenced session, chunk, or collection does not exist."""

    reason = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ForbiddenError(RaglerError):
    """Raised when the caller's role or a disabled feature forbids the operation."""

    reason = "FORBIDDEN"
    status_code = 403

    def __init__(
        self,
        message: str = "Operation not permitted",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidStateError(RaglerError):
    """Raised when an operation is not legal in the session's current state."""

    reason = "INVALID_STATE"
    status_code = 400

    def __init__(
        self,
        message: str = "Operation not allowed in the current state",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConflictError(RaglerError):
    """Raised when creating a resource that already exists."""

    reason = "CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str = "Resource already exists",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------

class RateLimitError(RaglerError):
    """Raised when a provider rate limit is exceeded.

    ``retry_after`` carries the provider's suggested wait in seconds when
    it supplied one.
    """

    reason = "RATE_LIMITED"
    status_code = 429
    retryable = True

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._retry_after = retry_after

    @property
    def retry_after(self) -> float | None:
        return self._retry_after

    @property
    def details(self) -> dict[str, Any]:
        return {"retry_after": self._retry_after}


class ProviderTimeoutError(RaglerError):
    """Raised when a provider call exceeds its deadline."""

    reason = "TIMEOUT"
    status_code = 504
    retryable = True

    def __init__(
        self,
        message: str = "Provider request timed out",
        provider_name: str | None = None,
        elapsed: float | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._elapsed = elapsed

    @property
    def elapsed(self) -> float | None:
        return self._elapsed

    @property
    def details(self) -> dict[str, Any]:
        return {"elapsed": self._elapsed}


class UpstreamError(RaglerError):
    """Raised when a provider or infrastructure call fails.

    Retryability is decided per instance: server-side conditions (5xx,
    connection failures) are retryable, client-side rejections are not.
    """

    reason = "UPSTREAM_ERROR"
    status_code = 502

    def __init__(
        self,
        message: str = "Upstream service failed",
        provider_name: str | None = None,
        retryable: bool = True,
        status: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.retryable = retryable
        self._status = status

    @property
    def status(self) -> int | None:
        return self._status

    @property
    def details(self) -> dict[str, Any]:
        return {"status": self._status}


class ParseError(RaglerError):
    """Raised when a provider response cannot be parsed or fails validation.

    The raw response is kept for diagnostics but never echoed to clients.
    """

    reason = "PARSE_ERROR"
    status_code = 422

    def __init__(
        self,
        message: str = "Failed to parse provider response",
        provider_name: str | None = None,
        raw_response: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._raw_response = raw_response

    @property
    def raw_response(self) -> str | None:
        return self._raw_response


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(RaglerError):
    """Raised when configuration is invalid or missing at startup."""

    reason = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
