"""ragler API layer -- routes, schemas, and middleware."""

from ragler.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from ragler.api.routes import router
from ragler.api.schemas import (
    AgentChatRequest,
    ErrorResponse,
    HealthResponse,
    PreviewResponse,
    PublishSessionRequest,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "AgentChatRequest",
    "ErrorResponse",
    "HealthResponse",
    "PreviewResponse",
    "PublishSessionRequest",
]
