"""Pydantic v2 models for ragler.

- **session** -- Chunk, Session, SessionStatus, ChunkingConfig and friends.
- **payload** -- Vector-index payload, publish request/result.
- **collection** -- Collection registry records and published-content views.
- **agent** -- Agent events, tool calls, operation suggestions, chat turns.
"""

from ragler.models.agent import (
    AgentEvent,
    AgentEventType,
    ChatRole,
    ChatSessionInfo,
    ChatTurn,
    LLMChatResponse,
    OperationAction,
    OperationSuggestion,
    ToolCall,
)
from ragler.models.collection import (
    ChunkPage,
    CollectionInfo,
    DocumentDetail,
    DocumentSummary,
    PublishedChunk,
    SearchHit,
    SearchResponse,
)
from ragler.models.payload import (
    PointPayload,
    PublishRequest,
    PublishResult,
    VectorPoint,
)
from ragler.models.session import (
    Chunk,
    ChunkingConfig,
    ChunkingMethod,
    ChunkType,
    PreviewResult,
    Session,
    SessionStatus,
    SessionSummary,
    SourceType,
)

__all__ = [
    "AgentEvent",
    "AgentEventType",
    "ChatRole",
    "ChatSessionInfo",
    "ChatTurn",
    "Chunk",
    "ChunkPage",
    "ChunkType",
    "ChunkingConfig",
    "ChunkingMethod",
    "CollectionInfo",
    "DocumentDetail",
    "DocumentSummary",
    "LLMChatResponse",
    "OperationAction",
    "OperationSuggestion",
    "PointPayload",
    "PreviewResult",
    "PublishRequest",
    "PublishResult",
    "PublishedChunk",
    "SearchHit",
    "SearchResponse",
    "Session",
    "SessionStatus",
    "SessionSummary",
    "SourceType",
    "ToolCall",
    "VectorPoint",
]
