"""Pydantic request/response schemas for the ragler HTTP API.

Request schemas end with ``Request``, response schemas with
``Response``.  Domain models (``Session``, ``PublishResult``...) are
returned directly where their shape is already the public contract.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ragler.models.collection import CollectionInfo, DocumentSummary
from ragler.models.session import ChunkingConfig, Session


class ErrorResponse(BaseModel):
    """Structured error body returned for every failed request."""

    reason: str = Field(description="Stable machine-readable code, e.g. NOT_FOUND")
    message: str
    retryable: bool = False
    details: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str
    version: str
    features: dict[str, bool] = Field(default_factory=dict)
    providers: dict[str, bool] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

class ManualIngestRequest(BaseModel):
    content: str = Field(min_length=1)
    title: str | None = None
    chunking: ChunkingConfig | None = None


class WebIngestRequest(BaseModel):
    url: str = Field(min_length=1, max_length=2048)
    chunking: ChunkingConfig | None = None


# ---------------------------------------------------------------------------
# Session editing
# ---------------------------------------------------------------------------

class GenerateChunksRequest(BaseModel):
    chunking: ChunkingConfig | None = None


class MergeChunksRequest(BaseModel):
    chunk_ids: list[str] = Field(min_length=2)


class SplitChunkRequest(BaseModel):
    split_points: list[int] | None = None
    new_text_blocks: list[str] | None = None


class UpdateChunkRequest(BaseModel):
    text: str = Field(min_length=1)


class ReorderChunksRequest(BaseModel):
    chunk_ids: list[str]


class DeleteChunksRequest(BaseModel):
    chunk_ids: list[str] = Field(min_length=1)


class PreviewResponse(BaseModel):
    session: Session
    warnings: list[str] = Field(default_factory=list)
    is_valid: bool


class PublishSessionRequest(BaseModel):
    target_collection: str | None = None
    title: str | None = None
    tags: list[str] = Field(default_factory=list)
    allowed_groups: list[str] = Field(default_factory=list)
    allowed_users: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

class CreateCollectionRequest(BaseModel):
    name: str = Field(min_length=1, max_length=63)
    description: str = Field(default="", max_length=500)


class CollectionListResponse(BaseModel):
    collections: list[CollectionInfo]
    total: int


class DocumentListResponse(BaseModel):
    documents: list[DocumentSummary]
    total: int


class QualityScoreRequest(BaseModel):
    score: int = Field(ge=0, le=100)
    issues: list[str] = Field(default_factory=list)


class SearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000)
    limit: int = Field(default=10, ge=1, le=100)
    source_types: list[str] = Field(default_factory=list)
    chunk_types: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    exclude_navigation: bool = True
    score_threshold: float | None = Field(default=None, ge=-1.0, le=1.0)


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------

class AgentChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=10000)
    session_id: str = Field(min_length=1, description="Draft session the chat works on")
    user_id: str | None = None


class ApprovalRequest(BaseModel):
    operation_id: str = Field(min_length=1)


class ApprovalResponse(BaseModel):
    session_id: str
    approved: list[str]
