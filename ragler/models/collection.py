"""Collection registry and published-content read models.

A collection is a named vector-index collection with a vector dimension
fixed at creation.  The read models below are projections of published
entry payloads (see :mod:`ragler.models.payload`) used for browsing and
search; they never feed back into the index.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CollectionInfo(BaseModel):
    """One registered collection."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    dimension: int = Field(ge=1)
    created_by: str | None = None
    created_at: datetime


class PublishedChunk(BaseModel):
    """A published entry, flattened for display."""

    model_config = ConfigDict(frozen=True)

    id: str
    source_id: str
    title: str | None = None
    url: str | None = None
    revision: int | None = None
    chunk_id: str | None = None
    index: int = 0
    type: str | None = None
    section: str | None = None
    text: str = ""
    lang: str | None = None
    tags: list[str] = Field(default_factory=list)
    quality_score: int | None = None
    quality_issues: list[str] = Field(default_factory=list)

    @classmethod
    def from_point(cls, point_id: str, payload: dict[str, Any]) -> PublishedChunk:
        doc = payload.get("doc") or {}
        chunk = payload.get("chunk") or {}
        editor = payload.get("editor") or {}
        return cls(
            id=point_id,
            source_id=doc.get("source_id", ""),
            title=doc.get("title"),
            url=doc.get("url"),
            revision=doc.get("revision"),
            chunk_id=chunk.get("id"),
            index=chunk.get("index", 0),
            type=chunk.get("type"),
            section=chunk.get("section"),
            text=chunk.get("text", ""),
            lang=chunk.get("lang"),
            tags=list(payload.get("tags") or []),
            quality_score=editor.get("quality_score"),
            quality_issues=list(editor.get("quality_issues") or []),
        )


class ChunkPage(BaseModel):
    """One page of published entries; ``next_offset`` is opaque."""

    model_config = ConfigDict(frozen=True)

    chunks: list[PublishedChunk]
    total: int
    limit: int
    next_offset: str | None = None


class DocumentSummary(BaseModel):
    """All live entries sharing one ``doc.source_id``."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    title: str | None = None
    source_type: str | None = None
    url: str | None = None
    filename: str | None = None
    revision: int | None = None
    chunk_count: int
    avg_quality_score: int | None = None
    ingest_date: datetime | None = None
    last_modified_at: datetime | None = None
    last_modified_by: str | None = None


class DocumentDetail(BaseModel):
    """A document summary with its entries in publish order."""

    model_config = ConfigDict(frozen=True)

    document: DocumentSummary
    chunks: list[PublishedChunk]


class SearchHit(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float
    chunk: PublishedChunk


class SearchResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    query: str
    collection: str
    results: list[SearchHit]
