"""Published vector-index payload models.

Every published fragment becomes one point in the vector index with a
random UUID id and the nested payload below.  All points sharing a
``doc.source_id`` form one document and are replaced wholesale on every
publish of that source; nothing is updated in place.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DocPayload(BaseModel):
    """Document-level provenance shared by all entries of one source."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    source_type: str
    url: str
    filename: str | None = None
    title: str | None = None
    revision: int = Field(ge=1)
    ingest_date: datetime
    last_modified_at: datetime
    last_modified_by: str | None = None


class ChunkPayload(BaseModel):
    """Fragment-level content and classification."""

    model_config = ConfigDict(frozen=True)

    id: str
    index: int = Field(ge=0)
    type: str
    heading_path: list[str] = Field(default_factory=list)
    section: str | None = None
    text: str
    content_hash: str
    lang: str


class AclPayload(BaseModel):
    """Access control attached to each entry."""

    model_config = ConfigDict(frozen=True)

    visibility: str = "internal"
    allowed_groups: list[str] = Field(default_factory=list)
    allowed_users: list[str] = Field(default_factory=list)


class EditorPayload(BaseModel):
    """Curation metadata from the draft editor."""

    model_config = ConfigDict(frozen=True)

    position: int = Field(ge=0)
    quality_score: int | None = None
    quality_issues: list[str] = Field(default_factory=list)
    last_edited_at: datetime | None = None
    last_edited_by: str | None = None
    edit_count: int = 0


class PointPayload(BaseModel):
    """Complete payload of one vector-index entry."""

    model_config = ConfigDict(frozen=True)

    doc: DocPayload
    chunk: ChunkPayload
    tags: list[str] = Field(default_factory=list, max_length=12)
    acl: AclPayload = Field(default_factory=AclPayload)
    editor: EditorPayload


class VectorPoint(BaseModel):
    """An id + vector + JSON payload ready for upsert."""

    model_config = ConfigDict(frozen=True)

    id: str
    vector: list[float]
    payload: dict[str, Any]


class PublishRequest(BaseModel):
    """Caller-supplied publish options."""

    model_config = ConfigDict(frozen=True)

    target_collection: str | None = None
    user_id: str | None = None
    title: str | None = None
    tags: list[str] = Field(default_factory=list)
    allowed_groups: list[str] = Field(default_factory=list)
    allowed_users: list[str] = Field(default_factory=list)


class PublishResult(BaseModel):
    """Outcome of a successful replace-publish."""

    model_config = ConfigDict(frozen=True)

    published_chunks: int
    collection_id: str
    source_id: str
    revision: int
