"""Draft session models.

Defines Pydantic v2 models for fragments (chunks), chunking configuration
and draft sessions.  All models use frozen config: every state change
produces a new instance via ``model_copy(update={...})`` and is written
back to the key-value store as a whole.

Lifecycle of a session:

    DRAFT --preview--> PREVIEW --publish--> PUBLISHED
      |                   |
      +------delete-------+--> DELETED

PUBLISHED and DELETED are terminal.  The state machine that enforces
these transitions lives in ``ragler/services/session_service.py``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class SessionStatus(str, Enum):
    """Lifecycle states of a draft session."""

    DRAFT = "DRAFT"
    PREVIEW = "PREVIEW"
    PUBLISHED = "PUBLISHED"
    DELETED = "DELETED"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.PUBLISHED, SessionStatus.DELETED)


class SourceType(str, Enum):
    """Where a session's raw content came from."""

    MANUAL = "manual"
    FILE = "file"
    WEB = "web"


class ChunkingMethod(str, Enum):
    """Fragment generation algorithm for a session."""

    BOUNDARY = "boundary"  # Deterministic paragraph/line/sentence splitter
    LLM = "llm"            # LLM-driven semantic splitter


class ChunkType(str, Enum):
    """Content classification carried into the published payload."""

    KNOWLEDGE = "knowledge"
    NAVIGATION = "navigation"
    TABLE_ROW = "table_row"
    GLOSSARY = "glossary"
    FAQ = "faq"
    CODE = "code"


# ---------------------------------------------------------------------------
# Chunk -- one curated fragment of text inside a session.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A fragment of curated text.

    ``id`` never changes once created.  ``is_dirty`` is set by every
    operation that alters text after generation (merge, split, update) and
    is never cleared automatically.  The remaining fields are optional
    metadata filled by the semantic chunker or by edits.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    is_dirty: bool = False
    # Semantic metadata (None when produced by the boundary chunker).
    type: ChunkType | None = None
    heading_path: list[str] = Field(default_factory=list)
    section: str | None = None
    lang: str | None = None
    # Edit audit, surfaced in the published ``editor`` payload.
    edit_count: int = Field(default=0, ge=0)
    last_edited_at: datetime | None = None
    last_edited_by: str | None = None


class ChunkingConfig(BaseModel):
    """Per-session fragment generation settings."""

    model_config = ConfigDict(frozen=True)

    method: ChunkingMethod = ChunkingMethod.BOUNDARY
    chunk_size: int = Field(default=1000, ge=1, le=8000)
    overlap: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _overlap_below_size(self) -> "ChunkingConfig":
        if self.overlap >= self.chunk_size:
            raise ValueError("overlap must be smaller than chunk_size")
        return self


# ---------------------------------------------------------------------------
# Session -- a time-bounded draft for one ingested source.
# ---------------------------------------------------------------------------
class Session(BaseModel):
    """A mutable draft holding one source's fragments before publish.

    Immutable model; the session service writes new copies back to the
    store.  Fragment ids are unique within a session and list order is
    the publish order.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    source_type: SourceType
    source_url: str
    raw_content: str | None = None
    title: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: SessionStatus = SessionStatus.DRAFT
    chunks: list[Chunk] = Field(default_factory=list)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def chunk_ids(self) -> list[str]:
        return [chunk.id for chunk in self.chunks]

    def index_of(self, chunk_id: str) -> int:
        """Return the position of *chunk_id*, or -1 when absent."""
        for idx, chunk in enumerate(self.chunks):
            if chunk.id == chunk_id:
                return idx
        return -1


class SessionSummary(BaseModel):
    """Lightweight listing entry for a draft session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    source_type: SourceType
    source_url: str
    title: str | None = None
    status: SessionStatus
    chunk_count: int
    updated_at: datetime


class PreviewResult(BaseModel):
    """Outcome of moving a session into PREVIEW."""

    model_config = ConfigDict(frozen=True)

    session: Session
    warnings: list[str] = Field(default_factory=list)


def new_session_id() -> str:
    return f"session_{uuid.uuid4()}"


def new_chunk_id() -> str:
    return f"chunk_{uuid.uuid4()}"
