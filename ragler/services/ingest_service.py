"""Ingestion: one raw source in, one DRAFT session out.

Three source types are supported:

- ``manual`` -- text pasted by an operator, url ``manual://input/<session_id>``
  so each paste is its own document.
- ``file``   -- uploaded bytes, parser chosen by extension, url
  ``file://<filename>``.
- ``web``    -- a public page fetched and reduced to its main text.

Fragments are generated before the session is first written so that a
chunking failure never leaves a half-built draft in the store.
"""

from __future__ import annotations

import time

import structlog

from ragler.interfaces.source_provider import IWebSource, ParsedDocument
from ragler.models.session import ChunkingConfig, Session, SourceType, new_session_id
from ragler.providers.parser.resolver import FileParserResolver
from ragler.services.chunking_service import ChunkingService
from ragler.services.feature_flags import FeatureFlags
from ragler.services.session_service import SessionService
from ragler.utils.errors import ForbiddenError, ValidationError
from ragler.utils.logging import get_logger

MANUAL_SOURCE_PREFIX = "manual://input/"
_TITLE_MAX_CHARS = 120


class IngestService:
    """Builds draft sessions from manual text, files and web pages."""

    def __init__(
        self,
        sessions: SessionService,
        chunking: ChunkingService,
        parsers: FileParserResolver,
        web_source: IWebSource | None = None,
        features: FeatureFlags | None = None,
    ) -> None:
        self._sessions = sessions
        self._chunking = chunking
        self._parsers = parsers
        self._web = web_source
        self._features = features or FeatureFlags()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest_manual(
        self,
        content: str,
        title: str | None = None,
        chunking: ChunkingConfig | None = None,
    ) -> Session:
        if not content or not content.strip():
            raise ValidationError(message="Content cannot be empty")
        document = ParsedDocument(content=content, title=title or _first_line(content))
        session_id = new_session_id()
        return await self._create(
            SourceType.MANUAL,
            f"{MANUAL_SOURCE_PREFIX}{session_id}",
            document,
            chunking,
            session_id=session_id,
        )

    async def ingest_file(
        self,
        data: bytes,
        filename: str,
        chunking: ChunkingConfig | None = None,
    ) -> Session:
        if not self._features.is_enabled("file_ingest"):
            raise ForbiddenError(message="File ingestion is disabled")
        if not filename:
            raise ValidationError(message="Filename is required")
        if not data:
            raise ValidationError(message=f"{filename} is empty")

        parser = self._parsers.resolve(filename)
        document = await parser.parse(data, filename)
        if not document.content.strip():
            raise ValidationError(
                message=f"No text could be extracted from {filename}",
                details={"filename": filename},
            )
        return await self._create(SourceType.FILE, f"file://{filename}", document, chunking)

    async def ingest_web(self, url: str, chunking: ChunkingConfig | None = None) -> Session:
        if not self._features.is_enabled("web_ingest") or self._web is None:
            raise ForbiddenError(message="Web ingestion is disabled")
        document = await self._web.fetch(url)
        return await self._create(SourceType.WEB, document.source_url or url, document, chunking)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _create(
        self,
        source_type: SourceType,
        source_url: str,
        document: ParsedDocument,
        chunking: ChunkingConfig | None,
        session_id: str | None = None,
    ) -> Session:
        started = time.monotonic()
        config = chunking or ChunkingConfig()
        chunks = await self._chunking.chunk(document.content, config)
        session = Session(
            session_id=session_id or new_session_id(),
            source_type=source_type,
            source_url=source_url,
            raw_content=document.content,
            title=document.title,
            metadata=document.metadata,
            chunks=chunks,
            chunking=config,
        )
        await self._sessions.create_session(session)
        self._logger.info(
            "ingestion_complete",
            session_id=session.session_id,
            source_type=source_type.value,
            chars=len(document.content),
            chunks=len(chunks),
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        return session


def _first_line(content: str) -> str | None:
    for line in content.splitlines():
        stripped = line.strip().lstrip("#").strip()
        if stripped:
            return stripped[:_TITLE_MAX_CHARS]
    return None
