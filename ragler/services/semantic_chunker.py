"""LLM-driven semantic chunker.

Delegates the decision of *where* to split to the LLM, then owns
everything around that call:

1. PROMPT   -- a fixed system prompt plus a strict JSON schema
               (``{"chunks": [{"id", "text", "is_dirty"}]}``, at least one).
2. WINDOW   -- content longer than ``max_content_length`` is sent in
               overlapping windows, one request at a time.
3. VALIDATE -- every response is parsed and validated with pydantic.  A
               single malformed response fails the whole call with
               :class:`ParseError`; fragments are never silently dropped.
4. DEDUPE   -- windows overlap, so fragments repeated across a window seam
               are removed before ids are assigned.
5. ENRICH   -- each fragment gets type, heading path, section and language.

Provider failures (rate limit, timeout, upstream) propagate unchanged so
the caller can decide whether to retry or fall back to the boundary
chunker.
"""

from __future__ import annotations

import time

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ragler.interfaces.llm_provider import ILLMProvider
from ragler.models.session import Chunk, new_chunk_id
from ragler.providers.llm.openai_provider import json_schema_format
from ragler.services.chunk_classifier import FragmentLocator, enrich_chunk, heading_path_at
from ragler.utils.errors import ParseError, RaglerError, ValidationError
from ragler.utils.llm_json import parse_json_object

logger = structlog.get_logger(logger_name=__name__)

CHUNKING_SYSTEM_PROMPT = """You are a document chunking specialist. Split the provided content into semantically meaningful chunks for a knowledge retrieval system.

Guidelines:
1. Each chunk must be a complete, self-contained piece of information.
2. Preserve logical boundaries: sections, paragraphs, topic shifts.
3. Keep related information together; never split mid-explanation.
4. Target 200-1000 characters per chunk, but prefer coherence over size.
5. Copy the text verbatim. Do not summarise, translate or rephrase.

Rules:
- IDs are sequential: temp_1, temp_2, temp_3, ...
- is_dirty is always false.
- If the content cannot be chunked meaningfully, return one chunk with all of it."""

CHUNK_RESPONSE_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "chunks": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "text": {"type": "string", "minLength": 1},
                    "is_dirty": {"type": "boolean"},
                },
                "required": ["id", "text", "is_dirty"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["chunks"],
    "additionalProperties": False,
}

_WINDOW_OVERLAP = 500


class LLMChunkItem(BaseModel):
    id: str
    text: str = Field(min_length=1)
    is_dirty: bool = False


class LLMChunkingResponse(BaseModel):
    chunks: list[LLMChunkItem] = Field(min_length=1)


def is_duplicate_fragment(candidate: str, existing: str) -> bool:
    """Return ``True`` when two fragments from overlapping windows are the same content.

    Exact matches and containment count, as does a long fragment whose
    interior (ten characters trimmed each side) appears in the other.
    """
    left, right = candidate.strip(), existing.strip()
    if left == right or left in right or right in left:
        return True
    shorter, longer = (left, right) if len(left) < len(right) else (right, left)
    return len(shorter) > 50 and shorter[10:-10] in longer


class SemanticChunker:
    """Splits text into typed fragments using an LLM.

    Parameters
    ----------
    llm:
        Provider used for the structured completion.
    max_content_length:
        Maximum characters per request; longer content is windowed.
    max_tokens:
        Completion budget per request.
    navigation_keywords:
        Overrides the default cues used to tag navigation fragments.
    """

    def __init__(
        self,
        llm: ILLMProvider,
        max_content_length: int = 30000,
        max_tokens: int = 16000,
        navigation_keywords: tuple[str, ...] | None = None,
    ) -> None:
        if max_content_length < 2:
            raise ValidationError(message="max_content_length must be at least 2")
        self._llm = llm
        self._max_content_length = max_content_length
        self._max_tokens = max_tokens
        self._navigation_keywords = navigation_keywords

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def chunk(self, text: str) -> list[Chunk]:
        """Split *text* into enriched :class:`Chunk` objects.

        Raises
        ------
        ValidationError
            Empty or whitespace-only input.
        ParseError
            The model returned malformed or schema-violating output.
        RateLimitError, ProviderTimeoutError, UpstreamError
            Provider failures, unchanged.
        """
        content = (text or "").strip()
        if not content:
            raise ValidationError(message="Content cannot be empty or whitespace-only")

        started = time.monotonic()
        windows = self._windows(content)
        logger.info(
            "semantic_chunking_start",
            content_length=len(content),
            windows=len(windows),
            provider=self._llm.get_provider_name(),
        )

        items: list[LLMChunkItem] = []
        try:
            for window in windows:
                items.extend(await self._request(window))
        except RaglerError as exc:
            logger.error(
                "semantic_chunking_failed",
                error_type=type(exc).__name__,
                error=str(exc),
                retryable=exc.retryable,
                duration_ms=round((time.monotonic() - started) * 1000),
            )
            raise

        if len(windows) > 1:
            items = self._deduplicate(items)

        locator = FragmentLocator(content)
        chunks: list[Chunk] = []
        for item in items:
            offset = locator.locate(item.text)
            chunk = Chunk(id=new_chunk_id(), text=item.text.strip())
            chunks.append(
                enrich_chunk(
                    chunk,
                    heading_path=heading_path_at(content, offset),
                    navigation_keywords=self._navigation_keywords,
                )
            )

        logger.info(
            "semantic_chunking_complete",
            chunks=len(chunks),
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        return chunks

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _windows(self, content: str) -> list[str]:
        """Cut *content* into overlapping windows of ``max_content_length``."""
        if len(content) <= self._max_content_length:
            return [content]
        overlap = min(_WINDOW_OVERLAP, self._max_content_length // 2)
        windows: list[str] = []
        start = 0
        while start < len(content):
            end = min(start + self._max_content_length, len(content))
            windows.append(content[start:end])
            if end >= len(content):
                break
            start = max(end - overlap, start + 1)
        return windows

    async def _request(self, window: str) -> list[LLMChunkItem]:
        raw = await self._llm.complete(
            system_prompt=CHUNKING_SYSTEM_PROMPT,
            user_prompt=window,
            temperature=0.0,
            max_tokens=self._max_tokens,
            response_format=json_schema_format("chunk_response", CHUNK_RESPONSE_SCHEMA),
        )
        data = parse_json_object(raw, provider_name=self._llm.get_provider_name())
        try:
            parsed = LLMChunkingResponse.model_validate(data)
        except PydanticValidationError as exc:
            raise ParseError(
                message=f"Invalid chunking response: {exc.error_count()} validation error(s)",
                provider_name=self._llm.get_provider_name(),
                raw_response=raw,
            ) from exc

        blank = [item.id for item in parsed.chunks if not item.text.strip()]
        if blank:
            raise ParseError(
                message=f"Chunking response contains blank chunks: {', '.join(blank)}",
                provider_name=self._llm.get_provider_name(),
                raw_response=raw,
            )
        return parsed.chunks

    @staticmethod
    def _deduplicate(items: list[LLMChunkItem]) -> list[LLMChunkItem]:
        unique: list[LLMChunkItem] = []
        for item in items:
            if any(is_duplicate_fragment(item.text, kept.text) for kept in unique):
                continue
            unique.append(item)
        return [
            item.model_copy(update={"id": f"temp_{idx}"})
            for idx, item in enumerate(unique, start=1)
        ]
