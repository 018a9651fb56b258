"""Strategy selection between the boundary and semantic chunkers."""

from __future__ import annotations

from typing import Callable

import structlog

from ragler.models.session import Chunk, ChunkingConfig, ChunkingMethod
from ragler.services.boundary_chunker import BoundaryChunker
from ragler.services.semantic_chunker import SemanticChunker
from ragler.utils.errors import ForbiddenError, UnsupportedSourceError
from ragler.utils.logging import get_logger


class ChunkingService:
    """Runs the chunker named by a session's :class:`ChunkingConfig`.

    A new :class:`BoundaryChunker` is built per call because size and
    overlap are per-session settings.  The semantic chunker is shared and
    optional; without one, or with the feature switched off, requests for
    the ``llm`` method are refused.
    """

    def __init__(
        self,
        semantic_chunker: SemanticChunker | None = None,
        semantic_enabled: bool = True,
        length_function: Callable[[str], int] | None = None,
        chars_per_token: float = 3.5,
        max_ratio: float = 1.75,
    ) -> None:
        self._semantic = semantic_chunker
        self._semantic_enabled = semantic_enabled
        self._length_function = length_function
        self._chars_per_token = chars_per_token
        self._max_ratio = max_ratio
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def supported_methods(self) -> list[str]:
        methods = [ChunkingMethod.BOUNDARY.value]
        if self._semantic is not None and self._semantic_enabled:
            methods.append(ChunkingMethod.LLM.value)
        return methods

    async def chunk(self, text: str, config: ChunkingConfig) -> list[Chunk]:
        """Split *text* with the method and sizes in *config*."""
        if config.method == ChunkingMethod.LLM:
            if not self._semantic_enabled:
                raise ForbiddenError(message="Semantic chunking is disabled")
            if self._semantic is None:
                raise UnsupportedSourceError(
                    requested=config.method.value,
                    supported=self.supported_methods(),
                )
            chunks = await self._semantic.chunk(text)
        else:
            chunker = BoundaryChunker(
                chunk_size=config.chunk_size,
                overlap=config.overlap,
                max_chunk_size=max(config.chunk_size, int(config.chunk_size * self._max_ratio)),
                length_function=self._length_function,
                chars_per_token=self._chars_per_token,
            )
            chunks = chunker.chunk(text)

        self._logger.info(
            "chunks_generated",
            method=config.method.value,
            chunk_size=config.chunk_size,
            overlap=config.overlap,
            chunks=len(chunks),
        )
        return chunks
