"""Deterministic boundary-aware text splitter.

Splits text into size-bounded fragments, preferring to cut at a paragraph
break, then a line break, then a sentence terminator, and only as a last
resort in the middle of a run of text.

How a split point is chosen
---------------------------
Sizes are measured with ``length_function`` (tokens by default).  Split
positions are searched in *character* space, in a window anchored on the
character offset the soft target is expected to land at
(``chunk_size * chars_per_token``) and ending at the offset of the hard
maximum (``max_chunk_size * chars_per_token``).  Within the window each
boundary kind is tried in priority order; the first candidate whose prefix
measures within ``max_chunk_size`` wins.  When nothing qualifies, a binary
search finds the longest prefix that fits (always at least one character).

With ``overlap == 0`` the raw spans tile the input exactly, so joining them
reproduces the original text; emitted fragments are those spans trimmed,
with whitespace-only spans dropped.
"""

from __future__ import annotations

import re
from typing import Callable

import structlog

from ragler.models.session import Chunk, new_chunk_id
from ragler.services.token_counter import TokenCounter
from ragler.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)

# Boundary patterns in priority order; a split lands at ``match.end()``.
_BOUNDARIES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("paragraph", re.compile(r"\n\n")),
    ("line", re.compile(r"\n")),
    ("sentence", re.compile(r"[.!?]\s+")),
)

_DEFAULT_CHARS_PER_TOKEN = 3.5
# The search window opens at most this many characters before the target.
_WINDOW_LEAD_CHARS = 200


class BoundaryChunker:
    """Splits text into fragments at semantic boundaries.

    Parameters
    ----------
    chunk_size:
        Soft target size per fragment (tokens by default).
    overlap:
        Size to step back before the next fragment starts.  Must be
        smaller than *chunk_size*.
    max_chunk_size:
        Hard upper bound per fragment.  Defaults to ``chunk_size * 7 // 4``.
    length_function:
        Measures text size.  Defaults to a tiktoken :class:`TokenCounter`;
        pass ``len`` (with ``chars_per_token=1.0``) to work in characters.
    chars_per_token:
        Ratio used to translate sizes into character offsets for the
        boundary search window.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        overlap: int = 0,
        max_chunk_size: int | None = None,
        length_function: Callable[[str], int] | None = None,
        chars_per_token: float = _DEFAULT_CHARS_PER_TOKEN,
    ) -> None:
        if chunk_size < 1:
            raise ValidationError(message="chunk_size must be positive", details={"chunk_size": chunk_size})
        if overlap < 0 or overlap >= chunk_size:
            raise ValidationError(
                message="overlap must be non-negative and smaller than chunk_size",
                details={"chunk_size": chunk_size, "overlap": overlap},
            )
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._max_chunk_size = max_chunk_size or max(chunk_size, chunk_size * 7 // 4)
        if self._max_chunk_size < chunk_size:
            raise ValidationError(
                message="max_chunk_size must be at least chunk_size",
                details={"chunk_size": chunk_size, "max_chunk_size": max_chunk_size},
            )
        self._length = length_function or TokenCounter().count
        self._chars_per_token = chars_per_token

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def max_chunk_size(self) -> int:
        return self._max_chunk_size

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[Chunk]:
        """Split *text* into fresh :class:`Chunk` objects (``is_dirty=False``)."""
        pieces = self.split_text(text)
        chunks = [Chunk(id=new_chunk_id(), text=piece) for piece in pieces]
        logger.debug(
            "boundary_chunking_complete",
            chunks=len(chunks),
            input_chars=len(text or ""),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return chunks

    def split_text(self, text: str) -> list[str]:
        """Return trimmed, non-empty fragment texts in order."""
        pieces: list[str] = []
        for start, end in self.split_spans(text):
            piece = text[start:end].strip()
            if piece:
                pieces.append(piece)
        return pieces

    def split_spans(self, text: str) -> list[tuple[int, int]]:
        """Return raw ``(start, end)`` character spans before trimming."""
        if not text or not text.strip():
            return []
        if self._length(text) <= self._chunk_size:
            return [(0, len(text))]

        spans: list[tuple[int, int]] = []
        overlap_chars = int(self._overlap * self._chars_per_token)
        total = len(text)
        start = 0
        while start < total:
            remaining = text[start:]
            if self._length(remaining) <= self._chunk_size:
                spans.append((start, total))
                break

            end = start + self._find_split_point(remaining)
            spans.append((start, end))
            if end >= total:
                break
            # Step back for overlap but always move forward at least one char.
            start = max(end - overlap_chars, start + 1) if overlap_chars else end
        return spans

    # ------------------------------------------------------------------
    # Split point search
    # ------------------------------------------------------------------

    def _find_split_point(self, remaining: str) -> int:
        """Return the offset in ``(0, len(remaining)]`` to cut *remaining* at."""
        target_chars = int(self._chunk_size * self._chars_per_token)
        max_chars = int(self._max_chunk_size * self._chars_per_token)
        window_start = max(1, target_chars - min(_WINDOW_LEAD_CHARS, target_chars // 2))
        window_end = min(len(remaining), max_chars)

        if window_start < window_end:
            window = remaining[window_start:window_end]
            for kind, pattern in _BOUNDARIES:
                for match in pattern.finditer(window):
                    candidate = window_start + match.end()
                    if self._length(remaining[:candidate]) <= self._max_chunk_size:
                        return candidate
                    # Later matches only grow the prefix; try the next kind.
                    logger.debug("boundary_candidate_too_large", kind=kind, offset=candidate)
                    break

        return self._find_hard_split_point(remaining)

    def _find_hard_split_point(self, remaining: str) -> int:
        """Binary-search the longest prefix within ``max_chunk_size`` (minimum 1)."""
        lo, hi, best = 1, len(remaining), 1
        while lo <= hi:
            mid = (lo + hi) // 2
            if self._length(remaining[:mid]) <= self._max_chunk_size:
                best = mid
                lo = mid + 1
            else:
                hi = mid - 1
        return best
