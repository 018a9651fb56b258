"""Heuristic metadata for fragments: type, heading path and language.

Used by the semantic chunker to turn bare LLM fragments into typed ones,
and by the publish engine to fill in metadata for boundary-chunked
fragments that never had any.
"""

from __future__ import annotations

import re

from ragler.models.session import Chunk, ChunkType
from ragler.utils.text_normalizer import detect_language

DEFAULT_NAVIGATION_KEYWORDS: tuple[str, ...] = (
    "контакты",
    "контактные данные",
    "репозиторий",
    "быстрая навигация",
    "полезные ссылки",
    "где найти",
    "канал в slack",
    "useful links",
    "quick navigation",
    "contacts:",
    "links:",
    "where to find",
    "slack channel",
    "repository:",
)

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$", re.MULTILINE)
_FAQ_RE = re.compile(r"^(q:|question:|вопрос:|a:|answer:|ответ:)", re.IGNORECASE)
_GLOSSARY_RE = re.compile(r"^[\w\s]{1,60}?\s[-–—]\s\S", re.UNICODE)
_TABLE_ROW_RE = re.compile(r"^\s*\|.*\|\s*$")


def classify_chunk_type(text: str, navigation_keywords: tuple[str, ...] | None = None) -> ChunkType:
    """Classify *text* into a :class:`ChunkType`.

    Code fences win, then single Markdown table rows, then navigation
    keywords, FAQ prefixes and ``term - definition`` glossary lines.
    Everything else is knowledge.
    """
    stripped = text.strip()
    if stripped.startswith("```"):
        return ChunkType.CODE
    if "\n" not in stripped and _TABLE_ROW_RE.match(stripped):
        return ChunkType.TABLE_ROW

    lower = stripped.lower()
    keywords = navigation_keywords if navigation_keywords is not None else DEFAULT_NAVIGATION_KEYWORDS
    if any(keyword in lower for keyword in keywords):
        return ChunkType.NAVIGATION
    if _FAQ_RE.match(stripped):
        return ChunkType.FAQ
    if _GLOSSARY_RE.match(stripped):
        return ChunkType.GLOSSARY
    return ChunkType.KNOWLEDGE


def heading_path_at(source: str, offset: int) -> list[str]:
    """Return the Markdown heading hierarchy in force at *offset* of *source*."""
    stack: list[tuple[int, str]] = []
    for match in _HEADING_RE.finditer(source):
        if match.start() > offset:
            break
        level = len(match.group(1))
        while stack and stack[-1][0] >= level:
            stack.pop()
        stack.append((level, match.group(2).strip()))
    return [title for _, title in stack]


def section_from_path(heading_path: list[str]) -> str | None:
    return " / ".join(heading_path) if heading_path else None


class FragmentLocator:
    """Finds successive fragments inside their source text.

    Fragments arrive in document order, so each search starts where the
    previous match began.  Fragments the model rewrote will not be found
    verbatim; for those the first line is tried, then the last known
    position is reused.
    """

    def __init__(self, source: str) -> None:
        self._source = source
        self._cursor = 0

    def locate(self, text: str) -> int:
        for needle in (text.strip(), text.strip().split("\n", 1)[0][:80]):
            if not needle:
                continue
            found = self._source.find(needle, self._cursor)
            if found >= 0:
                self._cursor = found
                return found
        return self._cursor


def enrich_chunk(
    chunk: Chunk,
    heading_path: list[str] | None = None,
    navigation_keywords: tuple[str, ...] | None = None,
) -> Chunk:
    """Return *chunk* with type, heading path, section and language filled in.

    Fields already set on the chunk are kept.
    """
    path = list(chunk.heading_path) or list(heading_path or [])
    return chunk.model_copy(
        update={
            "type": chunk.type or classify_chunk_type(chunk.text, navigation_keywords),
            "heading_path": path,
            "section": chunk.section or section_from_path(path),
            "lang": chunk.lang or detect_language(chunk.text),
        }
    )
