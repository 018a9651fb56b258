"""Text normalization utilities for hashing, language tagging and comparison.

Three concerns live here:

1. **Content hashing** -- ``normalize_for_hash`` canonicalises whitespace,
   leading emoji and case so that cosmetic edits do not change a chunk's
   ``content_hash`` in the published payload.

2. **Language tagging** -- ``detect_language`` classifies text as ``ru``,
   ``en`` or ``mixed`` from the ratio of Cyrillic to Latin letters.

3. **Near-duplicate detection** -- ``similarity`` wraps rapidfuzz so the
   quality analysis can flag chunks that say the same thing twice.
"""

from __future__ import annotations

import hashlib
import re

from rapidfuzz import fuzz

_CYRILLIC_RE = re.compile(r"[\u0400-\u04FF]")
_LATIN_RE = re.compile(r"[a-zA-Z]")
_MULTI_SPACE_RE = re.compile(r" {2,}")
_MULTI_NEWLINE_RE = re.compile(r"\n{3,}")
_LEADING_EMOJI_RE = re.compile(
    r"^[\U0001F300-\U0001F9FF\u2600-\u26FF\u2700-\u27BF]+\s*"
)
_WHITESPACE_RE = re.compile(r"\s+")


def has_cyrillic(text: str) -> bool:
    """Return ``True`` if *text* contains at least one Cyrillic letter."""
    return bool(_CYRILLIC_RE.search(text))


def normalize_for_hash(text: str) -> str:
    """Canonicalise *text* before hashing.

    Trims, collapses runs of spaces, collapses three or more newlines to
    two, drops leading emoji (common in wiki headings) and lowercases.
    """
    normalized = text.strip()
    normalized = _MULTI_SPACE_RE.sub(" ", normalized)
    normalized = _MULTI_NEWLINE_RE.sub("\n\n", normalized)
    normalized = _LEADING_EMOJI_RE.sub("", normalized)
    return normalized.lower()


def compute_content_hash(text: str) -> str:
    """Return ``"sha256:<hex>"`` of the normalized text."""
    digest = hashlib.sha256(normalize_for_hash(text).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


def detect_language(text: str) -> str:
    """Classify *text* as ``"ru"``, ``"en"`` or ``"mixed"``.

    More than 10% Cyrillic letters means ``ru``; no Cyrillic and Latin
    letters making up over 30% of all characters means ``en``.  Text with
    no letters at all defaults to ``en``.
    """
    if not text:
        return "en"

    cyrillic = len(_CYRILLIC_RE.findall(text))
    latin = len(_LATIN_RE.findall(text))
    total_letters = cyrillic + latin
    if total_letters == 0:
        return "en"

    cyrillic_ratio = cyrillic / total_letters
    if cyrillic_ratio > 0.1:
        return "ru"
    if cyrillic_ratio == 0 and latin / len(text) > 0.3:
        return "en"
    return "mixed"


def normalize_tag(tag: str) -> str:
    """Lowercase kebab-case a tag: ``"RAG System"`` -> ``"rag-system"``."""
    normalized = _WHITESPACE_RE.sub("-", tag.strip().lower())
    normalized = re.sub(r"[^a-z0-9\u0400-\u04FF-]", "", normalized)
    normalized = re.sub(r"-+", "-", normalized)
    return normalized.strip("-")


def duplicate_key(text: str, prefix_length: int = 50) -> str:
    """Return a cheap grouping key: the first characters of collapsed, lowercased text."""
    collapsed = _WHITESPACE_RE.sub(" ", text.strip().lower())
    return collapsed[:prefix_length]


def similarity(left: str, right: str) -> float:
    """Return token-set similarity between two texts in ``[0.0, 1.0]``.

    Uses rapidfuzz ``token_set_ratio``, which ignores word order and
    repeated tokens, so a chunk and its lightly reworded copy score high.
    """
    if not left or not right:
        return 0.0
    return fuzz.token_set_ratio(left.lower(), right.lower()) / 100.0
