"""Unit tests for fragment type classification and heading paths."""

from __future__ import annotations

import pytest

from ragler.models.session import Chunk, ChunkType
from ragler.services.chunk_classifier import (
    FragmentLocator,
    classify_chunk_type,
    enrich_chunk,
    heading_path_at,
    section_from_path,
)


class TestClassify:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("```python\nprint('hi')\n```", ChunkType.CODE),
            ("| name | value |", ChunkType.TABLE_ROW),
            ("Useful links: the wiki and the tracker", ChunkType.NAVIGATION),
            ("Q: How do I deploy?\nA: With the deploy tool.", ChunkType.FAQ),
            ("API - application programming interface", ChunkType.GLOSSARY),
            ("Releases go through staging before production.", ChunkType.KNOWLEDGE),
        ],
    )
    def test_types(self, text: str, expected: ChunkType) -> None:
        assert classify_chunk_type(text) == expected

    def test_multi_row_table_is_not_a_row(self) -> None:
        assert classify_chunk_type("| a | b |\n| 1 | 2 |") == ChunkType.KNOWLEDGE

    def test_custom_navigation_keywords(self) -> None:
        assert classify_chunk_type("See the release calendar", ("release calendar",)) == ChunkType.NAVIGATION
        assert classify_chunk_type("Useful links: wiki", ()) == ChunkType.KNOWLEDGE


class TestHeadingPath:
    _SOURCE = "# Top\n\nintro\n\n## Child\n\nbody\n\n### Grandchild\n\ndeep\n\n## Sibling\n\nmore"

    def test_nested_path(self) -> None:
        assert heading_path_at(self._SOURCE, self._SOURCE.index("deep")) == ["Top", "Child", "Grandchild"]

    def test_sibling_replaces_child(self) -> None:
        assert heading_path_at(self._SOURCE, self._SOURCE.index("more")) == ["Top", "Sibling"]

    def test_before_any_heading(self) -> None:
        assert heading_path_at("plain text\n\n# Later", 0) == []

    def test_section_from_path(self) -> None:
        assert section_from_path(["A", "B"]) == "A / B"
        assert section_from_path([]) is None


class TestLocatorAndEnrich:
    def test_locator_moves_forward(self) -> None:
        locator = FragmentLocator("one two one three")
        assert locator.locate("one") == 0
        assert locator.locate("two") == 4
        assert locator.locate("one three") == 8

    def test_locator_falls_back_to_cursor(self) -> None:
        locator = FragmentLocator("alpha beta")
        locator.locate("beta")
        assert locator.locate("rewritten by the model") == 6

    def test_enrich_keeps_existing_fields(self) -> None:
        chunk = Chunk(id="c1", text="Q: why?", type=ChunkType.GLOSSARY, lang="ru", heading_path=["X"])
        enriched = enrich_chunk(chunk, heading_path=["Other"])
        assert enriched.type == ChunkType.GLOSSARY
        assert enriched.lang == "ru"
        assert enriched.heading_path == ["X"]
        assert enriched.section == "X"

    def test_enrich_fills_missing_fields(self) -> None:
        enriched = enrich_chunk(Chunk(id="c1", text="Plain knowledge sentence."), heading_path=["Guide"])
        assert enriched.type == ChunkType.KNOWLEDGE
        assert enriched.lang == "en"
        assert enriched.section == "Guide"
