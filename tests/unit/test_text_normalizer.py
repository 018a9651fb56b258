"""Unit tests for text normalization, hashing, language tagging and similarity."""

from __future__ import annotations

from ragler.utils.text_normalizer import (
    compute_content_hash,
    detect_language,
    duplicate_key,
    has_cyrillic,
    normalize_for_hash,
    normalize_tag,
    similarity,
)


class TestNormalizeForHash:
    def test_collapses_spaces_and_blank_lines(self) -> None:
        assert normalize_for_hash("  Hello   World \n\n\n\nNext  ") == "hello world \n\nnext"

    def test_strips_leading_emoji(self) -> None:
        assert normalize_for_hash("\U0001F4D8 Handbook") == "handbook"

    def test_cosmetic_edits_keep_hash(self) -> None:
        assert compute_content_hash("Hello World") == compute_content_hash("  hello   world ")

    def test_content_change_changes_hash(self) -> None:
        assert compute_content_hash("Hello World") != compute_content_hash("Hello there")

    def test_hash_prefix(self) -> None:
        digest = compute_content_hash("text")
        assert digest.startswith("sha256:")
        assert len(digest) == len("sha256:") + 64


class TestDetectLanguage:
    def test_english(self) -> None:
        assert detect_language("The deploy tool rolls back releases.") == "en"

    def test_russian(self) -> None:
        assert detect_language("Привет мир") == "ru"

    def test_empty_defaults_to_english(self) -> None:
        assert detect_language("") == "en"
        assert detect_language("12345 !!!") == "en"

    def test_sparse_latin_is_mixed(self) -> None:
        assert detect_language("1234567890 a") == "mixed"

    def test_has_cyrillic(self) -> None:
        assert has_cyrillic("abc д") is True
        assert has_cyrillic("abc") is False


class TestTags:
    def test_kebab_case(self) -> None:
        assert normalize_tag("RAG System") == "rag-system"

    def test_drops_punctuation(self) -> None:
        assert normalize_tag("  C++ Tips! ") == "c-tips"

    def test_blank_tag(self) -> None:
        assert normalize_tag("   ") == ""


class TestSimilarity:
    def test_identical_texts(self) -> None:
        assert similarity("Rollback takes five minutes", "rollback takes five minutes") == 1.0

    def test_word_order_ignored(self) -> None:
        assert similarity("five minutes rollback takes", "rollback takes five minutes") == 1.0

    def test_empty_side(self) -> None:
        assert similarity("", "anything") == 0.0

    def test_unrelated_texts_score_low(self) -> None:
        assert similarity("deploy to staging first", "the cafeteria opens at nine") < 0.5

    def test_duplicate_key(self) -> None:
        assert duplicate_key("  Hello\n  World ") == "hello world"
        assert len(duplicate_key("x" * 200)) == 50
