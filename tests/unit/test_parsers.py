"""Unit tests for the file parsers, the parser resolver and the web fetcher."""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from ragler.providers.parser.resolver import FileParserResolver
from ragler.providers.parser.text_parser import TextFileParser
from ragler.providers.parser.web_fetcher import WebPageFetcher, clean_extracted_text, validate_url
from ragler.utils.errors import (
    ProviderTimeoutError,
    UnsupportedSourceError,
    UpstreamError,
    ValidationError,
)

# ---------------------------------------------------------------------------
# TextFileParser / FileParserResolver
# ---------------------------------------------------------------------------


class TestTextFileParser:
    @pytest.mark.asyncio
    async def test_heading_becomes_title(self) -> None:
        raw = "\ufeff# Onboarding\r\n\r\nWelcome.".encode("utf-8")
        doc = await TextFileParser().parse(raw, "onboarding.md")
        assert doc.title == "Onboarding"
        assert doc.content == "# Onboarding\n\nWelcome."
        assert doc.metadata == {"filename": "onboarding.md", "size": len(raw)}

    @pytest.mark.asyncio
    async def test_filename_stem_without_heading(self) -> None:
        doc = await TextFileParser().parse(b"Plain notes.", "team-notes.txt")
        assert doc.title == "team-notes"

    @pytest.mark.asyncio
    async def test_rejects_non_utf8(self) -> None:
        with pytest.raises(ValidationError):
            await TextFileParser().parse(b"\xff\xfe\x00bad", "bad.txt")


class TestFileParserResolver:
    def test_resolves_case_insensitively(self) -> None:
        parser = TextFileParser()
        resolver = FileParserResolver([parser])
        assert resolver.resolve("README.MD") is parser

    def test_unknown_extension(self) -> None:
        resolver = FileParserResolver([TextFileParser()])
        with pytest.raises(UnsupportedSourceError) as exc_info:
            resolver.resolve("slides.pptx")
        assert exc_info.value.supported == [".markdown", ".md", ".txt"]


# ---------------------------------------------------------------------------
# URL validation
# ---------------------------------------------------------------------------


class TestValidateUrl:
    def test_accepts_public_url(self) -> None:
        assert validate_url("https://example.com/page") == "https://example.com/page"

    @pytest.mark.parametrize(
        "url",
        [
            "ftp://example.com/file",
            "example.com",
            "http://",
            "http://localhost:8000/",
            "http://127.0.0.1/",
            "http://10.1.2.3/",
            "http://192.168.0.10/admin",
            "http://169.254.169.254/latest/meta-data",
            "http://[::1]/",
        ],
    )
    def test_rejects_bad_or_internal_urls(self, url: str) -> None:
        with pytest.raises(ValidationError):
            validate_url(url)


def test_clean_extracted_text() -> None:
    assert clean_extracted_text("  a \t b \r\n\n\n\n c  ") == "a b\n\nc"


# ---------------------------------------------------------------------------
# WebPageFetcher
# ---------------------------------------------------------------------------

_HTML = "<html><head><title>Guide</title></head><body><article><p>Body</p></article></body></html>"


def _fetcher(handler) -> WebPageFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebPageFetcher(http_client=client, max_content_length=1024)


def _html_response(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, text=_HTML, headers={"content-type": "text/html; charset=utf-8"})


class TestWebPageFetcher:
    @pytest.mark.asyncio
    async def test_extracts_text_and_metadata(self) -> None:
        fetcher = _fetcher(_html_response)
        meta = json.dumps({"title": "Deploy Guide", "author": "Ops", "date": None})
        with patch(
            "ragler.providers.parser.web_fetcher.trafilatura.extract",
            side_effect=["Deploy   steps\n\n\n\nRollback", meta],
        ):
            doc = await fetcher.fetch("https://docs.example.com/deploy")

        assert doc.content == "Deploy steps\n\nRollback"
        assert doc.title == "Deploy Guide"
        assert doc.metadata == {"author": "Ops"}
        assert doc.source_url == "https://docs.example.com/deploy"

    @pytest.mark.asyncio
    async def test_title_falls_back_to_hostname(self) -> None:
        fetcher = _fetcher(_html_response)
        with patch(
            "ragler.providers.parser.web_fetcher.trafilatura.extract",
            side_effect=["Some text", None],
        ):
            doc = await fetcher.fetch("https://docs.example.com/deploy")
        assert doc.title == "docs.example.com"

    @pytest.mark.asyncio
    async def test_empty_extraction(self) -> None:
        fetcher = _fetcher(_html_response)
        with patch("ragler.providers.parser.web_fetcher.trafilatura.extract", return_value=None):
            with pytest.raises(ValidationError):
                await fetcher.fetch("https://docs.example.com/deploy")

    @pytest.mark.asyncio
    async def test_rejects_non_html(self) -> None:
        fetcher = _fetcher(lambda request: httpx.Response(200, json={"a": 1}))
        with pytest.raises(ValidationError):
            await fetcher.fetch("https://api.example.com/data")

    @pytest.mark.asyncio
    async def test_rejects_oversized_page(self) -> None:
        fetcher = _fetcher(
            lambda request: httpx.Response(200, text="x" * 2048, headers={"content-type": "text/html"})
        )
        with pytest.raises(ValidationError):
            await fetcher.fetch("https://example.com/big")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,retryable", [(503, True), (429, True), (404, False)])
    async def test_http_errors(self, status: int, retryable: bool) -> None:
        fetcher = _fetcher(lambda request: httpx.Response(status))
        with pytest.raises(UpstreamError) as exc_info:
            await fetcher.fetch("https://example.com/page")
        assert exc_info.value.retryable is retryable

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher = _fetcher(handler)
        with pytest.raises(ProviderTimeoutError):
            await fetcher.fetch("https://example.com/slow")

    @pytest.mark.asyncio
    async def test_blocked_url_makes_no_request(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return _html_response(request)

        fetcher = _fetcher(handler)
        with pytest.raises(ValidationError):
            await fetcher.fetch("http://127.0.0.1/admin")
        assert calls == []

    def test_provider_name(self) -> None:
        assert _fetcher(_html_response).get_provider_name() == "web_fetcher"
