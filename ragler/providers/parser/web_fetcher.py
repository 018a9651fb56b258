"""Web page source using httpx and trafilatura.

Fetches HTML via httpx and extracts the main readable text with
trafilatura.  Only public http(s) URLs are accepted: localhost and
private, loopback, link-local or reserved IP literals are refused before
any request is made.
"""

from __future__ import annotations

import ipaddress
import json
import re
import time
from urllib.parse import urlparse

import httpx
import structlog
import trafilatura

from ragler.interfaces.source_provider import IWebSource, ParsedDocument
from ragler.utils.errors import (
    ProviderTimeoutError,
    UpstreamError,
    ValidationError,
)

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_MAX_CONTENT_LENGTH = 10 * 1024 * 1024
_BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "0.0.0.0"}
_HTML_TYPES = ("text/html", "application/xhtml+xml")


def validate_url(url: str) -> str:
    """Return *url* unchanged if it is a public http(s) URL.

    Raises
    ------
    ValidationError
        For malformed URLs, non-http schemes, and internal hosts.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ValidationError(
            message=f"Invalid URL scheme: {parsed.scheme or '(none)'}. Only http and https are allowed.",
            details={"url": url},
        )
    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise ValidationError(message=f"Invalid URL format: {url}", details={"url": url})
    if hostname in _BLOCKED_HOSTNAMES or _is_internal_ip(hostname):
        raise ValidationError(
            message=f"Access to private/internal addresses is not allowed: {hostname}",
            details={"url": url},
        )
    return url


def _is_internal_ip(hostname: str) -> bool:
    try:
        address = ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
    )


def clean_extracted_text(text: str) -> str:
    """Normalise whitespace in extracted text and collapse blank-line runs."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+", " ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


class WebPageFetcher(IWebSource):
    """Fetch a public web page and return its main article text."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        user_agent: str = "ragler/0.1",
        max_content_length: int = _DEFAULT_MAX_CONTENT_LENGTH,
    ) -> None:
        self._timeout = timeout
        self._max_content_length = max_content_length
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html,application/xhtml+xml",
            },
            follow_redirects=True,
        )

    async def fetch(self, url: str) -> ParsedDocument:
        validate_url(url)
        started = time.monotonic()
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(
                message=f"Timeout fetching {url}",
                provider_name=self.get_provider_name(),
                elapsed=time.monotonic() - started,
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise UpstreamError(
                message=f"HTTP {status} for {url}",
                provider_name=self.get_provider_name(),
                retryable=status == 429 or status >= 500,
                status=status,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(
                message=f"Network error fetching {url}: {exc}",
                provider_name=self.get_provider_name(),
                retryable=True,
            ) from exc

        content_type = response.headers.get("content-type", "")
        if not any(kind in content_type for kind in _HTML_TYPES):
            raise ValidationError(
                message=f"Invalid content type: {content_type or '(none)'}. Expected text/html.",
                details={"url": url, "content_type": content_type},
            )
        if len(response.content) > self._max_content_length:
            raise ValidationError(
                message=(
                    f"Content too large: {len(response.content)} bytes exceeds "
                    f"{self._max_content_length} limit"
                ),
                details={"url": url},
            )

        html = response.text
        text = trafilatura.extract(html, include_comments=False, include_tables=True)
        text = clean_extracted_text(text or "")
        if not text:
            raise ValidationError(
                message="Failed to extract meaningful content from the page",
                details={"url": url},
            )

        title = urlparse(url).hostname or url
        metadata: dict = {}
        raw_meta = trafilatura.extract(
            html, include_comments=False, output_format="json", with_metadata=True
        )
        if raw_meta:
            try:
                meta_dict = json.loads(raw_meta)
            except json.JSONDecodeError:
                logger.debug("web_metadata_parse_failed", url=url)
            else:
                title = meta_dict.get("title") or title
                metadata = {
                    key: meta_dict.get(key)
                    for key in ("author", "date", "sitename", "description")
                    if meta_dict.get(key)
                }

        logger.info(
            "web_page_fetched",
            url=url,
            title=title,
            text_length=len(text),
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        return ParsedDocument(content=text, title=title, metadata=metadata, source_url=url)

    async def close(self) -> None:
        await self._client.aclose()

    def get_provider_name(self) -> str:
        return "web_fetcher"
