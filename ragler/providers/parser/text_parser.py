"""Plain-text and Markdown file parser."""

from __future__ import annotations

from pathlib import PurePath

import structlog

from ragler.interfaces.source_provider import IFileParser, ParsedDocument
from ragler.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)

_UTF8_BOM = "\ufeff"


class TextFileParser(IFileParser):
    """Decode UTF-8 text files; Markdown is kept verbatim so headings survive."""

    _EXTENSIONS = [".txt", ".md", ".markdown"]

    def supported_extensions(self) -> list[str]:
        return list(self._EXTENSIONS)

    async def parse(self, data: bytes, filename: str) -> ParsedDocument:
        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationError(
                message=f"{filename} is not valid UTF-8 text",
                details={"filename": filename, "position": exc.start},
            ) from exc

        content = content.removeprefix(_UTF8_BOM).replace("\r\n", "\n").replace("\r", "\n")
        title = self._title_from(content) or PurePath(filename).stem
        logger.info("file_parsed", filename=filename, size=len(data), chars=len(content))
        return ParsedDocument(
            content=content,
            title=title,
            metadata={"filename": filename, "size": len(data)},
        )

    @staticmethod
    def _title_from(content: str) -> str | None:
        """Use a leading Markdown H1 as the document title."""
        for line in content.splitlines():
            stripped = line.strip()
            if not stripped:
                continue
            if stripped.startswith("# "):
                return stripped[2:].strip() or None
            return None
        return None
