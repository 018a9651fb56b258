"""Resolve a file parser from a filename's extension."""

from __future__ import annotations

from pathlib import PurePath

from ragler.interfaces.source_provider import IFileParser
from ragler.utils.errors import UnsupportedSourceError


class FileParserResolver:
    """Maps lower-case extensions to registered :class:`IFileParser` instances.

    Later registrations win for an extension claimed twice.
    """

    def __init__(self, parsers: list[IFileParser]) -> None:
        self._by_extension: dict[str, IFileParser] = {}
        for parser in parsers:
            for ext in parser.supported_extensions():
                self._by_extension[ext.lower()] = parser

    def supported_extensions(self) -> list[str]:
        return sorted(self._by_extension)

    def resolve(self, filename: str) -> IFileParser:
        """Return the parser for *filename*.

        Raises
        ------
        UnsupportedSourceError
            Listing every supported extension when none matches.
        """
        ext = PurePath(filename).suffix.lower()
        parser = self._by_extension.get(ext)
        if parser is None:
            raise UnsupportedSourceError(
                requested=ext or filename,
                supported=self.supported_extensions(),
            )
        return parser
