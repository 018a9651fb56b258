"""Raw-content source adapters.

TextFileParser     -- .txt / .md / .markdown files.
FileParserResolver -- picks a parser by extension, listing supported ones on miss.
WebPageFetcher     -- public web pages via httpx + trafilatura.
"""

from ragler.providers.parser.resolver import FileParserResolver
from ragler.providers.parser.text_parser import TextFileParser
from ragler.providers.parser.web_fetcher import WebPageFetcher

__all__ = ["FileParserResolver", "TextFileParser", "WebPageFetcher"]
