"""Public interface definitions for all external collaborators.

Every external API or store is accessed only through the abstract base
classes in this package.  Concrete adapters live in ``ragler/providers/``
and are assembled in ``ragler/main.py``; tests inject fakes or mocks.

CONCRETE PROVIDER MAP:
    Interface            ->  Concrete implementations (in ragler/providers/)
    ------------------------------------------------------------------
    ILLMProvider         ->  OpenAILLMProvider
    IEmbeddingProvider   ->  OpenAIEmbeddingProvider
    IKeyValueStore       ->  RedisKeyValueStore, MemoryKeyValueStore
    IVectorIndex         ->  QdrantVectorIndex
    IFileParser          ->  TextFileParser
    IWebSource           ->  WebPageFetcher
"""

from ragler.interfaces.embedding_provider import IEmbeddingProvider
from ragler.interfaces.kv_store import IKeyValueStore
from ragler.interfaces.llm_provider import ILLMProvider
from ragler.interfaces.source_provider import IFileParser, IWebSource, ParsedDocument
from ragler.interfaces.vector_index import IVectorIndex, ScrollPage

__all__ = [
    "IEmbeddingProvider",
    "IFileParser",
    "IKeyValueStore",
    "ILLMProvider",
    "IVectorIndex",
    "IWebSource",
    "ParsedDocument",
    "ScrollPage",
]
