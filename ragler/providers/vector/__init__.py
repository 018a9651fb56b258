"""Vector index adapters."""

from ragler.providers.vector.qdrant_index import QdrantVectorIndex

__all__ = ["QdrantVectorIndex"]
