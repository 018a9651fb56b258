"""ragler -- curate source text into draft fragments and publish them to a vector index."""

__version__ = "0.1.0"
