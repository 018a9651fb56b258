"""Concrete adapters for the interfaces in ``ragler.interfaces``.

Subpackages: ``llm``, ``embedding``, ``kv``, ``vector``, ``parser``.
"""
