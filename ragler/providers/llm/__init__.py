"""LLM provider adapters.

OpenAILLMProvider -- chat completions (structured JSON and tool calling)
against OpenAI or any OpenAI-compatible gateway.
"""

from ragler.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
