"""Abstract base class for LLM service providers.

Defines the contract for the chat-completion backend used by the semantic
chunker (structured JSON output), the chunk scorer and the agent tool
loop (tool calling).  Implementations wrap OpenAI or any
OpenAI-compatible gateway; call sites stay provider-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ragler.models.agent import LLMChatResponse


# Concrete implementation: OpenAILLMProvider (ragler/providers/llm/)
class ILLMProvider(ABC):
    """Contract for LLM services.

    Every failure must surface as one of the typed errors in
    :mod:`ragler.utils.errors` so callers can tell retryable conditions
    (rate limit, timeout, server error) from permanent ones.
    """

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
        max_tokens: int = 4000,
        response_format: dict[str, Any] | None = None,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user-facing prompt containing the actual request or data.
        temperature:
            Sampling temperature (0.0 = deterministic).
        max_tokens:
            Upper bound on the number of tokens in the response.
        response_format:
            Optional structured-output contract, e.g. an OpenAI
            ``{"type": "json_schema", ...}`` block.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        ragler.utils.errors.RateLimitError
            Provider backpressure; carries ``retry_after`` when known.
        ragler.utils.errors.ProviderTimeoutError
            The call exceeded its deadline.
        ragler.utils.errors.ParseError
            The model refused, returned nothing, or hit the length limit.
        ragler.utils.errors.UpstreamError
            Any other provider failure.
        """

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.0,
        max_tokens: int = 2000,
    ) -> LLMChatResponse:
        """Run one chat-completion turn with optional tool definitions.

        Parameters
        ----------
        messages:
            Conversation in OpenAI message format (``role``/``content``,
            plus ``tool_calls`` / ``tool_call_id`` entries for tool turns).
        tools:
            Function-tool definitions the model may call.

        Returns
        -------
        LLMChatResponse
            Assistant text and/or the list of requested tool calls.

        Raises
        ------
        Same typed errors as :meth:`complete`.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider has credentials configured."""
