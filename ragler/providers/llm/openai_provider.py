"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
When ``openai_base_url`` is configured the client talks to that
OpenAI-compatible gateway instead of api.openai.com.  Every SDK exception
is translated by :func:`map_openai_error`, so nothing outside this package
needs to import ``openai``.
"""

from __future__ import annotations

import json
import time
from typing import Any

import openai
import structlog

from ragler.config.settings import Settings
from ragler.interfaces.llm_provider import ILLMProvider
from ragler.models.agent import LLMChatResponse, ToolCall
from ragler.providers.llm.openai_errors import map_openai_error
from ragler.utils.errors import ParseError

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API.

    ``model`` defaults to ``settings.llm_model`` (structured chunking and
    scoring); the agent gets its own instance built with
    ``settings.agent_model``.
    """

    def __init__(self, settings: Settings, model: str | None = None) -> None:
        self._api_key = settings.openai_api_key
        client_kwargs: dict = {
            "api_key": self._api_key or "unset",
            "timeout": openai.Timeout(settings.llm_timeout, connect=5.0),
            "max_retries": settings.llm_max_retries,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = model or settings.llm_model
        self._provider_label = (
            "openai-compatible" if settings.openai_base_url else "openai"
        )

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
        max_tokens: int = 4000,
        response_format: dict[str, Any] | None = None,
    ) -> str:
        """Generate a text completion via the chat completions API."""
        request: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format is not None:
            request["response_format"] = response_format

        started = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**request)
        except openai.APIError as exc:
            raise map_openai_error(
                exc, self.get_provider_name(), elapsed=time.monotonic() - started
            ) from exc

        choice = response.choices[0]
        if choice.finish_reason == "length":
            raise ParseError(
                message="Response truncated at the token limit",
                provider_name=self.get_provider_name(),
                raw_response=choice.message.content,
            )
        refusal = getattr(choice.message, "refusal", None)
        if refusal:
            raise ParseError(
                message=f"Model refused the request: {refusal}",
                provider_name=self.get_provider_name(),
                raw_response=refusal,
            )
        content = choice.message.content
        if not content:
            raise ParseError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )

        logger.info(
            "openai_completion",
            model=self._model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        return content

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.0,
        max_tokens: int = 2000,
    ) -> LLMChatResponse:
        """Run one tool-enabled chat turn."""
        request: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            request["tools"] = tools
            # One tool per step keeps execution strictly sequential.
            request["parallel_tool_calls"] = False

        started = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**request)
        except openai.APIError as exc:
            raise map_openai_error(
                exc, self.get_provider_name(), elapsed=time.monotonic() - started
            ) from exc

        choice = response.choices[0]
        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
            for call in (choice.message.tool_calls or [])
        ]
        logger.info(
            "openai_chat_turn",
            model=self._model,
            provider=self._provider_label,
            tool_calls=[call.name for call in tool_calls],
            finish_reason=choice.finish_reason,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return LLMChatResponse(
            content=choice.message.content,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason,
        )

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)


def json_schema_format(name: str, schema: dict[str, Any]) -> dict[str, Any]:
    """Build a strict ``response_format`` block for a JSON schema."""
    return {
        "type": "json_schema",
        "json_schema": {"name": name, "schema": schema, "strict": True},
    }


def dumps_tool_result(result: dict[str, Any]) -> str:
    """Serialise a tool result for a ``role: tool`` message."""
    return json.dumps(result, ensure_ascii=False, default=str)
