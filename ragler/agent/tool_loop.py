"""Bounded tool-calling loop for the collection quality agent.

One call to :meth:`CollectionAgent.stream_chat` is one user turn:

    thinking
    (message | tool_call -> tool_result)*      at most ``max_steps`` LLM calls
    done | error                               exactly one

Tool calls run one at a time, in the order the model requested them, and
every ``tool_call`` is answered by its ``tool_result`` before the next
step.  A tool failure becomes a result payload, not an exception; only
failures of the loop itself (LLM, store, unknown session) end the turn
with ``error``.

On success exactly one human and one assistant turn are appended to the
history.  An empty assistant reply is stored as a placeholder so the
history always alternates.
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator
from typing import Any

import structlog

from ragler.agent.memory import AgentMemory, ApprovalLedger
from ragler.agent.prompts import AGENT_SYSTEM_PROMPT, CONTEXT_TEMPLATE, NO_RESPONSE_PLACEHOLDER
from ragler.agent.tools import AgentTool, ToolContext, ToolRegistry
from ragler.interfaces.llm_provider import ILLMProvider
from ragler.models.agent import AgentEvent, AgentEventType, ChatRole, ChatSessionInfo, ChatTurn
from ragler.providers.llm.openai_provider import dumps_tool_result
from ragler.services.session_service import SessionService
from ragler.utils.errors import RaglerError, ValidationError
from ragler.utils.logging import get_logger


class CollectionAgent:
    """Orchestrates LLM steps, tool dispatch and conversation memory.

    Parameters
    ----------
    llm:
        Tool-capable chat model.
    sessions:
        State machine the tools read and edit through.
    memory, ledger:
        Conversation persistence and approved operation ids.
    tools:
        Tool set offered to the model.
    max_steps:
        Hard bound on LLM calls per turn.
    """

    def __init__(
        self,
        llm: ILLMProvider,
        sessions: SessionService,
        memory: AgentMemory,
        ledger: ApprovalLedger,
        tools: list[AgentTool],
        max_steps: int = 8,
        temperature: float = 0.0,
        max_tokens: int = 2000,
    ) -> None:
        if max_steps < 1:
            raise ValidationError(message="max_steps must be at least 1")
        self._llm = llm
        self._sessions = sessions
        self._memory = memory
        self._ledger = ledger
        self._registry = ToolRegistry(tools)
        self._max_steps = max_steps
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def max_steps(self) -> int:
        return self._max_steps

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def stream_chat(
        self,
        collection_id: str,
        user_id: str,
        message: str,
        session_id: str,
        elevated: bool = True,
    ) -> AsyncIterator[AgentEvent]:
        """Run one turn and yield its events.

        Raises
        ------
        ValidationError
            *message* is empty; raised before any event is produced.
        """
        if not message or not message.strip():
            raise ValidationError(message="Message cannot be empty")

        started = time.monotonic()
        log = self._logger.bind(session_id=session_id, collection_id=collection_id)
        log.info("agent_chat_start", message_length=len(message))

        yield AgentEvent(type=AgentEventType.THINKING)

        steps = 0
        try:
            draft = await self._sessions.get_session(session_id)
            history = await self._memory.load_history(session_id)
            await self._memory.touch_chat(session_id, user_id, collection_id, message)

            context = ToolContext(
                session_id=session_id,
                collection_id=collection_id,
                user_id=user_id,
                sessions=self._sessions,
                memory=self._memory,
                ledger=self._ledger,
                elevated=elevated,
            )
            messages = self._build_messages(
                history,
                message,
                CONTEXT_TEMPLATE.format(
                    session_id=session_id,
                    title=draft.title or draft.source_url,
                    chunk_count=len(draft.chunks),
                    collection_id=collection_id,
                    user_id=user_id,
                ),
            )
            tool_schemas = self._registry.schemas()
            last_text = ""

            while steps < self._max_steps:
                steps += 1
                response = await self._llm.chat(
                    messages,
                    tools=tool_schemas,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                )
                text = (response.content or "").strip()
                if text and text != last_text:
                    last_text = text
                    yield AgentEvent(type=AgentEventType.MESSAGE, content=text)

                if not response.tool_calls:
                    break

                messages.append({
                    "role": "assistant",
                    "content": response.content,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": call.arguments},
                        }
                        for call in response.tool_calls
                    ],
                })
                for call in response.tool_calls:
                    yield AgentEvent(
                        type=AgentEventType.TOOL_CALL,
                        tool_name=call.name,
                        tool_call_id=call.id,
                        data={"input": _decode_arguments(call.arguments)},
                    )
                    result = await self._registry.dispatch(call.name, call.arguments, context)
                    messages.append({
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": dumps_tool_result(result),
                    })
                    yield AgentEvent(
                        type=AgentEventType.TOOL_RESULT,
                        tool_name=call.name,
                        tool_call_id=call.id,
                        data={"output": result},
                    )
            else:
                log.warning("agent_step_limit_reached", max_steps=self._max_steps)

            await self._memory.append_turns(
                session_id,
                [
                    ChatTurn(role=ChatRole.HUMAN, content=message),
                    ChatTurn(role=ChatRole.AI, content=last_text or NO_RESPONSE_PLACEHOLDER),
                ],
            )
        except RaglerError as exc:
            log.error(
                "agent_chat_error",
                steps=steps,
                reason=exc.reason,
                error=str(exc),
                duration_ms=round((time.monotonic() - started) * 1000),
            )
            yield AgentEvent(
                type=AgentEventType.ERROR,
                content=exc.message,
                data={"reason": exc.reason, "retryable": exc.retryable},
            )
            return
        except Exception as exc:
            log.exception(
                "agent_chat_crashed",
                steps=steps,
                duration_ms=round((time.monotonic() - started) * 1000),
            )
            yield AgentEvent(
                type=AgentEventType.ERROR,
                content=f"Unexpected error: {type(exc).__name__}",
                data={"reason": "INTERNAL_ERROR", "retryable": False},
            )
            return

        log.info(
            "agent_chat_success",
            steps=steps,
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        yield AgentEvent(type=AgentEventType.DONE, data={"steps": steps})

    async def chat(
        self,
        collection_id: str,
        user_id: str,
        message: str,
        session_id: str,
        elevated: bool = True,
    ) -> dict[str, Any]:
        """Run a turn to completion and collect its events.

        Returns ``messages`` (assistant texts), ``tool_calls`` (name, input,
        output), ``final`` (last assistant text) and ``error`` (message of
        the terminal error event, or ``None``).
        """
        messages: list[str] = []
        calls: dict[str, dict[str, Any]] = {}
        error: str | None = None
        async for event in self.stream_chat(collection_id, user_id, message, session_id, elevated):
            if event.type == AgentEventType.MESSAGE and event.content:
                messages.append(event.content)
            elif event.type == AgentEventType.TOOL_CALL:
                calls[event.tool_call_id or str(len(calls))] = {
                    "tool": event.tool_name,
                    "input": (event.data or {}).get("input"),
                    "output": None,
                }
            elif event.type == AgentEventType.TOOL_RESULT and event.tool_call_id in calls:
                calls[event.tool_call_id]["output"] = (event.data or {}).get("output")
            elif event.type == AgentEventType.ERROR:
                error = event.content
        return {
            "messages": messages,
            "tool_calls": list(calls.values()),
            "final": messages[-1] if messages else "",
            "error": error,
        }

    # ------------------------------------------------------------------
    # Approvals and session housekeeping
    # ------------------------------------------------------------------

    async def approve(self, session_id: str, operation_id: str) -> list[str]:
        await self._ledger.approve(session_id, operation_id)
        return await self._ledger.list_approved(session_id)

    async def revoke(self, session_id: str, operation_id: str) -> list[str]:
        await self._ledger.revoke(session_id, operation_id)
        return await self._ledger.list_approved(session_id)

    async def clear_session(self, session_id: str) -> None:
        """Forget history, approvals and pending suggestions for a chat."""
        await self._memory.clear_history(session_id)
        await self._ledger.clear(session_id)
        await self._memory.clear_suggestions(session_id)
        self._logger.info("agent_session_cleared", session_id=session_id)

    async def list_chat_sessions(self, user_id: str, limit: int = 50) -> list[ChatSessionInfo]:
        return await self._memory.list_chats(user_id, limit=limit)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_messages(history: list[ChatTurn], message: str, context_line: str) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": f"{AGENT_SYSTEM_PROMPT}\n\n{context_line}"}
        ]
        for turn in history:
            role = "user" if turn.role == ChatRole.HUMAN else "assistant"
            messages.append({"role": role, "content": turn.content})
        messages.append({"role": "user", "content": message})
        return messages


def _decode_arguments(raw: str) -> Any:
    try:
        return json.loads(raw or "{}")
    except json.JSONDecodeError:
        return raw
