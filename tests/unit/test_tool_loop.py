"""Unit tests for CollectionAgent's bounded tool-calling loop."""

from __future__ import annotations

import pytest

from ragler.agent.memory import AgentMemory, ApprovalLedger
from ragler.agent.prompts import NO_RESPONSE_PLACEHOLDER
from ragler.agent.tool_loop import CollectionAgent
from ragler.agent.tools import build_default_tools
from ragler.interfaces.llm_provider import ILLMProvider
from ragler.models.agent import AgentEvent, AgentEventType, ChatRole, LLMChatResponse, ToolCall
from ragler.providers.kv.memory_store import MemoryKeyValueStore
from ragler.services.session_service import SessionService
from ragler.services.session_store import DraftSessionStore
from ragler.utils.errors import UpstreamError, ValidationError
from tests.conftest import make_session

_TYPES = AgentEventType


def _make_agent(
    llm: ILLMProvider,
    session_service: SessionService,
    kv_store: MemoryKeyValueStore,
    max_steps: int = 8,
) -> CollectionAgent:
    return CollectionAgent(
        llm,
        session_service,
        AgentMemory(kv_store),
        ApprovalLedger(kv_store),
        build_default_tools(llm),
        max_steps=max_steps,
    )


def _list_call(call_id: str = "call_1") -> ToolCall:
    return ToolCall(id=call_id, name="list_chunks", arguments="{}")


async def _collect(agent: CollectionAgent, message: str = "How does the draft look?") -> list[AgentEvent]:
    return [event async for event in agent.stream_chat("kb", "alice", message, "session_test")]


@pytest.fixture
async def seeded(session_store: DraftSessionStore) -> None:
    await session_store.save(make_session(["First fragment.", "Second fragment."]))


# ---------------------------------------------------------------------------
# Event sequence
# ---------------------------------------------------------------------------


class TestEventSequence:
    @pytest.mark.asyncio
    async def test_plain_reply(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        mock_llm_provider.chat.return_value = LLMChatResponse(content="Looks good.", finish_reason="stop")

        events = await _collect(_make_agent(mock_llm_provider, session_service, kv_store))

        assert [e.type for e in events] == [_TYPES.THINKING, _TYPES.MESSAGE, _TYPES.DONE]
        assert events[1].content == "Looks good."
        assert events[-1].data == {"steps": 1}

    @pytest.mark.asyncio
    async def test_tool_call_then_reply(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        mock_llm_provider.chat.side_effect = [
            LLMChatResponse(tool_calls=[_list_call()], finish_reason="tool_calls"),
            LLMChatResponse(content="There are two fragments.", finish_reason="stop"),
        ]

        events = await _collect(_make_agent(mock_llm_provider, session_service, kv_store))

        assert [e.type for e in events] == [
            _TYPES.THINKING,
            _TYPES.TOOL_CALL,
            _TYPES.TOOL_RESULT,
            _TYPES.MESSAGE,
            _TYPES.DONE,
        ]
        assert events[1].tool_name == "list_chunks"
        assert events[1].data == {"input": {}}
        assert events[2].tool_call_id == "call_1"
        assert len(events[2].data["output"]["chunks"]) == 2
        second_messages = mock_llm_provider.chat.await_args_list[1].args[0]
        assert second_messages[-2]["tool_calls"][0]["id"] == "call_1"
        assert second_messages[-1]["role"] == "tool"
        assert second_messages[-1]["tool_call_id"] == "call_1"

    @pytest.mark.asyncio
    async def test_tool_calls_run_in_order(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        mock_llm_provider.chat.side_effect = [
            LLMChatResponse(
                tool_calls=[
                    _list_call("call_a"),
                    ToolCall(id="call_b", name="get_chunk_content", arguments='{"chunk_id": "c2"}'),
                ]
            ),
            LLMChatResponse(content="Done."),
        ]

        events = await _collect(_make_agent(mock_llm_provider, session_service, kv_store))

        pairs = [(e.type, e.tool_call_id) for e in events if e.tool_call_id]
        assert pairs == [
            (_TYPES.TOOL_CALL, "call_a"),
            (_TYPES.TOOL_RESULT, "call_a"),
            (_TYPES.TOOL_CALL, "call_b"),
            (_TYPES.TOOL_RESULT, "call_b"),
        ]

    @pytest.mark.asyncio
    async def test_step_limit(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        mock_llm_provider.chat.return_value = LLMChatResponse(tool_calls=[_list_call()])

        events = await _collect(_make_agent(mock_llm_provider, session_service, kv_store, max_steps=3))

        assert mock_llm_provider.chat.await_count == 3
        terminal = [e for e in events if e.type.is_terminal]
        assert [e.type for e in terminal] == [_TYPES.DONE]
        assert events[-1].type == _TYPES.DONE

    @pytest.mark.asyncio
    async def test_repeated_text_is_emitted_once(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        mock_llm_provider.chat.side_effect = [
            LLMChatResponse(content="Checking the draft.", tool_calls=[_list_call()]),
            LLMChatResponse(content="Checking the draft."),
        ]

        events = await _collect(_make_agent(mock_llm_provider, session_service, kv_store))

        assert [e.content for e in events if e.type == _TYPES.MESSAGE] == ["Checking the draft."]

    def test_rejects_zero_steps(
        self, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        with pytest.raises(ValidationError):
            _make_agent(mock_llm_provider, session_service, kv_store, max_steps=0)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.asyncio
    async def test_empty_message_raises(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        with pytest.raises(ValidationError):
            await _collect(_make_agent(mock_llm_provider, session_service, kv_store), message="   ")
        mock_llm_provider.chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_llm_failure_ends_with_error(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        mock_llm_provider.chat.side_effect = UpstreamError(message="model unavailable", provider_name="openai")
        memory = AgentMemory(kv_store)

        events = await _collect(_make_agent(mock_llm_provider, session_service, kv_store))

        assert [e.type for e in events] == [_TYPES.THINKING, _TYPES.ERROR]
        assert events[-1].content == "model unavailable"
        assert events[-1].data == {"reason": "UPSTREAM_ERROR", "retryable": True}
        assert await memory.load_history("session_test") == []

    @pytest.mark.asyncio
    async def test_unknown_session(
        self, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        events = await _collect(_make_agent(mock_llm_provider, session_service, kv_store))
        assert events[-1].type == _TYPES.ERROR
        assert events[-1].data["reason"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unexpected_exception(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        mock_llm_provider.chat.side_effect = RuntimeError("boom")
        events = await _collect(_make_agent(mock_llm_provider, session_service, kv_store))
        assert events[-1].type == _TYPES.ERROR
        assert events[-1].data == {"reason": "INTERNAL_ERROR", "retryable": False}


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------


class TestConversationMemory:
    @pytest.mark.asyncio
    async def test_turn_is_persisted(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        mock_llm_provider.chat.return_value = LLMChatResponse(content="Fine.")

        await _collect(_make_agent(mock_llm_provider, session_service, kv_store), message="Check it")

        history = await AgentMemory(kv_store).load_history("session_test")
        assert [(t.role, t.content) for t in history] == [(ChatRole.HUMAN, "Check it"), (ChatRole.AI, "Fine.")]

    @pytest.mark.asyncio
    async def test_empty_reply_stores_placeholder(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        mock_llm_provider.chat.return_value = LLMChatResponse(content=None)

        events = await _collect(_make_agent(mock_llm_provider, session_service, kv_store))

        assert [e.type for e in events] == [_TYPES.THINKING, _TYPES.DONE]
        history = await AgentMemory(kv_store).load_history("session_test")
        assert history[-1].content == NO_RESPONSE_PLACEHOLDER

    @pytest.mark.asyncio
    async def test_history_is_replayed(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        agent = _make_agent(mock_llm_provider, session_service, kv_store)
        mock_llm_provider.chat.return_value = LLMChatResponse(content="First answer.")
        await _collect(agent, message="First question")
        mock_llm_provider.chat.return_value = LLMChatResponse(content="Second answer.")

        await _collect(agent, message="Second question")

        messages = mock_llm_provider.chat.await_args.args[0]
        assert messages[0]["role"] == "system"
        assert "session_test" in messages[0]["content"]
        assert [(m["role"], m["content"]) for m in messages[1:]] == [
            ("user", "First question"),
            ("assistant", "First answer."),
            ("user", "Second question"),
        ]

    @pytest.mark.asyncio
    async def test_chat_sessions_listed_for_user(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        agent = _make_agent(mock_llm_provider, session_service, kv_store)
        mock_llm_provider.chat.return_value = LLMChatResponse(content="Hi.")

        await _collect(agent, message="Review the draft")

        chats = await agent.list_chat_sessions("alice")
        assert [(c.session_id, c.title) for c in chats] == [("session_test", "Review the draft")]

    @pytest.mark.asyncio
    async def test_clear_session(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        agent = _make_agent(mock_llm_provider, session_service, kv_store)
        mock_llm_provider.chat.return_value = LLMChatResponse(content="Hi.")
        await _collect(agent)
        await agent.approve("session_test", "op-1")

        await agent.clear_session("session_test")

        assert await AgentMemory(kv_store).load_history("session_test") == []
        assert await agent.revoke("session_test", "op-1") == []


class TestBlockingChat:
    @pytest.mark.asyncio
    async def test_collects_messages_and_tool_calls(
        self, seeded, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        mock_llm_provider.chat.side_effect = [
            LLMChatResponse(content="Let me look.", tool_calls=[_list_call()]),
            LLMChatResponse(content="Two fragments."),
        ]
        agent = _make_agent(mock_llm_provider, session_service, kv_store)

        result = await agent.chat("kb", "alice", "Summarize", "session_test")

        assert result["messages"] == ["Let me look.", "Two fragments."]
        assert result["final"] == "Two fragments."
        assert result["error"] is None
        assert result["tool_calls"][0]["tool"] == "list_chunks"
        assert result["tool_calls"][0]["output"]["success"] is True

    @pytest.mark.asyncio
    async def test_approve_and_revoke_return_ledger(
        self, mock_llm_provider: ILLMProvider, session_service: SessionService, kv_store: MemoryKeyValueStore
    ) -> None:
        agent = _make_agent(mock_llm_provider, session_service, kv_store)
        assert await agent.approve("s1", "op-1") == ["op-1"]
        assert await agent.approve("s1", "op-2") == ["op-1", "op-2"]
        assert await agent.revoke("s1", "op-1") == ["op-2"]
