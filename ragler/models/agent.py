"""Agent conversation, tool-call and operation-suggestion models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class AgentEventType(str, Enum):
    """Kinds of events emitted by the agent tool loop.

    Order on the wire: THINKING once, then TOOL_CALL / TOOL_RESULT pairs
    and MESSAGE events, then exactly one of DONE or ERROR.
    """

    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    MESSAGE = "message"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (AgentEventType.DONE, AgentEventType.ERROR)


class AgentEvent(BaseModel):
    """One streamed event from ``CollectionAgent.stream_chat``."""

    model_config = ConfigDict(frozen=True)

    type: AgentEventType
    content: str | None = None
    tool_name: str | None = None
    tool_call_id: str | None = None
    data: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class OperationAction(str, Enum):
    """Edits the agent may propose for a fragment."""

    SPLIT = "SPLIT"
    MERGE = "MERGE"
    REWRITE = "REWRITE"
    DELETE = "DELETE"
    KEEP = "KEEP"


class OperationSuggestion(BaseModel):
    """A proposed edit awaiting human approval.

    ``operation_id`` is the approval key; it is generated once and never
    reused.  A suggestion executes at most once.
    """

    model_config = ConfigDict(frozen=True)

    operation_id: str
    action: OperationAction
    chunk_id: str
    rationale: str = ""
    split_points: list[int] | None = None
    split_blocks: list[str] | None = None
    merge_with_ids: list[str] | None = None
    suggested_content: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class ChatRole(str, Enum):
    HUMAN = "human"
    AI = "ai"


class ChatTurn(BaseModel):
    """One persisted turn of a chat conversation."""

    model_config = ConfigDict(frozen=True)

    role: ChatRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


class ChatSessionInfo(BaseModel):
    """Metadata for an agent chat bound to a draft session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    user_id: str
    collection_id: str
    title: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: str = "{}"


class LLMChatResponse(BaseModel):
    """Assistant reply from a tool-enabled chat completion."""

    model_config = ConfigDict(frozen=True)

    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    finish_reason: str | None = None
