"""Agent tools and the dispatcher that validates and runs them.

A tool is a name, a description, a pydantic input model and an async
``execute``.  The dispatcher parses the model's JSON arguments against
the input model before calling ``execute``, and turns every failure
(unknown tool, bad JSON, invalid arguments, a typed error inside the
tool) into an ``{"success": false, "error": ...}`` result so the
conversation can continue.

All tools act on the draft session the chat is bound to.
``execute_operation`` is the only tool that mutates it, and it refuses
unless the operation id is in the approval ledger at call time.
"""

from __future__ import annotations

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from itertools import combinations
from typing import Any

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ragler.agent.memory import AgentMemory, ApprovalLedger
from ragler.agent.prompts import SCORE_PROMPT_TEMPLATE, SCORE_SYSTEM_PROMPT
from ragler.interfaces.llm_provider import ILLMProvider
from ragler.models.agent import OperationAction, OperationSuggestion
from ragler.models.session import Session
from ragler.services.session_service import SessionService
from ragler.utils.errors import NotFoundError, RaglerError
from ragler.utils.llm_json import parse_json_object
from ragler.utils.logging import get_logger
from ragler.utils.text_normalizer import duplicate_key, similarity

logger: structlog.BoundLogger = get_logger(__name__)

NOT_APPROVED_ERROR = "Operation not approved. Please ask the user to approve this operation first."

TOO_SHORT_CHARS = 100
TOO_LONG_CHARS = 2000
DUPLICATE_THRESHOLD = 0.8
_SCORE_CRITERIA = ("clarity", "completeness", "specificity", "standalone")


@dataclass(frozen=True)
class ToolContext:
    """Per-turn state handed to every tool."""

    session_id: str
    collection_id: str
    user_id: str
    sessions: SessionService
    memory: AgentMemory
    ledger: ApprovalLedger
    elevated: bool = True


class AgentTool(ABC):
    """Base class for agent tools."""

    name: str = ""
    description: str = ""
    input_model: type[BaseModel]

    @abstractmethod
    async def execute(self, args: BaseModel, context: ToolContext) -> dict[str, Any]:
        """Run the tool with validated *args* and return a JSON-safe result."""

    def to_openai_tool(self) -> dict[str, Any]:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": schema,
            },
        }


class ToolRegistry:
    """Name -> tool lookup plus validated dispatch."""

    def __init__(self, tools: list[AgentTool]) -> None:
        self._tools = {tool.name: tool for tool in tools}

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        return [tool.to_openai_tool() for tool in self._tools.values()]

    async def dispatch(self, name: str, raw_arguments: str, context: ToolContext) -> dict[str, Any]:
        tool = self._tools.get(name)
        if tool is None:
            return {"success": False, "error": f"Unknown tool: {name}", "available": self.names}

        try:
            arguments = json.loads(raw_arguments or "{}")
        except json.JSONDecodeError as exc:
            return {"success": False, "error": f"Invalid JSON arguments: {exc.msg}"}

        try:
            args = tool.input_model.model_validate(arguments)
        except PydanticValidationError as exc:
            return {
                "success": False,
                "error": "Invalid arguments",
                "details": exc.errors(include_url=False, include_context=False),
            }

        try:
            return await tool.execute(args, context)
        except RaglerError as exc:
            logger.warning("agent_tool_failed", tool=name, reason=exc.reason, error=str(exc))
            return {"success": False, "error": exc.message, "reason": exc.reason}
        except Exception as exc:
            logger.exception("agent_tool_crashed", tool=name)
            return {"success": False, "error": f"Tool {name} failed: {type(exc).__name__}"}


# ---------------------------------------------------------------------------
# Read-only tools
# ---------------------------------------------------------------------------

class ChunkIdInput(BaseModel):
    chunk_id: str = Field(description="Id of the fragment")


def _describe(session: Session, position: int) -> dict[str, Any]:
    chunk = session.chunks[position]
    return {
        "chunk_id": chunk.id,
        "position": position,
        "text": chunk.text,
        "length": len(chunk.text),
        "is_dirty": chunk.is_dirty,
    }


def _position(session: Session, chunk_id: str) -> int:
    position = session.index_of(chunk_id)
    if position < 0:
        raise NotFoundError(message=f"Chunk {chunk_id} not found in session {session.session_id}")
    return position


class GetChunkContentTool(AgentTool):
    name = "get_chunk_content"
    description = "Return the full text, position, length and dirty flag of one fragment."
    input_model = ChunkIdInput

    async def execute(self, args: ChunkIdInput, context: ToolContext) -> dict[str, Any]:
        session = await context.sessions.get_session(context.session_id)
        return {"success": True, **_describe(session, _position(session, args.chunk_id))}


class ChunksContextInput(BaseModel):
    chunk_id: str = Field(description="Id of the fragment in the middle")
    before: int = Field(default=1, ge=0, le=5, description="Neighbours to include before it")
    after: int = Field(default=1, ge=0, le=5, description="Neighbours to include after it")


class GetChunksContextTool(AgentTool):
    name = "get_chunks_context"
    description = "Return a fragment together with its neighbours in document order."
    input_model = ChunksContextInput

    async def execute(self, args: ChunksContextInput, context: ToolContext) -> dict[str, Any]:
        session = await context.sessions.get_session(context.session_id)
        position = _position(session, args.chunk_id)
        start = max(0, position - args.before)
        end = min(len(session.chunks), position + args.after + 1)
        return {
            "success": True,
            "target": args.chunk_id,
            "chunks": [_describe(session, idx) for idx in range(start, end)],
        }


class NoInput(BaseModel):
    pass


class ListChunksTool(AgentTool):
    name = "list_chunks"
    description = "List every fragment id with its position, length and dirty flag (no text)."
    input_model = NoInput

    async def execute(self, args: NoInput, context: ToolContext) -> dict[str, Any]:
        session = await context.sessions.get_session(context.session_id)
        return {
            "success": True,
            "status": session.status.value,
            "chunks": [
                {
                    "chunk_id": chunk.id,
                    "position": idx,
                    "length": len(chunk.text),
                    "is_dirty": chunk.is_dirty,
                    "preview": chunk.text[:80],
                }
                for idx, chunk in enumerate(session.chunks)
            ],
        }


def analyze_quality(session: Session) -> dict[str, Any]:
    """Length buckets, dirty count and near-duplicate pairs for a session.

    Near-duplicates are only compared within groups that share the same
    normalized 50-character prefix.
    """
    chunks = session.chunks
    if not chunks:
        return {"total_chunks": 0, "message": "Session is empty. No chunks to analyze."}

    issues: list[dict[str, Any]] = []
    too_short = too_long = 0
    for idx, chunk in enumerate(chunks):
        length = len(chunk.text)
        if length < TOO_SHORT_CHARS:
            too_short += 1
            issues.append({
                "type": "too_short",
                "chunk_id": chunk.id,
                "position": idx,
                "description": f"Only {length} characters; may lack context",
            })
        elif length > TOO_LONG_CHARS:
            too_long += 1
            issues.append({
                "type": "too_long",
                "chunk_id": chunk.id,
                "position": idx,
                "description": f"{length} characters; consider splitting",
            })

    groups: dict[str, list[int]] = {}
    for idx, chunk in enumerate(chunks):
        groups.setdefault(duplicate_key(chunk.text), []).append(idx)

    duplicates: list[dict[str, Any]] = []
    for members in groups.values():
        for left, right in combinations(members, 2):
            score = similarity(chunks[left].text, chunks[right].text)
            if score > DUPLICATE_THRESHOLD:
                duplicates.append({
                    "chunk1_id": chunks[left].id,
                    "chunk2_id": chunks[right].id,
                    "similarity": round(score, 2),
                })

    total_length = sum(len(chunk.text) for chunk in chunks)
    return {
        "total_chunks": len(chunks),
        "avg_length": round(total_length / len(chunks)),
        "length_distribution": {
            "too_short": too_short,
            "optimal": len(chunks) - too_short - too_long,
            "too_long": too_long,
        },
        "dirty_chunks": sum(1 for chunk in chunks if chunk.is_dirty),
        "potential_issues": issues,
        "duplicate_candidates": duplicates,
    }


class AnalyzeCollectionQualityTool(AgentTool):
    name = "analyze_collection_quality"
    description = (
        "Analyze the draft for quality issues: too short or too long fragments, "
        "near-duplicates and edited fragments. Returns a quality report."
    )
    input_model = NoInput

    async def execute(self, args: NoInput, context: ToolContext) -> dict[str, Any]:
        session = await context.sessions.get_session(context.session_id)
        return {"success": True, **analyze_quality(session)}


class ScoreChunkInput(BaseModel):
    chunk_id: str = Field(description="Id of the fragment to score")
    collection_purpose: str | None = Field(default=None, description="Audience or purpose of the collection")


class ScoreChunkTool(AgentTool):
    name = "score_chunk"
    description = (
        "Score a fragment for retrieval quality (0-100) with a breakdown by clarity, "
        "completeness, specificity and standalone readability."
    )
    input_model = ScoreChunkInput

    def __init__(self, llm: ILLMProvider) -> None:
        self._llm = llm

    async def execute(self, args: ScoreChunkInput, context: ToolContext) -> dict[str, Any]:
        session = await context.sessions.get_session(context.session_id)
        chunk = session.chunks[_position(session, args.chunk_id)]
        raw = await self._llm.complete(
            system_prompt=SCORE_SYSTEM_PROMPT,
            user_prompt=SCORE_PROMPT_TEMPLATE.format(
                purpose=args.collection_purpose or "General knowledge retrieval",
                content=chunk.text,
            ),
            temperature=0.2,
            max_tokens=500,
            response_format={"type": "json_object"},
        )
        data = parse_json_object(raw, provider_name=self._llm.get_provider_name())
        return {"success": True, "chunk_id": chunk.id, **clamp_score(data)}


def clamp_score(data: dict[str, Any]) -> dict[str, Any]:
    """Clamp each criterion to 0-25 and recompute the 0-100 total."""
    raw_breakdown = data.get("breakdown") if isinstance(data.get("breakdown"), dict) else {}
    breakdown: dict[str, int] = {}
    for criterion in _SCORE_CRITERIA:
        try:
            value = int(round(float(raw_breakdown.get(criterion, 0))))
        except (TypeError, ValueError):
            value = 0
        breakdown[criterion] = min(25, max(0, value))
    return {
        "score": sum(breakdown.values()),
        "breakdown": breakdown,
        "issues": [str(item) for item in data.get("issues") or []],
        "suggestions": [str(item) for item in data.get("suggestions") or []],
    }


# ---------------------------------------------------------------------------
# Suggest / execute
# ---------------------------------------------------------------------------

class SuggestOperationInput(BaseModel):
    chunk_id: str = Field(description="Primary fragment the operation applies to")
    action: OperationAction = Field(description="SPLIT, MERGE, REWRITE, DELETE or KEEP")
    rationale: str = Field(default="", description="Why this change improves retrieval")
    split_points: list[int] | None = Field(default=None, description="SPLIT: character offsets")
    split_blocks: list[str] | None = Field(default=None, description="SPLIT: replacement texts")
    merge_with_ids: list[str] | None = Field(default=None, description="MERGE: other fragment ids")
    suggested_content: str | None = Field(default=None, description="REWRITE: the new text")


class SuggestOperationTool(AgentTool):
    name = "suggest_operation"
    description = (
        "Propose an edit (SPLIT, MERGE, REWRITE, DELETE, KEEP) for a fragment. Returns an "
        "operation_id the user must approve before execute_operation can run it."
    )
    input_model = SuggestOperationInput

    async def execute(self, args: SuggestOperationInput, context: ToolContext) -> dict[str, Any]:
        session = await context.sessions.get_session(context.session_id)
        _position(session, args.chunk_id)

        problem = _missing_parameters(args)
        if problem:
            return {"success": False, "error": problem}
        for other in args.merge_with_ids or []:
            _position(session, other)

        suggestion = OperationSuggestion(
            operation_id=str(uuid.uuid4()),
            action=args.action,
            chunk_id=args.chunk_id,
            rationale=args.rationale,
            split_points=args.split_points,
            split_blocks=args.split_blocks,
            merge_with_ids=args.merge_with_ids,
            suggested_content=args.suggested_content,
        )
        await context.memory.save_suggestion(context.session_id, suggestion)
        logger.info(
            "operation_suggested",
            session_id=context.session_id,
            operation_id=suggestion.operation_id,
            action=suggestion.action.value,
        )
        return {
            "success": True,
            "requires_approval": suggestion.action != OperationAction.KEEP,
            **suggestion.model_dump(mode="json", exclude_none=True),
        }


def _missing_parameters(args: SuggestOperationInput) -> str | None:
    if args.action == OperationAction.SPLIT and bool(args.split_points) == bool(args.split_blocks):
        return "SPLIT requires exactly one of split_points or split_blocks"
    if args.action == OperationAction.MERGE and not args.merge_with_ids:
        return "MERGE requires merge_with_ids"
    if args.action == OperationAction.REWRITE and not (args.suggested_content or "").strip():
        return "REWRITE requires suggested_content"
    return None


class ExecuteOperationInput(BaseModel):
    operation_id: str = Field(description="operation_id returned by suggest_operation")


class ExecuteOperationTool(AgentTool):
    name = "execute_operation"
    description = (
        "Execute a previously suggested operation. ONLY call this after the user has "
        "explicitly approved the operation."
    )
    input_model = ExecuteOperationInput

    async def execute(self, args: ExecuteOperationInput, context: ToolContext) -> dict[str, Any]:
        operation_id = args.operation_id
        suggestion = await context.memory.get_suggestion(context.session_id, operation_id)
        # KEEP changes nothing and is never put up for approval.
        needs_approval = suggestion is None or suggestion.action != OperationAction.KEEP
        if needs_approval and not await context.ledger.is_approved(context.session_id, operation_id):
            logger.info(
                "operation_refused",
                session_id=context.session_id,
                operation_id=operation_id,
            )
            return {"success": False, "error": NOT_APPROVED_ERROR, "operation_id": operation_id}

        if suggestion is None:
            return {
                "success": False,
                "error": "Unknown or already executed operation",
                "operation_id": operation_id,
            }

        result = await self._apply(suggestion, context)

        # Consumed: an operation runs at most once.
        await context.memory.remove_suggestion(context.session_id, operation_id)
        await context.ledger.revoke(context.session_id, operation_id)
        logger.info(
            "operation_executed",
            session_id=context.session_id,
            operation_id=operation_id,
            action=suggestion.action.value,
        )
        return {
            "success": True,
            "operation_id": operation_id,
            "action": suggestion.action.value,
            "chunk_id": suggestion.chunk_id,
            "result": result,
        }

    @staticmethod
    async def _apply(suggestion: OperationSuggestion, context: ToolContext) -> dict[str, Any]:
        sessions = context.sessions
        sid = context.session_id
        action = suggestion.action

        if action == OperationAction.KEEP:
            return {"kept": True}
        if action == OperationAction.DELETE:
            session = await sessions.delete_chunks(sid, [suggestion.chunk_id])
            return {"deleted": True, "chunk_count": len(session.chunks)}
        if action == OperationAction.REWRITE:
            session = await sessions.update_chunk(
                sid, suggestion.chunk_id, suggestion.suggested_content or "", user_id=context.user_id
            )
            return {"rewritten": True, "chunk_count": len(session.chunks)}
        if action == OperationAction.MERGE:
            session = await sessions.merge_chunks(
                sid, [suggestion.chunk_id, *(suggestion.merge_with_ids or [])], user_id=context.user_id
            )
            return {"merged": True, "chunk_count": len(session.chunks)}
        session = await sessions.split_chunk(
            sid,
            suggestion.chunk_id,
            split_points=suggestion.split_points,
            new_text_blocks=suggestion.split_blocks,
            elevated=context.elevated,
            user_id=context.user_id,
        )
        return {"split": True, "chunk_count": len(session.chunks)}


def build_default_tools(llm: ILLMProvider) -> list[AgentTool]:
    """Return the standard tool set in the order it is offered to the model."""
    return [
        ListChunksTool(),
        GetChunkContentTool(),
        GetChunksContextTool(),
        AnalyzeCollectionQualityTool(),
        ScoreChunkTool(llm),
        SuggestOperationTool(),
        ExecuteOperationTool(),
    ]
