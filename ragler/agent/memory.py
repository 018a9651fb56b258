"""Agent conversation memory and the approval ledger.

Everything lives in the key-value store as JSON strings:

    agent:session:{sid}         chat metadata (ChatSessionInfo)
    agent:history:{sid}         list of ChatTurn, capped to the newest N
    agent:approved:{sid}        list of approved operation ids (the ledger)
    agent:ops:{sid}             {operation_id: OperationSuggestion}
    agent:sessions:user:{uid}   sorted set of sids scored by last activity

``sid`` is the draft session the chat is bound to.
"""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone

import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ragler.interfaces.kv_store import IKeyValueStore
from ragler.models.agent import ChatSessionInfo, ChatTurn, OperationSuggestion
from ragler.utils.logging import get_logger

_TITLE_CHARS = 60
_DEFAULT_TTL = 2_592_000  # 30 days

_turns_adapter = TypeAdapter(list[ChatTurn])
_ops_adapter = TypeAdapter(dict[str, OperationSuggestion])


def history_key(session_id: str) -> str:
    return f"agent:history:{session_id}"


def approved_key(session_id: str) -> str:
    return f"agent:approved:{session_id}"


def ops_key(session_id: str) -> str:
    return f"agent:ops:{session_id}"


def chat_key(session_id: str) -> str:
    return f"agent:session:{session_id}"


def user_index_key(user_id: str) -> str:
    return f"agent:sessions:user:{user_id}"


class ApprovalLedger:
    """Persisted set of approved operation ids, scoped per session.

    Entries are added by :meth:`approve` and removed by :meth:`revoke`,
    :meth:`clear` or when the execute tool consumes them.  They share the
    chat's TTL and never expire on their own.
    """

    def __init__(self, kv: IKeyValueStore, ttl: int | None = _DEFAULT_TTL) -> None:
        self._kv = kv
        self._ttl = ttl
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def list_approved(self, session_id: str) -> list[str]:
        raw = await self._kv.get(approved_key(session_id))
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            self._logger.warning("approval_ledger_corrupt", session_id=session_id)
            return []
        return [str(item) for item in data] if isinstance(data, list) else []

    async def is_approved(self, session_id: str, operation_id: str) -> bool:
        return operation_id in await self.list_approved(session_id)

    async def approve(self, session_id: str, operation_id: str) -> None:
        approved = await self.list_approved(session_id)
        if operation_id not in approved:
            approved.append(operation_id)
            await self._write(session_id, approved)
        self._logger.info("operation_approved", session_id=session_id, operation_id=operation_id)

    async def revoke(self, session_id: str, operation_id: str) -> None:
        approved = await self.list_approved(session_id)
        if operation_id in approved:
            approved.remove(operation_id)
            await self._write(session_id, approved)
        self._logger.info("operation_revoked", session_id=session_id, operation_id=operation_id)

    async def clear(self, session_id: str) -> None:
        await self._kv.delete(approved_key(session_id))

    async def _write(self, session_id: str, approved: list[str]) -> None:
        await self._kv.set(approved_key(session_id), json.dumps(approved), ttl=self._ttl)


class AgentMemory:
    """Conversation history, chat metadata and pending suggestions.

    Parameters
    ----------
    kv:
        Backing key-value store.
    history_limit:
        Number of turns kept per chat; older turns are dropped.  Odd
        values are rounded down to a whole number of exchanges.
    ttl:
        Lifetime of every agent key after its last write.
    """

    def __init__(
        self,
        kv: IKeyValueStore,
        history_limit: int = 50,
        ttl: int | None = _DEFAULT_TTL,
    ) -> None:
        self._kv = kv
        self._history_limit = history_limit
        self._ttl = ttl
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def load_history(self, session_id: str) -> list[ChatTurn]:
        raw = await self._kv.get(history_key(session_id))
        if raw is None:
            return []
        try:
            return _turns_adapter.validate_json(raw)
        except PydanticValidationError as exc:
            self._logger.warning(
                "load_history_failed",
                session_id=session_id,
                error=str(exc)[:200],
            )
            return []

    async def append_turns(self, session_id: str, turns: list[ChatTurn]) -> list[ChatTurn]:
        """Append *turns* and trim to the history limit.

        Turns are stored as human/AI pairs, so an odd limit is rounded down
        to keep the retained window starting on a human turn.
        """
        history = (await self.load_history(session_id)) + list(turns)
        if self._history_limit > 0:
            limit = max(2, self._history_limit - self._history_limit % 2)
            history = history[-limit:]
        await self._kv.set(
            history_key(session_id),
            _turns_adapter.dump_json(history).decode("utf-8"),
            ttl=self._ttl,
        )
        return history

    async def clear_history(self, session_id: str) -> None:
        await self._kv.delete(history_key(session_id))

    # ------------------------------------------------------------------
    # Chat metadata
    # ------------------------------------------------------------------

    async def get_chat(self, session_id: str) -> ChatSessionInfo | None:
        raw = await self._kv.get(chat_key(session_id))
        if raw is None:
            return None
        try:
            return ChatSessionInfo.model_validate_json(raw)
        except PydanticValidationError:
            self._logger.warning("chat_session_corrupt", session_id=session_id)
            return None

    async def touch_chat(
        self,
        session_id: str,
        user_id: str,
        collection_id: str,
        first_message: str,
    ) -> ChatSessionInfo:
        """Create the chat record on first use, otherwise bump ``updated_at``.

        The title is the first 60 characters of the first message.
        """
        now = datetime.now(tz=timezone.utc)
        info = await self.get_chat(session_id)
        if info is None:
            title = first_message.strip()[:_TITLE_CHARS]
            if len(first_message.strip()) > _TITLE_CHARS:
                title += "..."
            info = ChatSessionInfo(
                session_id=session_id,
                user_id=user_id,
                collection_id=collection_id,
                title=title or "New Chat",
                created_at=now,
                updated_at=now,
            )
        else:
            info = info.model_copy(update={"updated_at": now, "collection_id": collection_id})

        await self._kv.set(chat_key(session_id), info.model_dump_json(), ttl=self._ttl)
        await self._kv.zadd(user_index_key(info.user_id), time.time(), session_id)
        return info

    async def list_chats(self, user_id: str, limit: int = 50, offset: int = 0) -> list[ChatSessionInfo]:
        """Return the user's chats, most recently active first.

        Index entries whose chat record has expired are removed on the way.
        """
        index = user_index_key(user_id)
        ids = await self._kv.zrevrange(index, offset, offset + limit - 1)
        chats: list[ChatSessionInfo] = []
        for session_id in ids:
            info = await self.get_chat(session_id)
            if info is None:
                await self._kv.zrem(index, session_id)
                continue
            chats.append(info)
        return chats

    # ------------------------------------------------------------------
    # Operation suggestions
    # ------------------------------------------------------------------

    async def load_suggestions(self, session_id: str) -> dict[str, OperationSuggestion]:
        raw = await self._kv.get(ops_key(session_id))
        if raw is None:
            return {}
        try:
            return _ops_adapter.validate_json(raw)
        except PydanticValidationError:
            self._logger.warning("suggestions_corrupt", session_id=session_id)
            return {}

    async def save_suggestion(self, session_id: str, suggestion: OperationSuggestion) -> None:
        ops = await self.load_suggestions(session_id)
        ops[suggestion.operation_id] = suggestion
        await self._write_suggestions(session_id, ops)

    async def get_suggestion(self, session_id: str, operation_id: str) -> OperationSuggestion | None:
        return (await self.load_suggestions(session_id)).get(operation_id)

    async def remove_suggestion(self, session_id: str, operation_id: str) -> None:
        ops = await self.load_suggestions(session_id)
        if ops.pop(operation_id, None) is not None:
            await self._write_suggestions(session_id, ops)

    async def clear_suggestions(self, session_id: str) -> None:
        await self._kv.delete(ops_key(session_id))

    async def _write_suggestions(self, session_id: str, ops: dict[str, OperationSuggestion]) -> None:
        await self._kv.set(
            ops_key(session_id),
            _ops_adapter.dump_json(ops).decode("utf-8"),
            ttl=self._ttl,
        )
