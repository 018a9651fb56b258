"""Draft session persistence over the key-value store.

Each session is one JSON document under ``session:<session_id>``.  Writes
replace the whole document and refresh its TTL, so an actively edited
draft never expires mid-edit while an abandoned one is reclaimed by the
store.  Expiry is the store's job; this class only has to tolerate a key
vanishing between two reads.
"""

from __future__ import annotations

import structlog
from pydantic import ValidationError as PydanticValidationError

from ragler.interfaces.kv_store import IKeyValueStore
from ragler.models.session import Session, SessionSummary
from ragler.utils.logging import get_logger

SESSION_KEY_PREFIX = "session:"


def session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


class DraftSessionStore:
    """Session CRUD with TTL-refresh-on-write.

    Parameters
    ----------
    kv:
        Backing key-value store.
    ttl:
        Seconds a session lives after its last write.
    """

    def __init__(self, kv: IKeyValueStore, ttl: int = 86400) -> None:
        self._kv = kv
        self._ttl = ttl
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def ttl(self) -> int:
        return self._ttl

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def save(self, session: Session) -> Session:
        """Write *session* (replace-on-write) and refresh its TTL."""
        await self._kv.set(
            session_key(session.session_id),
            session.model_dump_json(),
            ttl=self._ttl,
        )
        self._logger.debug(
            "session_saved",
            session_id=session.session_id,
            status=session.status.value,
            chunks=len(session.chunks),
        )
        return session

    async def get(self, session_id: str) -> Session | None:
        """Return the stored session, or ``None`` when absent or expired."""
        raw = await self._kv.get(session_key(session_id))
        if raw is None:
            return None
        try:
            return Session.model_validate_json(raw)
        except PydanticValidationError as exc:
            self._logger.warning(
                "session_deserialize_failed",
                session_id=session_id,
                error=str(exc)[:200],
            )
            return None

    async def delete(self, session_id: str) -> None:
        await self._kv.delete(session_key(session_id))
        self._logger.debug("session_removed", session_id=session_id)

    async def list_sessions(self) -> list[SessionSummary]:
        """Return summaries of all live sessions, newest activity first."""
        summaries: list[SessionSummary] = []
        for key in await self._kv.scan_keys(f"{SESSION_KEY_PREFIX}*"):
            session = await self.get(key[len(SESSION_KEY_PREFIX):])
            if session is None:
                # Expired between scan and read.
                continue
            summaries.append(
                SessionSummary(
                    session_id=session.session_id,
                    source_type=session.source_type,
                    source_url=session.source_url,
                    title=session.title,
                    status=session.status,
                    chunk_count=len(session.chunks),
                    updated_at=session.updated_at,
                )
            )
        summaries.sort(key=lambda s: s.updated_at, reverse=True)
        return summaries

    def get_provider_name(self) -> str:
        return f"draft_session_store:{self._kv.get_provider_name()}"
