"""Session state machine and fragment edit operations.

Owns every change to a draft session after ingestion.  Each operation is
a single linear read -> compute -> write against the
:class:`DraftSessionStore`; there is no version check, so two concurrent
edits of one session race and the last write wins.

Lifecycle::

    DRAFT --preview--> PREVIEW --publish--> PUBLISHED
      ^                   |
      +------edit---------+          DRAFT/PREVIEW --delete--> DELETED

Fragment edits are legal in DRAFT and PREVIEW.  An edit made in PREVIEW
drops the session back to DRAFT, so what gets published is always what
was last previewed.  PUBLISHED and DELETED are terminal.

Text-changing edits (merge, split, update) set ``is_dirty`` and bump the
edit audit fields.  They also reset ``type`` and ``lang`` so the publish
engine re-derives them from the new text; ``heading_path`` and
``section`` are inherited because the fragment still sits under the same
headings.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from ragler.models.session import (
    Chunk,
    ChunkingConfig,
    PreviewResult,
    Session,
    SessionStatus,
    SessionSummary,
    new_chunk_id,
)
from ragler.services.chunking_service import ChunkingService
from ragler.services.session_store import DraftSessionStore
from ragler.services.token_counter import TokenCounter
from ragler.utils.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ragler.utils.logging import get_logger

_EDITABLE = (SessionStatus.DRAFT, SessionStatus.PREVIEW)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class SessionService:
    """Lifecycle transitions and fragment mutations for draft sessions.

    Parameters
    ----------
    store:
        Draft session persistence.
    chunking:
        Strategy selector used by :meth:`generate_chunks`.
    merge_separator:
        Inserted between fragment texts on merge.  Empty by default, so a
        merge is an exact concatenation.
    token_limit:
        Fragments above this many tokens are flagged by :meth:`preview`.
    token_counter:
        Used for the preview size check.
    """

    def __init__(
        self,
        store: DraftSessionStore,
        chunking: ChunkingService,
        merge_separator: str = "",
        token_limit: int = 8000,
        token_counter: TokenCounter | None = None,
    ) -> None:
        self._store = store
        self._chunking = chunking
        self._merge_separator = merge_separator
        self._token_limit = token_limit
        self._tokens = token_counter or TokenCounter()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    async def create_session(self, session: Session) -> Session:
        """Persist a freshly ingested session in DRAFT."""
        if session.status != SessionStatus.DRAFT:
            raise InvalidStateError(message="New sessions must start in DRAFT")
        await self._store.save(session)
        self._logger.info(
            "session_created",
            session_id=session.session_id,
            source_type=session.source_type.value,
            source_url=session.source_url,
        )
        return session

    async def get_session(self, session_id: str) -> Session:
        session = await self._store.get(session_id)
        if session is None:
            raise NotFoundError(message=f"Session {session_id} not found")
        return session

    async def list_sessions(self) -> list[SessionSummary]:
        return await self._store.list_sessions()

    # ------------------------------------------------------------------
    # Fragment generation
    # ------------------------------------------------------------------

    async def generate_chunks(
        self,
        session_id: str,
        config: ChunkingConfig | None = None,
    ) -> Session:
        """Replace the fragment list wholesale with freshly chunked content.

        Requires DRAFT and non-empty raw content.  When *config* is given
        it becomes the session's chunking configuration.
        """
        session = await self.get_session(session_id)
        if session.status != SessionStatus.DRAFT:
            raise InvalidStateError(
                message=f"Cannot generate chunks in {session.status.value} status"
            )
        if not (session.raw_content or "").strip():
            raise InvalidStateError(message="Session has no raw content to chunk")

        chunking = config or session.chunking
        chunks = await self._chunking.chunk(session.raw_content or "", chunking)
        return await self._commit(
            session,
            "generate_chunks",
            chunks=chunks,
            chunking=chunking,
        )

    # ------------------------------------------------------------------
    # Fragment edits
    # ------------------------------------------------------------------

    async def merge_chunks(
        self,
        session_id: str,
        chunk_ids: list[str],
        user_id: str | None = None,
    ) -> Session:
        """Merge fragments into one, in session order.

        The request order of *chunk_ids* is ignored: texts are joined in
        the order the fragments currently appear, and the merged fragment
        takes the position of the first of them.
        """
        if len(chunk_ids) < 2:
            raise ValidationError(
                message="At least two chunk ids are required to merge",
                details={"chunk_ids": chunk_ids},
            )
        if len(set(chunk_ids)) != len(chunk_ids):
            raise ValidationError(
                message="Duplicate chunk ids in merge request",
                details={"chunk_ids": chunk_ids},
            )

        session = await self._get_editable(session_id)
        self._require_chunks(session, chunk_ids)

        wanted = set(chunk_ids)
        positions = [idx for idx, chunk in enumerate(session.chunks) if chunk.id in wanted]
        members = [session.chunks[idx] for idx in positions]
        first = members[0]
        merged = Chunk(
            id=new_chunk_id(),
            text=self._merge_separator.join(chunk.text for chunk in members),
            is_dirty=True,
            heading_path=list(first.heading_path),
            section=first.section,
            edit_count=max(chunk.edit_count for chunk in members) + 1,
            last_edited_at=_utcnow(),
            last_edited_by=user_id,
        )

        chunks: list[Chunk] = []
        for idx, chunk in enumerate(session.chunks):
            if idx == positions[0]:
                chunks.append(merged)
            elif chunk.id not in wanted:
                chunks.append(chunk)

        return await self._commit(session, "merge_chunks", chunks=chunks, merged=len(members))

    async def split_chunk(
        self,
        session_id: str,
        chunk_id: str,
        split_points: list[int] | None = None,
        new_text_blocks: list[str] | None = None,
        elevated: bool = True,
        user_id: str | None = None,
    ) -> Session:
        """Replace one fragment with several, in place.

        Exactly one of *split_points* (character offsets into the
        fragment's text, strictly increasing, inside ``(0, len)``) or
        *new_text_blocks* (replacement texts) must be given.  Slices are
        kept verbatim so merging them back restores the original text.

        Raises
        ------
        ForbiddenError
            The caller is not elevated.  Checked before the session is read.
        """
        if not elevated:
            raise ForbiddenError(message="Split requires an elevated role")
        has_points = bool(split_points)
        has_blocks = bool(new_text_blocks)
        if has_points == has_blocks:
            raise ValidationError(
                message="Provide exactly one of split_points or new_text_blocks",
            )

        session = await self._get_editable(session_id)
        index = session.index_of(chunk_id)
        if index < 0:
            raise NotFoundError(message=f"Chunk {chunk_id} not found in session {session_id}")
        original = session.chunks[index]

        if has_points:
            texts = self._slice_at(original.text, list(split_points or []))
        else:
            texts = list(new_text_blocks or [])
            if any(not text.strip() for text in texts):
                raise ValidationError(message="Text blocks must not be empty")

        now = _utcnow()
        pieces = [
            Chunk(
                id=new_chunk_id(),
                text=text,
                is_dirty=True,
                heading_path=list(original.heading_path),
                section=original.section,
                edit_count=original.edit_count + 1,
                last_edited_at=now,
                last_edited_by=user_id,
            )
            for text in texts
        ]
        chunks = session.chunks[:index] + pieces + session.chunks[index + 1:]
        return await self._commit(session, "split_chunk", chunks=chunks, pieces=len(pieces))

    async def update_chunk(
        self,
        session_id: str,
        chunk_id: str,
        text: str,
        user_id: str | None = None,
    ) -> Session:
        """Replace one fragment's text and mark it dirty."""
        if not text or not text.strip():
            raise ValidationError(message="Chunk text must not be empty")

        session = await self._get_editable(session_id)
        index = session.index_of(chunk_id)
        if index < 0:
            raise NotFoundError(message=f"Chunk {chunk_id} not found in session {session_id}")
        current = session.chunks[index]
        updated = current.model_copy(
            update={
                "text": text,
                "is_dirty": True,
                "type": None,
                "lang": None,
                "edit_count": current.edit_count + 1,
                "last_edited_at": _utcnow(),
                "last_edited_by": user_id,
            }
        )
        chunks = list(session.chunks)
        chunks[index] = updated
        return await self._commit(session, "update_chunk", chunks=chunks)

    async def reorder_chunks(self, session_id: str, chunk_ids: list[str]) -> Session:
        """Reorder fragments; *chunk_ids* must be a permutation of the current ids."""
        session = await self._get_editable(session_id)
        current = session.chunk_ids()
        if len(chunk_ids) != len(current) or set(chunk_ids) != set(current):
            raise ValidationError(
                message="chunk_ids must list every chunk in the session exactly once",
                details={"expected": len(current), "received": len(chunk_ids)},
            )
        by_id = {chunk.id: chunk for chunk in session.chunks}
        return await self._commit(
            session,
            "reorder_chunks",
            chunks=[by_id[chunk_id] for chunk_id in chunk_ids],
        )

    async def delete_chunks(self, session_id: str, chunk_ids: list[str]) -> Session:
        """Remove fragments.  Removing the last one leaves an empty session."""
        if not chunk_ids:
            raise ValidationError(message="No chunk ids given")
        session = await self._get_editable(session_id)
        self._require_chunks(session, chunk_ids)
        doomed = set(chunk_ids)
        return await self._commit(
            session,
            "delete_chunks",
            chunks=[chunk for chunk in session.chunks if chunk.id not in doomed],
            removed=len(doomed),
        )

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    async def preview(self, session_id: str) -> PreviewResult:
        """Validate and move DRAFT -> PREVIEW.

        Warnings never block the transition.  Duplicate fragment ids are a
        hard error and leave the session untouched.
        """
        session = await self.get_session(session_id)
        if session.status not in _EDITABLE:
            raise InvalidStateError(
                message=f"Cannot preview a session in {session.status.value} status"
            )

        ids = session.chunk_ids()
        if len(set(ids)) != len(ids):
            raise InvalidStateError(message="Session contains duplicate chunk ids")

        warnings: list[str] = []
        if not session.chunks:
            warnings.append("No chunks to publish")
        empty = sum(1 for chunk in session.chunks if not chunk.text.strip())
        if empty:
            warnings.append(f"{empty} empty chunks found")
        oversized = sum(
            1 for chunk in session.chunks if not self._tokens.fits(chunk.text, self._token_limit)
        )
        if oversized:
            warnings.append(f"{oversized} chunks exceed the token limit")

        previewed = await self._commit(session, "preview", status=SessionStatus.PREVIEW)
        self._logger.info(
            "session_previewed",
            session_id=session_id,
            chunks=len(previewed.chunks),
            warnings=len(warnings),
        )
        return PreviewResult(session=previewed, warnings=warnings)

    async def delete_session(self, session_id: str) -> Session:
        """Move a non-published session to DELETED and remove it from the store."""
        session = await self.get_session(session_id)
        if session.status == SessionStatus.PUBLISHED:
            raise InvalidStateError(message="Published sessions cannot be deleted")
        if session.status == SessionStatus.DELETED:
            raise InvalidStateError(message="Session is already deleted")

        deleted = session.model_copy(
            update={"status": SessionStatus.DELETED, "updated_at": _utcnow()}
        )
        await self._store.delete(session_id)
        self._logger.info("session_deleted", session_id=session_id)
        return deleted

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get_editable(self, session_id: str) -> Session:
        session = await self.get_session(session_id)
        if session.status not in _EDITABLE:
            raise InvalidStateError(
                message=f"Cannot modify chunks in {session.status.value} status"
            )
        return session

    @staticmethod
    def _require_chunks(session: Session, chunk_ids: list[str]) -> None:
        present = set(session.chunk_ids())
        missing = [chunk_id for chunk_id in chunk_ids if chunk_id not in present]
        if missing:
            raise NotFoundError(
                message=f"Chunks not found in session {session.session_id}: {', '.join(missing)}"
            )

    @staticmethod
    def _slice_at(text: str, split_points: list[int]) -> list[str]:
        previous = 0
        for point in split_points:
            if point <= previous or point >= len(text):
                raise ValidationError(
                    message="split_points must be strictly increasing and inside the chunk text",
                    details={"split_points": split_points, "text_length": len(text)},
                )
            previous = point
        bounds = [0, *split_points, len(text)]
        return [text[start:end] for start, end in zip(bounds, bounds[1:])]

    async def _commit(self, session: Session, op: str, **changes: object) -> Session:
        """Write *changes* back, bump ``updated_at`` and refresh the TTL.

        Fragment edits on a PREVIEW session return it to DRAFT.
        """
        extra = {key: value for key, value in changes.items() if key not in ("chunks", "chunking", "status")}
        update: dict[str, object] = {
            key: value for key, value in changes.items() if key in ("chunks", "chunking", "status")
        }
        if "status" not in update and session.status == SessionStatus.PREVIEW:
            update["status"] = SessionStatus.DRAFT
        update["updated_at"] = _utcnow()

        updated = session.model_copy(update=update)
        await self._store.save(updated)
        self._logger.info(
            "session_mutated",
            session_id=session.session_id,
            op=op,
            status=updated.status.value,
            chunks=len(updated.chunks),
            **extra,
        )
        return updated
