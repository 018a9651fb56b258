"""FastAPI routes for ragler.

Route map (all under ``/api/v1``)::

    GET    /health                                  app + store availability
    POST   /ingest/manual | /ingest/web | /ingest/file
    GET    /sessions                                list drafts
    GET    /sessions/{sid}                          one draft
    DELETE /sessions/{sid}                          delete draft
    POST   /sessions/{sid}/chunks/generate
    POST   /sessions/{sid}/chunks/merge
    POST   /sessions/{sid}/chunks/{cid}/split       ML / DEV only
    PATCH  /sessions/{sid}/chunks/{cid}
    POST   /sessions/{sid}/chunks/reorder
    POST   /sessions/{sid}/chunks/delete
    POST   /sessions/{sid}/preview
    POST   /sessions/{sid}/publish
    GET    /collections | POST /collections        create: ML / DEV only
    GET    /collections/{name} | DELETE            delete: ML / DEV only
    GET    /collections/{name}/documents[/{source_id}]
    GET    /collections/{name}/chunks[/{point_id}]
    PUT    /collections/{name}/chunks/{point_id}/quality
    POST   /collections/{name}/search             semantic search
    POST   /agent/{collection_id}/chat              server-sent events
    POST   /agent/sessions/{sid}/approve | /revoke
    DELETE /agent/sessions/{sid}
    GET    /agent/sessions?user_id=

Services are read from ``app.state`` (populated by ``main._build_all``)
through the ``Annotated[..., Depends(...)]`` aliases below.  Typed errors
raised by services are converted to JSON by ``ErrorHandlingMiddleware``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from enum import Enum
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, File, Form, Header, Query, Request, UploadFile
from fastapi.responses import StreamingResponse

from ragler import __version__
from ragler.agent.tool_loop import CollectionAgent
from ragler.api.schemas import (
    AgentChatRequest,
    ApprovalRequest,
    ApprovalResponse,
    CollectionListResponse,
    CreateCollectionRequest,
    DeleteChunksRequest,
    DocumentListResponse,
    GenerateChunksRequest,
    HealthResponse,
    ManualIngestRequest,
    MergeChunksRequest,
    PreviewResponse,
    PublishSessionRequest,
    QualityScoreRequest,
    ReorderChunksRequest,
    SearchRequest,
    SplitChunkRequest,
    UpdateChunkRequest,
    WebIngestRequest,
)
from ragler.interfaces.kv_store import IKeyValueStore
from ragler.interfaces.vector_index import IVectorIndex
from ragler.models.agent import ChatSessionInfo
from ragler.models.collection import (
    ChunkPage,
    CollectionInfo,
    DocumentDetail,
    PublishedChunk,
    SearchResponse,
)
from ragler.models.payload import PublishRequest, PublishResult
from ragler.models.session import ChunkingConfig, Session, SessionSummary
from ragler.services.collection_service import CollectionService
from ragler.services.feature_flags import FeatureFlags
from ragler.services.ingest_service import IngestService
from ragler.services.publish_engine import PublishEngine
from ragler.services.session_service import SessionService
from ragler.utils.errors import ForbiddenError, ValidationError
from ragler.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class UserRole(str, Enum):
    ML = "ML"
    DEV = "DEV"
    L2 = "L2"  # simple mode


def parse_role(raw: str | None) -> UserRole:
    """Map the ``X-User-Role`` header to a role; unknown or missing is L2."""
    value = (raw or "").strip().upper()
    if value == UserRole.ML.value:
        return UserRole.ML
    if value == UserRole.DEV.value:
        return UserRole.DEV
    return UserRole.L2


def is_elevated(role: UserRole) -> bool:
    return role in (UserRole.ML, UserRole.DEV)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service


def _get_ingest_service(request: Request) -> IngestService:
    return request.app.state.ingest_service


def _get_publish_engine(request: Request) -> PublishEngine:
    return request.app.state.publish_engine


def _get_collections(request: Request) -> CollectionService:
    return request.app.state.collections


def _get_agent(request: Request) -> CollectionAgent:
    return request.app.state.agent


def _get_features(request: Request) -> FeatureFlags:
    return getattr(request.app.state, "features", None) or FeatureFlags()


def _get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    return (x_user_id or "").strip() or "anonymous"


def _get_user_role(x_user_role: Annotated[str | None, Header()] = None) -> UserRole:
    return parse_role(x_user_role)


SessionServiceDep = Annotated[SessionService, Depends(_get_session_service)]
IngestServiceDep = Annotated[IngestService, Depends(_get_ingest_service)]
PublishEngineDep = Annotated[PublishEngine, Depends(_get_publish_engine)]
CollectionServiceDep = Annotated[CollectionService, Depends(_get_collections)]
AgentDep = Annotated[CollectionAgent, Depends(_get_agent)]
FeaturesDep = Annotated[FeatureFlags, Depends(_get_features)]
UserIdDep = Annotated[str, Depends(_get_user_id)]
UserRoleDep = Annotated[UserRole, Depends(_get_user_role)]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(request: Request, features: FeaturesDep) -> HealthResponse:
    """Report availability of the key-value store and vector index."""
    providers: dict[str, bool] = {}
    kv: IKeyValueStore | None = getattr(request.app.state, "kv_store", None)
    if kv is not None:
        providers[kv.get_provider_name()] = await kv.ping()
    index: IVectorIndex | None = getattr(request.app.state, "vector_index", None)
    if index is not None:
        providers[index.get_provider_name()] = await index.ping()

    return HealthResponse(
        status="healthy" if all(providers.values()) else "degraded",
        version=__version__,
        features=features.as_dict(),
        providers=providers,
    )


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


@router.post("/ingest/manual", response_model=Session, status_code=201)
async def ingest_manual(body: ManualIngestRequest, ingest: IngestServiceDep) -> Session:
    return await ingest.ingest_manual(body.content, title=body.title, chunking=body.chunking)


@router.post("/ingest/web", response_model=Session, status_code=201)
async def ingest_web(body: WebIngestRequest, ingest: IngestServiceDep) -> Session:
    return await ingest.ingest_web(body.url, chunking=body.chunking)


@router.post("/ingest/file", response_model=Session, status_code=201)
async def ingest_file(
    ingest: IngestServiceDep,
    file: Annotated[UploadFile, File()],
    method: Annotated[str, Form()] = "boundary",
    chunk_size: Annotated[int, Form()] = 1000,
    overlap: Annotated[int, Form()] = 0,
) -> Session:
    data = await file.read(_MAX_UPLOAD_BYTES + 1)
    if len(data) > _MAX_UPLOAD_BYTES:
        raise ValidationError(
            message=f"File exceeds the {_MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit",
            details={"filename": file.filename},
        )
    try:
        chunking = ChunkingConfig(method=method, chunk_size=chunk_size, overlap=overlap)
    except ValueError as exc:
        raise ValidationError(message=f"Invalid chunking options: {exc}") from exc
    return await ingest.ingest_file(data, file.filename or "", chunking=chunking)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@router.get("/sessions", response_model=list[SessionSummary])
async def list_sessions(sessions: SessionServiceDep) -> list[SessionSummary]:
    return await sessions.list_sessions()


@router.get("/sessions/{session_id}", response_model=Session)
async def get_session(session_id: str, sessions: SessionServiceDep) -> Session:
    return await sessions.get_session(session_id)


@router.delete("/sessions/{session_id}", response_model=Session)
async def delete_session(session_id: str, sessions: SessionServiceDep) -> Session:
    return await sessions.delete_session(session_id)


@router.post("/sessions/{session_id}/chunks/generate", response_model=Session)
async def generate_chunks(
    session_id: str,
    body: GenerateChunksRequest,
    sessions: SessionServiceDep,
) -> Session:
    return await sessions.generate_chunks(session_id, body.chunking)


@router.post("/sessions/{session_id}/chunks/merge", response_model=Session)
async def merge_chunks(
    session_id: str,
    body: MergeChunksRequest,
    sessions: SessionServiceDep,
    user_id: UserIdDep,
) -> Session:
    return await sessions.merge_chunks(session_id, body.chunk_ids, user_id=user_id)


@router.post("/sessions/{session_id}/chunks/reorder", response_model=Session)
async def reorder_chunks(
    session_id: str,
    body: ReorderChunksRequest,
    sessions: SessionServiceDep,
) -> Session:
    return await sessions.reorder_chunks(session_id, body.chunk_ids)


@router.post("/sessions/{session_id}/chunks/delete", response_model=Session)
async def delete_chunks(
    session_id: str,
    body: DeleteChunksRequest,
    sessions: SessionServiceDep,
) -> Session:
    return await sessions.delete_chunks(session_id, body.chunk_ids)


@router.post("/sessions/{session_id}/chunks/{chunk_id}/split", response_model=Session)
async def split_chunk(
    session_id: str,
    chunk_id: str,
    body: SplitChunkRequest,
    sessions: SessionServiceDep,
    user_id: UserIdDep,
    role: UserRoleDep,
) -> Session:
    return await sessions.split_chunk(
        session_id,
        chunk_id,
        split_points=body.split_points,
        new_text_blocks=body.new_text_blocks,
        elevated=is_elevated(role),
        user_id=user_id,
    )


@router.patch("/sessions/{session_id}/chunks/{chunk_id}", response_model=Session)
async def update_chunk(
    session_id: str,
    chunk_id: str,
    body: UpdateChunkRequest,
    sessions: SessionServiceDep,
    user_id: UserIdDep,
) -> Session:
    return await sessions.update_chunk(session_id, chunk_id, body.text, user_id=user_id)


@router.post("/sessions/{session_id}/preview", response_model=PreviewResponse)
async def preview_session(session_id: str, sessions: SessionServiceDep) -> PreviewResponse:
    result = await sessions.preview(session_id)
    return PreviewResponse(
        session=result.session,
        warnings=result.warnings,
        is_valid=not result.warnings,
    )


@router.post("/sessions/{session_id}/publish", response_model=PublishResult)
async def publish_session(
    session_id: str,
    body: PublishSessionRequest,
    engine: PublishEngineDep,
    user_id: UserIdDep,
) -> PublishResult:
    return await engine.publish(
        session_id,
        PublishRequest(user_id=user_id, **body.model_dump()),
    )


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


@router.get("/collections", response_model=CollectionListResponse)
async def list_collections(collections: CollectionServiceDep) -> CollectionListResponse:
    items = await collections.list_collections()
    return CollectionListResponse(collections=items, total=len(items))


@router.post("/collections", response_model=CollectionInfo, status_code=201)
async def create_collection(
    body: CreateCollectionRequest,
    collections: CollectionServiceDep,
    user_id: UserIdDep,
    role: UserRoleDep,
) -> CollectionInfo:
    if not is_elevated(role):
        raise ForbiddenError(message="Creating collections requires the ML or DEV role")
    return await collections.create(body.name, description=body.description, created_by=user_id)


@router.get("/collections/{name}", response_model=CollectionInfo)
async def get_collection(name: str, collections: CollectionServiceDep) -> CollectionInfo:
    return await collections.get(name)


@router.delete("/collections/{name}", status_code=204)
async def delete_collection(name: str, collections: CollectionServiceDep, role: UserRoleDep) -> None:
    if not is_elevated(role):
        raise ForbiddenError(message="Deleting collections requires the ML or DEV role")
    await collections.delete(name)


@router.get("/collections/{name}/documents", response_model=DocumentListResponse)
async def list_documents(name: str, collections: CollectionServiceDep) -> DocumentListResponse:
    documents = await collections.list_documents(name)
    return DocumentListResponse(documents=documents, total=len(documents))


@router.get("/collections/{name}/documents/{source_id}", response_model=DocumentDetail)
async def get_document(name: str, source_id: str, collections: CollectionServiceDep) -> DocumentDetail:
    return await collections.get_document(name, source_id)


@router.get("/collections/{name}/chunks", response_model=ChunkPage)
async def list_published_chunks(
    name: str,
    collections: CollectionServiceDep,
    source_id: str | None = None,
    source_type: str | None = None,
    chunk_type: str | None = None,
    tag: str | None = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: str | None = None,
) -> ChunkPage:
    return await collections.list_chunks(
        name,
        source_id=source_id,
        source_type=source_type,
        chunk_type=chunk_type,
        tag=tag,
        limit=limit,
        offset=offset,
    )


@router.get("/collections/{name}/chunks/{point_id}", response_model=PublishedChunk)
async def get_published_chunk(name: str, point_id: str, collections: CollectionServiceDep) -> PublishedChunk:
    return await collections.get_chunk(name, point_id)


@router.put("/collections/{name}/chunks/{point_id}/quality", response_model=PublishedChunk)
async def update_quality_score(
    name: str,
    point_id: str,
    body: QualityScoreRequest,
    collections: CollectionServiceDep,
    user_id: UserIdDep,
) -> PublishedChunk:
    return await collections.update_quality(name, point_id, body.score, body.issues, user_id=user_id)


@router.post("/collections/{name}/search", response_model=SearchResponse)
async def search_collection(
    name: str,
    body: SearchRequest,
    collections: CollectionServiceDep,
    user_id: UserIdDep,
) -> SearchResponse:
    _logger.info("search_request", collection=name, user_id=user_id, limit=body.limit)
    return await collections.search(
        name,
        body.query,
        limit=body.limit,
        source_types=body.source_types,
        chunk_types=body.chunk_types,
        tags=body.tags,
        exclude_navigation=body.exclude_navigation,
        score_threshold=body.score_threshold,
    )


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


@router.post("/agent/{collection_id}/chat")
async def agent_chat(
    collection_id: str,
    body: AgentChatRequest,
    agent: AgentDep,
    features: FeaturesDep,
    user_id: UserIdDep,
    role: UserRoleDep,
) -> StreamingResponse:
    """Stream one agent turn as server-sent events (``data: <json>``)."""
    features.require("agent")
    if not body.message.strip():
        raise ValidationError(message="Message cannot be empty")
    _logger.info(
        "agent_chat_request",
        collection_id=collection_id,
        session_id=body.session_id,
        role=role.value,
    )

    async def _events() -> AsyncIterator[str]:
        async for event in agent.stream_chat(
            collection_id,
            body.user_id or user_id,
            body.message,
            body.session_id,
            elevated=is_elevated(role),
        ):
            yield f"data: {event.model_dump_json()}\n\n"

    return StreamingResponse(
        _events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/agent/sessions/{session_id}/approve", response_model=ApprovalResponse)
async def approve_operation(session_id: str, body: ApprovalRequest, agent: AgentDep) -> ApprovalResponse:
    approved = await agent.approve(session_id, body.operation_id)
    return ApprovalResponse(session_id=session_id, approved=approved)


@router.post("/agent/sessions/{session_id}/revoke", response_model=ApprovalResponse)
async def revoke_operation(session_id: str, body: ApprovalRequest, agent: AgentDep) -> ApprovalResponse:
    approved = await agent.revoke(session_id, body.operation_id)
    return ApprovalResponse(session_id=session_id, approved=approved)


@router.delete("/agent/sessions/{session_id}", status_code=204)
async def clear_agent_session(session_id: str, agent: AgentDep) -> None:
    await agent.clear_session(session_id)


@router.get("/agent/sessions", response_model=list[ChatSessionInfo])
async def list_agent_sessions(
    agent: AgentDep,
    user_id: Annotated[str, Query(min_length=1)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[ChatSessionInfo]:
    return await agent.list_chat_sessions(user_id, limit=limit)
