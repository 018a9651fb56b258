"""ragler FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.  Run with ``python -m ragler.main`` or point uvicorn at
``ragler.main:app``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from ragler import __version__
from ragler.agent.memory import AgentMemory, ApprovalLedger
from ragler.agent.tool_loop import CollectionAgent
from ragler.agent.tools import build_default_tools
from ragler.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from ragler.api.routes import router as api_router
from ragler.config.loader import load_config
from ragler.config.settings import Settings
from ragler.interfaces.kv_store import IKeyValueStore
from ragler.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from ragler.providers.kv.memory_store import MemoryKeyValueStore
from ragler.providers.kv.redis_store import RedisKeyValueStore
from ragler.providers.llm.openai_provider import OpenAILLMProvider
from ragler.providers.parser.resolver import FileParserResolver
from ragler.providers.parser.text_parser import TextFileParser
from ragler.providers.parser.web_fetcher import WebPageFetcher
from ragler.providers.vector.qdrant_index import QdrantVectorIndex
from ragler.services.chunking_service import ChunkingService
from ragler.services.collection_service import CollectionService
from ragler.services.feature_flags import FeatureFlags
from ragler.services.ingest_service import IngestService
from ragler.services.publish_engine import PublishEngine
from ragler.services.semantic_chunker import SemanticChunker
from ragler.services.session_service import SessionService
from ragler.services.session_store import DraftSessionStore
from ragler.services.token_counter import TokenCounter
from ragler.utils.errors import RaglerError
from ragler.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_CONFIG_PATH = "config/config.yaml"

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider factories
# ---------------------------------------------------------------------------


def _build_kv_store(app_settings: Settings) -> IKeyValueStore:
    """Select the key-value backend named by ``KV_BACKEND``."""
    if app_settings.kv_backend.lower() == "memory":
        _logger.warning("kv_backend_memory", message="Sessions will not survive a restart")
        return MemoryKeyValueStore()
    return RedisKeyValueStore(url=app_settings.redis_url)


# ---------------------------------------------------------------------------
# Dependency wiring
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Instantiate every provider and service and return them keyed by name.

    The keys become attributes on ``app.state`` and are read back by the
    dependency helpers in :mod:`ragler.api.routes`.
    """
    config = load_config(_CONFIG_PATH, settings=app_settings)
    chunking_cfg: dict[str, Any] = config.get("chunking", {})
    publish_cfg: dict[str, Any] = config.get("publish", {})
    web_cfg: dict[str, Any] = config.get("web", {})
    agent_cfg: dict[str, Any] = config.get("agent", {})

    features = FeatureFlags.from_settings(app_settings)

    # -- Stores --
    kv_store = _build_kv_store(app_settings)
    vector_index = QdrantVectorIndex(
        url=app_settings.qdrant_url,
        api_key=app_settings.qdrant_api_key or None,
    )

    # -- Model providers --
    llm = OpenAILLMProvider(app_settings)
    agent_llm = OpenAILLMProvider(app_settings, model=app_settings.agent_model)
    embedder = OpenAIEmbeddingProvider(app_settings)
    token_counter = TokenCounter(model=app_settings.llm_model)

    # -- Chunking --
    keywords = chunking_cfg.get("navigation_keywords")
    navigation_keywords = tuple(keywords) if keywords else None
    semantic_chunker = SemanticChunker(
        llm,
        max_content_length=app_settings.semantic_max_content_length,
        navigation_keywords=navigation_keywords,
    )
    chunking = ChunkingService(
        semantic_chunker=semantic_chunker,
        semantic_enabled=features.is_enabled("semantic_chunking"),
        length_function=token_counter.count,
        chars_per_token=float(chunking_cfg.get("chars_per_token", 3.5)),
        max_ratio=float(chunking_cfg.get("max_ratio", 1.75)),
    )

    # -- Sessions --
    session_store = DraftSessionStore(kv_store, ttl=app_settings.session_ttl)
    session_service = SessionService(
        session_store,
        chunking,
        merge_separator=app_settings.merge_separator,
        token_limit=int(chunking_cfg.get("token_limit", 8000)),
        token_counter=token_counter,
    )

    # -- Ingestion --
    web_fetcher = WebPageFetcher(
        timeout=float(web_cfg.get("fetch_timeout", 30)),
        user_agent=web_cfg.get("user_agent", f"ragler/{__version__}"),
        max_content_length=int(web_cfg.get("max_content_length", 10 * 1024 * 1024)),
    )
    ingest_service = IngestService(
        session_service,
        chunking,
        FileParserResolver([TextFileParser()]),
        web_source=web_fetcher,
        features=features,
    )

    # -- Collections --
    collections = CollectionService(vector_index, embedder)

    # -- Publish --
    publish_engine = PublishEngine(
        session_store,
        vector_index,
        embedder,
        collections,
        default_collection=app_settings.default_collection,
        batch_size=app_settings.embedding_batch_size,
        concurrency=app_settings.embedding_concurrency,
        allow_draft=app_settings.publish_allow_draft,
        max_tags=int(publish_cfg.get("max_tags", 12)),
        visibility=publish_cfg.get("visibility", "internal"),
    )

    # -- Agent --
    memory = AgentMemory(kv_store, history_limit=app_settings.chat_history_limit)
    ledger = ApprovalLedger(kv_store)
    agent = CollectionAgent(
        agent_llm,
        session_service,
        memory,
        ledger,
        build_default_tools(llm),
        max_steps=app_settings.agent_max_steps,
        temperature=float(agent_cfg.get("temperature", 0.0)),
        max_tokens=int(agent_cfg.get("max_tokens", 2000)),
    )

    return {
        "settings": app_settings,
        "features": features,
        "kv_store": kv_store,
        "vector_index": vector_index,
        "web_fetcher": web_fetcher,
        "session_service": session_service,
        "ingest_service": ingest_service,
        "publish_engine": publish_engine,
        "collections": collections,
        "agent": agent,
        "llm_name": llm.get_provider_name(),
        "embedding_name": embedder.get_provider_name(),
    }


# ---------------------------------------------------------------------------
# Application settings
# ---------------------------------------------------------------------------

settings = Settings()
configure_logging(log_level=settings.log_level, app_env=settings.app_env)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    # Publishing without a target needs the default collection registered.
    try:
        await components["collections"].ensure_registered(settings.default_collection)
    except RaglerError as exc:
        _logger.warning(
            "default_collection_unavailable",
            collection=settings.default_collection,
            error=str(exc),
        )

    _logger.info(
        "app_startup",
        version=__version__,
        environment=settings.app_env,
        llm=components["llm_name"],
        embedding=components["embedding_name"],
        kv=components["kv_store"].get_provider_name(),
        features=settings.get_enabled_features(),
    )

    yield

    # -- Shutdown: close network clients --
    await components["web_fetcher"].close()
    await components["vector_index"].close()
    await components["kv_store"].close()
    _logger.info("app_shutdown", message="Clients closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="ragler API",
        version=__version__,
        description=(
            "Ingest text, files or web pages into draft sessions, curate their "
            "fragments by hand or with an approval-gated agent, then publish "
            "them atomically into a vector collection."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "ragler.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
