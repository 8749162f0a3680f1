"""Knowledge-base FastAPI application entry point.

Wires together the embedding provider, the SQLite vector store, and the
ingestion / retrieval services via dependency injection.  Loads
configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.

# ─── STARTUP SEQUENCE ─────────────────────────────────────────────────
#
#   1. Settings() + load_config()        environment over YAML over defaults
#   2. configure_logging()               structlog, JSON in production
#   3. _build_all()                      providers -> services, one pool
#   4. _lifespan startup                 create tables, fail interrupted docs
#   5. _lifespan shutdown                cancel ingestions, close the pool
#
# The embedding concurrency pool is created exactly once here and handed
# to the EmbeddingClient; every ingestion in the process shares it.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.extraction.document_text_extractor import DocumentTextExtractor
from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from src.services.context_formatter import ContextFormatter
from src.services.document_service import DocumentService
from src.services.embedding_client import EmbeddingClient
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.ingestion_service import IngestionService
from src.services.retrieval_service import RetrievalService
from src.utils.concurrency import EmbeddingConcurrencyPool
from src.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=config["logging"]["level"],
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Embedding provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider.

    Priority: OpenAI/OpenAI-compatible (if API key set) -> Nomic/Ollama.
    Ollama is returned even when unreachable; ``/health`` reports it.
    """
    if app_settings.openai_api_key:
        return OpenAIEmbeddingProvider(settings=app_settings)
    return NomicEmbeddingProvider(settings=app_settings)


# ---------------------------------------------------------------------------
# Full DI assembly for the FastAPI application
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    embedding_cfg = app_config["embedding"]
    chunking_cfg = app_config["chunking"]
    retrieval_cfg = app_config["retrieval"]

    # -- Embeddings --
    provider = _build_embedding_provider(app_settings)
    pool = EmbeddingConcurrencyPool(max_concurrency=embedding_cfg["max_concurrency"])
    embedding_client = EmbeddingClient(
        provider=provider,
        pool=pool,
        batch_size=embedding_cfg["batch_size"],
        max_attempts=embedding_cfg["max_attempts"],
        base_delay=embedding_cfg["retry_base_delay"],
        max_delay=embedding_cfg["retry_max_delay"],
    )

    # -- Storage (documents and chunks share one database) --
    vector_store = SQLiteVectorStore(
        db_path=app_config["storage"]["database_path"],
        dimension=provider.get_dimension(),
    )

    # -- Ingestion --
    chunker = TextChunker(
        target_size=chunking_cfg["target_size"],
        overlap=chunking_cfg["overlap"],
        tolerance=chunking_cfg["boundary_tolerance"],
    )
    ingestion_service = IngestionService(
        chunker=chunker,
        embedding_client=embedding_client,
        vector_store=vector_store,
        documents=vector_store,
        extractor=DocumentTextExtractor(),
    )
    document_service = DocumentService(
        documents=vector_store,
        vector_store=vector_store,
        ingestion=ingestion_service,
        max_upload_bytes=app_config["uploads"]["max_bytes"],
    )

    # -- Retrieval --
    retrieval_service = RetrievalService(
        embedding_client=embedding_client,
        vector_store=vector_store,
        documents=vector_store,
        default_top_k=retrieval_cfg["top_k"],
        default_threshold=retrieval_cfg["similarity_threshold"],
        candidate_multiplier=retrieval_cfg["candidate_multiplier"],
    )

    # -- Provider registry for /health --
    provider_registry: dict[str, Any] = {
        "embedding": provider.is_available(),
        "embedding_provider": provider.get_provider_name(),
        "vector_store": vector_store.get_provider_name(),
    }

    return {
        "settings": app_settings.model_copy(
            update={
                "max_upload_bytes": app_config["uploads"]["max_bytes"],
                "context_max_tokens": retrieval_cfg["context_max_tokens"],
            }
        ),
        "embedding_pool": pool,
        "embedding_client": embedding_client,
        "vector_store": vector_store,
        "ingestion_service": ingestion_service,
        "document_service": document_service,
        "retrieval_service": retrieval_service,
        "context_formatter": ContextFormatter(),
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Standalone helper (CLI / scripting)
# ---------------------------------------------------------------------------


async def build_components(custom_settings: Settings | None = None) -> dict[str, Any]:
    """Build and initialise the services outside the web server.

    Uses the same assembly as the application so the CLI writes to the
    same database with the same embedding dimension.  The caller owns the
    returned ``embedding_pool`` and should close it when done.
    """
    app_settings = custom_settings or settings
    app_config = config if custom_settings is None else load_config(settings=app_settings)
    components = _build_all(app_settings, app_config)
    await components["vector_store"].initialize()
    return components


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise storage and services on startup, stop ingestion on shutdown."""
    components = _build_all(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    vector_store: SQLiteVectorStore = components["vector_store"]
    document_service: DocumentService = components["document_service"]
    await vector_store.initialize()
    recovered = await document_service.recover_interrupted()

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        embedding_provider=components["provider_registry"]["embedding_provider"],
        embedding_available=components["provider_registry"]["embedding"],
        max_concurrency=components["embedding_pool"].size,
        interrupted_documents=recovered,
    )

    yield

    # -- Shutdown: stop ingestions before closing the pool they draw from --
    await document_service.shutdown()
    components["embedding_pool"].close()
    _logger.info("app_shutdown", message="ingestion tasks cancelled")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="Assistant Knowledge Base API",
        version=_VERSION,
        description=(
            "Upload documents to an assistant's knowledge base, where they are "
            "chunked and embedded, then retrieve the most relevant passages as "
            "prompt-ready context for each chat message."
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
        "src.main:app",
        host=config["app"]["host"],
        port=config["app"]["port"],
        reload=(settings.app_env == "development"),
    )
