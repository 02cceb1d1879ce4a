"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from knowledge_desk.core.config import Settings, get_settings
from knowledge_desk.core.logging import get_logger
from knowledge_desk.db.repository import KnowledgeRepository
from knowledge_desk.db.sqlite import SQLiteDatabase
from knowledge_desk.ingest.embeddings import (
    EmbeddingClient,
    EmbeddingProvider,
    HashedEmbeddingProvider,
    HttpEmbeddingProvider,
)
from knowledge_desk.ingest.extract import ExtractorRegistry
from knowledge_desk.ingest.pipeline import IngestPipeline
from knowledge_desk.retrieval import HybridRetriever, LexicalIndex, Reranker, SearchService, VectorStore

logger = get_logger(__name__)

_DB: SQLiteDatabase | None = None
_REPOSITORY: KnowledgeRepository | None = None
_EMBEDDER: EmbeddingClient | None = None
_RERANKER: Reranker | None = None
_PIPELINE: IngestPipeline | None = None
_SEARCH_SERVICE: SearchService | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_repository() -> KnowledgeRepository:
    global _REPOSITORY
    if _REPOSITORY is None:
        repository = KnowledgeRepository(get_database())
        interrupted = repository.fail_interrupted()
        if interrupted:
            logger.warning("Marked %s interrupted ingests as failed", interrupted)
        _REPOSITORY = repository
    return _REPOSITORY


def get_extractor() -> ExtractorRegistry:
    return ExtractorRegistry(max_chars=get_app_settings().max_text_chars)


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    if settings.embedding_base_url:
        return HttpEmbeddingProvider(
            base_url=settings.embedding_base_url,
            api_key=settings.embedding_api_key,
            model=settings.embedding_model,
            timeout=settings.embedding_timeout,
            max_batch_size=settings.embedding_max_batch_size,
        )
    logger.warning("No embedding base url configured; using offline hashed embeddings")
    return HashedEmbeddingProvider(model=f"hashed-{settings.embedding_dim}", dim=settings.embedding_dim)


def get_embedder() -> EmbeddingClient:
    global _EMBEDDER
    if _EMBEDDER is None:
        settings = get_app_settings()
        _EMBEDDER = EmbeddingClient(
            build_embedding_provider(settings),
            batch_size=settings.embedding_batch_size,
            max_batch_size=settings.embedding_max_batch_size,
            max_retries=settings.embedding_max_retries,
            backoff_base=settings.embedding_backoff_base,
        )
    return _EMBEDDER


def get_reranker() -> Reranker:
    global _RERANKER
    if _RERANKER is None:
        settings = get_app_settings()
        _RERANKER = Reranker(
            url=settings.rerank_url,
            api_key=settings.rerank_api_key,
            model=settings.rerank_model,
            timeout=settings.rerank_timeout,
            input_max=settings.rerank_input_max,
        )
    return _RERANKER


def get_ingest_pipeline() -> IngestPipeline:
    global _PIPELINE
    if _PIPELINE is None:
        db = get_database()
        _PIPELINE = IngestPipeline(
            repository=get_repository(),
            embedder=get_embedder(),
            vector_store=VectorStore(db),
            lexical_index=LexicalIndex(db),
            settings=get_app_settings(),
        )
    return _PIPELINE


def get_search_service() -> SearchService:
    global _SEARCH_SERVICE
    if _SEARCH_SERVICE is None:
        settings = get_app_settings()
        db = get_database()
        retriever = HybridRetriever(
            repository=get_repository(),
            lexical_index=LexicalIndex(db),
            vector_store=VectorStore(db),
            embedder=get_embedder(),
            lexical_limit=settings.lexical_limit,
            vector_pool_size=settings.vector_pool_size,
            vector_limit=settings.vector_limit,
            alpha=settings.hybrid_alpha,
        )
        _SEARCH_SERVICE = SearchService(
            repository=get_repository(),
            retriever=retriever,
            reranker=get_reranker(),
            settings=settings,
        )
    return _SEARCH_SERVICE


def reset_state() -> None:
    """Drop cached singletons; used by tests and on shutdown."""
    global _DB, _REPOSITORY, _EMBEDDER, _RERANKER, _PIPELINE, _SEARCH_SERVICE
    if _DB is not None:
        _DB.close()
    get_app_settings.cache_clear()
    get_settings.cache_clear()
    _DB = None
    _REPOSITORY = None
    _EMBEDDER = None
    _RERANKER = None
    _PIPELINE = None
    _SEARCH_SERVICE = None


__all__ = [
    "get_app_settings",
    "get_database",
    "get_repository",
    "get_extractor",
    "get_embedder",
    "get_reranker",
    "get_ingest_pipeline",
    "get_search_service",
    "reset_state",
]
