"""FastAPI application setup for Knowledge Desk."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from knowledge_desk.api.dependencies import (
    get_app_settings,
    get_database,
    get_embedder,
    get_ingest_pipeline,
    get_repository,
    get_search_service,
    reset_state,
)
from knowledge_desk.api.routes_collections import router as collections_router
from knowledge_desk.api.routes_documents import router as documents_router
from knowledge_desk.api.routes_search import router as search_router
from knowledge_desk.core.errors import (
    ConflictError,
    EmbeddingError,
    IngestError,
    NotFoundError,
    ValidationError,
)
from knowledge_desk.core.logging import configure_logging, get_logger
from knowledge_desk.core.metrics import INDEX_SIZE, metrics_response

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Knowledge Desk",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(collections_router, prefix="", tags=["collections"])
app.include_router(documents_router, prefix="", tags=["documents"])
app.include_router(search_router, prefix="", tags=["search"])


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(IngestError)
async def ingest_error_handler(request: Request, exc: IngestError) -> JSONResponse:
    return JSONResponse(status_code=500, content={"message": exc.message, "errorType": exc.kind})


@app.exception_handler(EmbeddingError)
async def embedding_error_handler(request: Request, exc: EmbeddingError) -> JSONResponse:
    logger.warning("Embedding provider failed during request: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_database()
    get_repository()
    get_embedder()
    get_ingest_pipeline()
    get_search_service()


@app.on_event("shutdown")
async def shutdown() -> None:
    reset_state()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}


@app.get("/metrics", tags=["admin"])
def metrics() -> Response:
    INDEX_SIZE.set(get_repository().count_segments())
    return metrics_response()
