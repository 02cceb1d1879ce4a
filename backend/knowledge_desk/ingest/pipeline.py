"""Ingestion orchestration: staged text -> segments -> vectors -> indexes."""

from __future__ import annotations

import time

from knowledge_desk.core.config import Settings
from knowledge_desk.core.errors import (
    ConflictError,
    DimensionMismatchError,
    IngestError,
    ValidationError,
    classify_ingest_error,
)
from knowledge_desk.core.logging import bind, get_logger
from knowledge_desk.core.metrics import INDEX_SIZE, INGEST_DURATION
from knowledge_desk.db.repository import KnowledgeRepository
from knowledge_desk.ingest.chunker import chunk_text
from knowledge_desk.ingest.embeddings import EmbeddingClient
from knowledge_desk.ingest.types import (
    PROGRESS_CHUNKED,
    PROGRESS_EMBEDDED,
    PROGRESS_PERSISTED,
    PROGRESS_STARTED,
    IngestOutcome,
    IngestProgress,
)
from knowledge_desk.models.entities import Document, Segment
from knowledge_desk.retrieval.lexical import LexicalIndex
from knowledge_desk.retrieval.vector_store import VectorStore

logger = get_logger(__name__)


class IngestPipeline:
    """Drive one document from ``uploaded``/``error`` to ``ready``.

    Re-running on a document clears the segments, embeddings and lexical
    entries written by any earlier run before chunking again.
    """

    def __init__(
        self,
        repository: KnowledgeRepository,
        embedder: EmbeddingClient,
        vector_store: VectorStore,
        lexical_index: LexicalIndex,
        settings: Settings,
    ) -> None:
        self.repository = repository
        self.embedder = embedder
        self.vector_store = vector_store
        self.lexical_index = lexical_index
        self.settings = settings

    async def ingest(self, document_id: int) -> IngestOutcome:
        document = self.repository.get_document(document_id)
        text = self.repository.staged_text(document_id)
        if text is None:
            raise ValidationError(f"document {document_id} has no staged text, upload it first")
        if not self.repository.begin_processing(document_id, PROGRESS_STARTED):
            raise ConflictError(f"document {document_id} is already being ingested")

        progress = IngestProgress(
            document_id=document_id,
            sink=self.repository.set_progress,
            every_batches=self.settings.progress_every_batches,
            value=PROGRESS_STARTED,
        )
        log = bind(logger, document_id=document_id, collection_id=document.collection_id)
        start_time = time.perf_counter()
        try:
            outcome = await self._run(document, text, progress)
        except Exception as exc:
            kind, message = classify_ingest_error(exc)
            log.exception("Ingest failed (%s)", kind, extra={"ctx_error_kind": kind})
            try:
                self.repository.clear_segments(document_id)
            finally:
                self.repository.mark_error(document_id, kind, message)
            INGEST_DURATION.labels(status="error").observe(time.perf_counter() - start_time)
            raise IngestError(document_id, kind, message) from exc

        self.repository.mark_ready(document_id)
        INGEST_DURATION.labels(status="ready").observe(time.perf_counter() - start_time)
        INDEX_SIZE.set(self.vector_store.size())
        log.info("Ingested %s segments, dim %s", outcome.chunks, outcome.dim)
        return outcome

    async def _run(self, document: Document, text: str, progress: IngestProgress) -> IngestOutcome:
        cleared = self.repository.clear_segments(document.id)
        if cleared:
            logger.info("Cleared %s segments from a previous ingest of document %s", cleared, document.id)

        chunks = chunk_text(
            text,
            target_chars=self.settings.chunk_target_chars,
            overlap_chars=self.settings.chunk_overlap_chars,
        )
        segments = self.repository.insert_segments(document, chunks)
        progress.set(PROGRESS_CHUNKED)
        if not segments:
            return IngestOutcome(document_id=document.id, chunks=0, dim=0, cleared=cleared)

        vectors = await self.embedder.embed_batch(
            [segment.content for segment in segments],
            on_batch=lambda done, total: progress.batch_done(done, total, PROGRESS_CHUNKED, PROGRESS_EMBEDDED),
        )
        dim = len(vectors[0])
        expected = self.repository.fix_collection_dim(document.collection_id, dim)
        if expected != dim:
            raise DimensionMismatchError(expected, dim)

        self._persist(document, segments, vectors, progress)
        return IngestOutcome(document_id=document.id, chunks=len(segments), dim=dim, cleared=cleared)

    def _persist(
        self,
        document: Document,
        segments: list[Segment],
        vectors: list[list[float]],
        progress: IngestProgress,
    ) -> None:
        size = self.embedder.batch_size
        total = -(-len(segments) // size)
        for number, offset in enumerate(range(0, len(segments), size), start=1):
            group = segments[offset : offset + size]
            self.vector_store.upsert(
                document.collection_id,
                [segment.id for segment in group],
                vectors[offset : offset + size],
                model=self.embedder.model,
            )
            self.lexical_index.add(
                document.collection_id,
                [(segment.id, segment.content) for segment in group],
            )
            progress.batch_done(number, total, PROGRESS_EMBEDDED, PROGRESS_PERSISTED)


__all__ = ["IngestPipeline"]
