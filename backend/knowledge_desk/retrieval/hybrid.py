"""Hybrid lexical + vector retrieval with min-max score fusion."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from knowledge_desk.db.repository import KnowledgeRepository
from knowledge_desk.ingest.embeddings import EmbeddingClient
from knowledge_desk.models.entities import Segment
from knowledge_desk.retrieval.lexical import LexicalHit, LexicalIndex
from knowledge_desk.retrieval.vector_store import VectorHit, VectorStore

logger = logging.getLogger(__name__)

FLAT_NORMALIZED = 0.5


@dataclass(slots=True)
class FusedScore:
    segment_id: int
    lexical_score: float | None
    vector_score: float | None
    lexical_norm: float
    vector_norm: float
    fused: float


@dataclass(slots=True)
class RetrievedSegment:
    segment: Segment
    fused_score: float
    lexical_score: float | None
    vector_score: float | None
    similarity: float  # cosine against the query, also for lexical-only hits


def min_max_normalize(values: Sequence[float]) -> list[float]:
    """Scale to [0, 1]; a column without spread maps to a constant mid value."""
    if not values:
        return []
    low = min(values)
    high = max(values)
    if high - low < 1e-9:
        return [FLAT_NORMALIZED for _ in values]
    span = high - low
    return [(value - low) / span for value in values]


def fuse_scores(
    lexical_hits: Sequence[LexicalHit],
    vector_hits: Sequence[VectorHit],
    alpha: float = 0.5,
) -> list[FusedScore]:
    """Union both candidate lists and rank by ``alpha*lexical + (1-alpha)*vector``.

    BM25 scores are negated so that higher is better. A segment missing from
    one list contributes zero to that column before normalisation.
    """
    lexical = {hit.segment_id: hit.score for hit in lexical_hits}
    vector = {hit.segment_id: hit.score for hit in vector_hits}
    order = list(dict.fromkeys([*vector, *lexical]))
    if not order:
        return []

    lexical_norm = min_max_normalize([-lexical[sid] if sid in lexical else 0.0 for sid in order])
    vector_norm = min_max_normalize([vector.get(sid, 0.0) for sid in order])
    fused = [
        FusedScore(
            segment_id=sid,
            lexical_score=lexical.get(sid),
            vector_score=vector.get(sid),
            lexical_norm=lex,
            vector_norm=vec,
            fused=alpha * lex + (1 - alpha) * vec,
        )
        for sid, lex, vec in zip(order, lexical_norm, vector_norm)
    ]
    fused.sort(key=lambda item: item.fused, reverse=True)
    return fused


class HybridRetriever:
    """Fan out to the lexical index and the vector store, then fuse."""

    def __init__(
        self,
        repository: KnowledgeRepository,
        lexical_index: LexicalIndex,
        vector_store: VectorStore,
        embedder: EmbeddingClient,
        lexical_limit: int = 50,
        vector_pool_size: int = 1000,
        vector_limit: int = 200,
        alpha: float = 0.5,
    ) -> None:
        self.repository = repository
        self.lexical_index = lexical_index
        self.vector_store = vector_store
        self.embedder = embedder
        self.lexical_limit = lexical_limit
        self.vector_pool_size = vector_pool_size
        self.vector_limit = vector_limit
        self.alpha = alpha

    async def search(self, collection_id: int, query: str, top_k: int = 50) -> list[RetrievedSegment]:
        lexical_hits, (query_vector, vector_hits) = await asyncio.gather(
            asyncio.to_thread(self.lexical_index.search, collection_id, query, self.lexical_limit),
            self._vector_candidates(collection_id, query),
        )
        fused = fuse_scores(lexical_hits, vector_hits, alpha=self.alpha)[:top_k]
        if not fused:
            return []

        ids = [item.segment_id for item in fused]
        segments = self.repository.fetch_segments(ids)
        similarity = {hit.segment_id: hit.score for hit in vector_hits}
        missing = [sid for sid in ids if sid not in similarity]
        if missing and query_vector is not None:
            similarity.update(self.vector_store.similarities(missing, query_vector))

        results: list[RetrievedSegment] = []
        for item in fused:
            segment = segments.get(item.segment_id)
            if segment is None:
                continue
            results.append(
                RetrievedSegment(
                    segment=segment,
                    fused_score=item.fused,
                    lexical_score=item.lexical_score,
                    vector_score=item.vector_score,
                    similarity=similarity.get(item.segment_id, 0.0),
                )
            )
        logger.debug(
            "Hybrid search collection=%s lexical=%s vector=%s fused=%s",
            collection_id,
            len(lexical_hits),
            len(vector_hits),
            len(results),
        )
        return results

    async def _vector_candidates(self, collection_id: int, query: str) -> tuple[list[float] | None, list[VectorHit]]:
        if not await asyncio.to_thread(self.vector_store.has_vectors, collection_id):
            return None, []
        query_vector = await self.embedder.embed_query(query)
        hits = await asyncio.to_thread(
            self.vector_store.scan,
            collection_id,
            query_vector,
            self.vector_pool_size,
            self.vector_limit,
        )
        return query_vector, hits


__all__ = ["HybridRetriever", "RetrievedSegment", "FusedScore", "fuse_scores", "min_max_normalize"]
