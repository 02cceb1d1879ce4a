"""Search orchestration: hybrid retrieval, reranking, citation payloads."""

from __future__ import annotations

import time
from dataclasses import dataclass

from knowledge_desk.core.config import Settings
from knowledge_desk.core.errors import ValidationError
from knowledge_desk.core.metrics import REQUEST_COUNT, REQUEST_LATENCY
from knowledge_desk.db.repository import KnowledgeRepository
from knowledge_desk.retrieval.hybrid import HybridRetriever
from knowledge_desk.retrieval.rerank import Reranker


@dataclass(slots=True)
class SearchHit:
    segment_id: int
    document_id: int
    document_name: str
    index: int
    content: str
    fused_score: float
    rerank_score: float | None


class SearchService:
    """Coordinates hybrid retrieval and reranking for one collection."""

    def __init__(
        self,
        repository: KnowledgeRepository,
        retriever: HybridRetriever,
        reranker: Reranker,
        settings: Settings,
    ) -> None:
        self.repository = repository
        self.retriever = retriever
        self.reranker = reranker
        self.settings = settings

    async def search(self, collection_id: int, query: str, top_k: int = 10) -> list[SearchHit]:
        if not query or not query.strip():
            raise ValidationError("query is required")
        if top_k <= 0:
            raise ValidationError("top_k must be positive")
        self.repository.get_collection(collection_id)

        start_time = time.perf_counter()
        candidates = await self.retriever.search(collection_id, query, top_k=self.settings.hybrid_top_k)
        pool = candidates[: self.reranker.input_max]
        ranked = await self.reranker.rerank(
            query,
            [candidate.segment.content for candidate in pool],
            top_n=min(top_k, len(pool)),
            fallback_scores=[candidate.similarity for candidate in pool],
        )

        hits: list[SearchHit] = []
        for result in ranked:
            candidate = pool[result.index]
            segment = candidate.segment
            hits.append(
                SearchHit(
                    segment_id=segment.id,
                    document_id=segment.document_id,
                    document_name=segment.document_name or f"doc-{segment.document_id}",
                    index=segment.seq_index,
                    content=segment.content,
                    fused_score=candidate.fused_score,
                    rerank_score=result.score,
                )
            )
        hits.sort(key=lambda hit: hit.rerank_score if hit.rerank_score is not None else 0.0, reverse=True)

        REQUEST_LATENCY.labels(endpoint="search", method="POST").observe(time.perf_counter() - start_time)
        REQUEST_COUNT.labels(endpoint="search", method="POST", status="200").inc()
        return hits[:top_k]


__all__ = ["SearchService", "SearchHit"]
