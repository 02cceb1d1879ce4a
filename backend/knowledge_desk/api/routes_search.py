"""Search routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from knowledge_desk.api.dependencies import get_search_service
from knowledge_desk.models.dto import SearchHitResponse, SearchRequest
from knowledge_desk.retrieval.search import SearchService

router = APIRouter()


@router.post("/search", response_model=list[SearchHitResponse], summary="Hybrid search with reranking")
async def search(
    request: SearchRequest,
    service: SearchService = Depends(get_search_service),
) -> list[SearchHitResponse]:
    hits = await service.search(request.collection_id, request.query, top_k=request.top_k)
    return [
        SearchHitResponse(
            segment_id=hit.segment_id,
            doc_id=hit.document_id,
            doc_name=hit.document_name,
            index=hit.index,
            content=hit.content,
            fused_score=hit.fused_score,
            rerank_score=hit.rerank_score,
        )
        for hit in hits
    ]


__all__ = ["router"]
