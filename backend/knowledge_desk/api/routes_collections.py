"""Collection routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from knowledge_desk.api.dependencies import get_app_settings, get_repository
from knowledge_desk.core.config import Settings
from knowledge_desk.db.repository import KnowledgeRepository
from knowledge_desk.models.dto import (
    CollectionCreated,
    CollectionCreateRequest,
    CollectionResponse,
    CollectionUpdateRequest,
    DeleteResponse,
    DocumentListItem,
)
from knowledge_desk.models.entities import Collection

router = APIRouter()


@router.post("/collections", response_model=CollectionCreated, summary="Create a collection")
async def create_collection(
    request: CollectionCreateRequest,
    repository: KnowledgeRepository = Depends(get_repository),
    settings: Settings = Depends(get_app_settings),
) -> CollectionCreated:
    collection = repository.create_collection(settings.default_owner, request.name, request.description)
    return CollectionCreated(id=collection.id)


@router.get("/collections", response_model=list[CollectionResponse], summary="List collections")
async def list_collections(
    repository: KnowledgeRepository = Depends(get_repository),
    settings: Settings = Depends(get_app_settings),
) -> list[CollectionResponse]:
    return [_to_response(collection) for collection in repository.list_collections(settings.default_owner)]


@router.put("/collections/{collection_id}", response_model=CollectionResponse, summary="Rename a collection")
async def update_collection(
    collection_id: int,
    request: CollectionUpdateRequest,
    repository: KnowledgeRepository = Depends(get_repository),
) -> CollectionResponse:
    collection = repository.update_collection(collection_id, request.name, request.description)
    return _to_response(collection)


@router.delete("/collections/{collection_id}", response_model=DeleteResponse, summary="Delete a collection")
async def delete_collection(
    collection_id: int,
    repository: KnowledgeRepository = Depends(get_repository),
) -> DeleteResponse:
    repository.delete_collection(collection_id)
    return DeleteResponse()


@router.get(
    "/collections/{collection_id}/documents",
    response_model=list[DocumentListItem],
    summary="List documents with ingest status",
)
async def list_documents(
    collection_id: int,
    repository: KnowledgeRepository = Depends(get_repository),
) -> list[DocumentListItem]:
    return [
        DocumentListItem(
            doc_id=summary.document.id,
            filename=summary.document.filename,
            ext=summary.document.ext,
            size=summary.document.size_bytes,
            status=summary.document.status,
            progress=summary.document.progress,
            error=summary.document.error,
            chunk_count=summary.chunk_count,
        )
        for summary in repository.list_documents(collection_id)
    ]


def _to_response(collection: Collection) -> CollectionResponse:
    return CollectionResponse(
        id=collection.id,
        name=collection.name,
        description=collection.description,
        embedding_dim=collection.embedding_dim,
    )


__all__ = ["router"]
