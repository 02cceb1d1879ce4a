"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class CollectionCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None


class CollectionUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None


class CollectionCreated(BaseModel):
    id: int


class CollectionResponse(BaseModel):
    id: int
    name: str
    description: str | None
    embedding_dim: int | None = None


class DocumentListItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    doc_id: int = Field(serialization_alias="docId")
    filename: str
    ext: str | None = None
    size: int
    status: Literal["uploaded", "processing", "ready", "error"]
    progress: int
    error: str | None = None
    chunk_count: int = Field(serialization_alias="chunkCount")


class DocumentStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    doc_id: int = Field(serialization_alias="docId")
    filename: str
    status: Literal["uploaded", "processing", "ready", "error"]
    progress: int
    error: str | None = None
    error_type: str | None = Field(default=None, serialization_alias="errorType")


class UploadedDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    doc_id: int = Field(serialization_alias="docId")
    filename: str
    size: int
    snippet: str = ""


class PasteRequest(BaseModel):
    collection_id: int
    text: str = Field(min_length=1)
    filename: str | None = None


class IngestResponse(BaseModel):
    chunks: int
    dim: int


class IngestErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    error_type: str = Field(serialization_alias="errorType")


class SearchRequest(BaseModel):
    collection_id: int
    query: str = Field(min_length=1)
    top_k: int = Field(default=10, ge=1, le=50)


class SearchHitResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    segment_id: int = Field(serialization_alias="segmentId")
    doc_id: int = Field(serialization_alias="docId")
    doc_name: str = Field(serialization_alias="docName")
    index: int
    content: str
    fused_score: float = Field(serialization_alias="fusedScore")
    rerank_score: float | None = Field(default=None, serialization_alias="rerankScore")


class ChunkResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chunk_id: int = Field(serialization_alias="chunkId")
    doc_id: int = Field(serialization_alias="docId")
    doc_name: str | None = Field(serialization_alias="docName")
    index: int
    content: str
    tokens: int
    start: int
    end: int


class DeleteResponse(BaseModel):
    status: Literal["ok"] = "ok"


__all__ = [
    "CollectionCreateRequest",
    "CollectionUpdateRequest",
    "CollectionCreated",
    "CollectionResponse",
    "DocumentListItem",
    "DocumentStatusResponse",
    "UploadedDocument",
    "PasteRequest",
    "IngestResponse",
    "IngestErrorResponse",
    "SearchRequest",
    "SearchHitResponse",
    "ChunkResponse",
    "DeleteResponse",
]
