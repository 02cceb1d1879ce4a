"""Document upload, ingest and citation routes."""

from __future__ import annotations

import hashlib
import time
from pathlib import PurePath

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from knowledge_desk.api.dependencies import (
    get_app_settings,
    get_extractor,
    get_ingest_pipeline,
    get_repository,
)
from knowledge_desk.core.config import Settings
from knowledge_desk.core.metrics import REQUEST_COUNT
from knowledge_desk.db.repository import KnowledgeRepository, NewDocument
from knowledge_desk.ingest.extract import ExtractorRegistry
from knowledge_desk.ingest.pipeline import IngestPipeline
from knowledge_desk.models.dto import (
    ChunkResponse,
    DeleteResponse,
    DocumentStatusResponse,
    IngestErrorResponse,
    IngestResponse,
    PasteRequest,
    UploadedDocument,
)
from knowledge_desk.utils.text import repair_mojibake

router = APIRouter()


@router.post("/documents/upload", response_model=list[UploadedDocument], summary="Upload files without ingesting")
async def upload_documents(
    files: list[UploadFile] = File(...),
    collection_id: int | None = Query(default=None),
    form_collection_id: int | None = Form(default=None, alias="collection_id"),
    repository: KnowledgeRepository = Depends(get_repository),
    extractor: ExtractorRegistry = Depends(get_extractor),
    settings: Settings = Depends(get_app_settings),
) -> list[UploadedDocument]:
    target = collection_id or form_collection_id
    if not target:
        raise HTTPException(status_code=400, detail="collection_id is required")
    if not files:
        raise HTTPException(status_code=400, detail="no files received")
    if len(files) > settings.max_upload_files:
        raise HTTPException(status_code=400, detail=f"at most {settings.max_upload_files} files per upload")
    repository.get_collection(target)

    staged: list[tuple[NewDocument, str]] = []
    for upload in files:
        raw = await upload.read()
        filename = repair_mojibake(upload.filename or "unnamed") or "unnamed"
        if len(raw) > settings.max_upload_bytes:
            raise HTTPException(status_code=400, detail=f"{filename} exceeds {settings.max_upload_bytes} bytes")
        ext = PurePath(filename).suffix.lstrip(".").lower() or None
        mime = upload.content_type or None
        extracted = extractor.extract(raw, ext, mime)
        new = NewDocument(
            collection_id=target,
            filename=filename,
            ext=ext,
            mime=mime,
            size_bytes=len(raw),
            sha256=hashlib.sha256(raw).hexdigest(),
            text=extracted.text,
        )
        staged.append((new, extracted.snippet))

    uploaded: list[UploadedDocument] = []
    for new, preview in staged:
        doc = repository.create_document(new)
        uploaded.append(UploadedDocument(doc_id=doc.id, filename=doc.filename, size=doc.size_bytes, snippet=preview))
    REQUEST_COUNT.labels(endpoint="upload", method="POST", status="200").inc()
    return uploaded


@router.post("/documents/paste", response_model=UploadedDocument, summary="Create a document from pasted text")
async def paste_document(
    request: PasteRequest,
    repository: KnowledgeRepository = Depends(get_repository),
    extractor: ExtractorRegistry = Depends(get_extractor),
) -> UploadedDocument:
    filename = repair_mojibake(request.filename) or f"pasted-{int(time.time() * 1000)}.txt"
    extracted = extractor.extract(request.text.encode("utf-8"), "txt", "text/plain")
    document = repository.create_document(
        NewDocument(
            collection_id=request.collection_id,
            filename=filename,
            ext="txt",
            mime="text/plain",
            size_bytes=len(request.text.encode("utf-8")),
            sha256=hashlib.sha256(request.text.encode("utf-8")).hexdigest(),
            text=extracted.text,
        )
    )
    return UploadedDocument(
        doc_id=document.id,
        filename=document.filename,
        size=document.size_bytes,
        snippet=extracted.snippet,
    )


@router.post(
    "/documents/{document_id}/ingest",
    response_model=IngestResponse,
    responses={500: {"model": IngestErrorResponse}},
    summary="Chunk, embed and index a document",
)
async def ingest_document(
    document_id: int,
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> IngestResponse:
    outcome = await pipeline.ingest(document_id)
    return IngestResponse(chunks=outcome.chunks, dim=outcome.dim)


@router.get("/documents/{document_id}", response_model=DocumentStatusResponse, summary="Poll document status")
async def get_document(
    document_id: int,
    repository: KnowledgeRepository = Depends(get_repository),
) -> DocumentStatusResponse:
    document = repository.get_document(document_id)
    return DocumentStatusResponse(
        doc_id=document.id,
        filename=document.filename,
        status=document.status,
        progress=document.progress,
        error=document.error,
        error_type=document.error_kind,
    )


@router.delete("/documents/{document_id}", response_model=DeleteResponse, summary="Delete a document")
async def delete_document(
    document_id: int,
    repository: KnowledgeRepository = Depends(get_repository),
) -> DeleteResponse:
    repository.delete_document(document_id)
    return DeleteResponse()


@router.get("/chunks/{chunk_id}", response_model=ChunkResponse, summary="Segment content for citations")
async def get_chunk(
    chunk_id: int,
    repository: KnowledgeRepository = Depends(get_repository),
) -> ChunkResponse:
    segment = repository.get_segment(chunk_id)
    return ChunkResponse(
        chunk_id=segment.id,
        doc_id=segment.document_id,
        doc_name=segment.document_name,
        index=segment.seq_index,
        content=segment.content,
        tokens=segment.token_count,
        start=segment.start_char,
        end=segment.end_char,
    )


__all__ = ["router"]
