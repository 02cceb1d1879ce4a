"""Internal dataclasses representing persisted entities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

DocumentStatus = Literal["uploaded", "processing", "ready", "error"]

STAGING_INDEX = -1


@dataclass(slots=True)
class Collection:
    id: int
    owner: str
    name: str
    description: str | None
    embedding_dim: int | None
    created_at: int
    updated_at: int


@dataclass(slots=True)
class Document:
    id: int
    collection_id: int
    filename: str
    ext: str | None
    mime: str | None
    size_bytes: int
    sha256: str
    status: DocumentStatus
    progress: int
    error: str | None
    error_kind: str | None
    created_at: int
    updated_at: int


@dataclass(slots=True)
class Segment:
    id: int
    document_id: int
    collection_id: int
    seq_index: int
    content: str
    token_count: int
    start_char: int
    end_char: int
    document_name: str | None = None

