"""Exception types and ingest error classification."""

from __future__ import annotations

from typing import Literal

import httpx

ErrorKind = Literal["batch_size_limit", "embedding_failed", "network_error", "auth_error", "unknown"]


class KnowledgeDeskError(Exception):
    """Base class for application errors."""


class NotFoundError(KnowledgeDeskError):
    """Raised when a collection, document or segment id is unknown."""

    def __init__(self, kind: str, identifier: object) -> None:
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class ValidationError(KnowledgeDeskError):
    """Raised for missing or malformed request input; no state is mutated."""


class ConflictError(KnowledgeDeskError):
    """Raised when a document is already being ingested."""


class IngestError(KnowledgeDeskError):
    """Ingestion failed; the document has been moved to the error state."""

    def __init__(self, document_id: int, kind: str, message: str) -> None:
        super().__init__(message)
        self.document_id = document_id
        self.kind = kind
        self.message = message


class UnsupportedFileTypeError(ValidationError):
    """Raised by text extraction for formats it cannot convert."""

    def __init__(self, ext: str | None, mime: str | None) -> None:
        super().__init__(f"unsupported file type: ext={ext or '-'} mime={mime or '-'}")
        self.ext = ext
        self.mime = mime


class EmbeddingError(KnowledgeDeskError):
    """Embedding provider failure after retries are exhausted."""

    def __init__(self, message: str, batch: int | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.batch = batch
        self.status_code = status_code


class BatchSizeLimitError(EmbeddingError):
    """Provider rejected the batch size; retrying the same batch cannot succeed."""


class DimensionMismatchError(EmbeddingError):
    """Vectors do not match the dimension already fixed for a collection."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"embedding dimension {actual} does not match collection dimension {expected}")
        self.expected = expected
        self.actual = actual


class RerankShapeError(KnowledgeDeskError):
    """Provider rejected a request body shape; another shape may be accepted."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RerankExhaustedError(KnowledgeDeskError):
    """Every rerank request shape failed."""

    def __init__(self, attempts: list[tuple[str, str]]) -> None:
        detail = "; ".join(f"{name}: {error}" for name, error in attempts) or "no strategies attempted"
        super().__init__(f"rerank failed: {detail}")
        self.attempts = attempts


_NETWORK_ERRORS = (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError, ConnectionError, TimeoutError)


def classify_ingest_error(exc: BaseException) -> tuple[ErrorKind, str]:
    """Map an ingest failure onto a stable kind and a human readable message."""
    if isinstance(exc, BatchSizeLimitError) or "batch size is invalid" in str(exc):
        return "batch_size_limit", f"Document too large for the embedding batch limit: {exc}"
    if _caused_by(exc, _NETWORK_ERRORS):
        return "network_error", "Network connection to the embedding provider failed, please retry later"
    status = _status_code(exc)
    if status in (401, 403):
        return "auth_error", "Embedding provider rejected the API key (invalid or expired)"
    if isinstance(exc, EmbeddingError):
        return "embedding_failed", f"Vector embedding failed: {exc}"
    return "unknown", str(exc) or exc.__class__.__name__


def _caused_by(exc: BaseException, types: tuple[type[BaseException], ...]) -> bool:
    current: BaseException | None = exc
    seen: set[int] = set()
    while current is not None and id(current) not in seen:
        if isinstance(current, types):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def _status_code(exc: BaseException) -> int | None:
    if isinstance(exc, EmbeddingError) and exc.status_code is not None:
        return exc.status_code
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    cause = exc.__cause__
    if isinstance(cause, httpx.HTTPStatusError):
        return cause.response.status_code
    return None


__all__ = [
    "ErrorKind",
    "KnowledgeDeskError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "IngestError",
    "UnsupportedFileTypeError",
    "EmbeddingError",
    "BatchSizeLimitError",
    "DimensionMismatchError",
    "RerankShapeError",
    "RerankExhaustedError",
    "classify_ingest_error",
]
