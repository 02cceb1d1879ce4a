"""Embedding providers and the batching client."""

from __future__ import annotations

import hashlib
import logging
import math
import re
from array import array
from typing import Callable, Protocol, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from knowledge_desk.core.errors import BatchSizeLimitError, EmbeddingError
from knowledge_desk.core.metrics import EMBEDDING_CALLS

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")

ProgressCallback = Callable[[int, int], None]


class EmbeddingProvider(Protocol):
    """Anything that turns a batch of texts into raw vectors, in order."""

    name: str
    model: str
    max_batch_size: int | None

    async def embed(self, texts: Sequence[str]) -> list[list[float]]: ...


class HashedEmbeddingProvider:
    """Deterministic hashed bag-of-words vectors for offline use."""

    name = "hashed"
    max_batch_size: int | None = None

    def __init__(self, model: str = "hashed", dim: int = 384) -> None:
        self.model = model
        self.dim = dim

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self.dim
            tokens = _tokenize(text) or list(text.strip()) or [""]
            for token in tokens:
                vector[_hash_token(token, self.dim)] += 1.0
            vectors.append(vector)
        return vectors


class HttpEmbeddingProvider:
    """OpenAI-style ``POST {base_url}/embeddings`` provider."""

    name = "http"

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        model: str,
        timeout: float = 60.0,
        max_batch_size: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self.max_batch_size = max_batch_size
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._url = base_url.rstrip("/") + "/embeddings"
        self._headers = headers

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        response = await self._client.post(
            self._url,
            json={"model": self.model, "input": list(texts)},
            headers=self._headers,
        )
        if response.is_error:
            message = _error_message(response)
            if "batch size is invalid" in message.lower():
                raise BatchSizeLimitError(message, status_code=response.status_code)
            raise EmbeddingError(
                f"provider returned HTTP {response.status_code}: {message}",
                status_code=response.status_code,
            )
        items = response.json().get("data") or []
        ordered = sorted(items, key=lambda item: item.get("index", 0))
        return [list(map(float, item["embedding"])) for item in ordered]


class EmbeddingClient:
    """Batch texts through a provider with bounded retries and unit normalisation."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        batch_size: int = 10,
        max_batch_size: int = 10,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
    ) -> None:
        ceilings = [batch_size, max_batch_size]
        if provider.max_batch_size:
            ceilings.append(provider.max_batch_size)
        self.provider = provider
        self.batch_size = max(1, min(ceilings))
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max

    @property
    def model(self) -> str:
        return self.provider.model

    async def embed_batch(
        self,
        texts: Sequence[str],
        on_batch: ProgressCallback | None = None,
    ) -> list[list[float]]:
        """Embed ``texts`` in order; either every batch succeeds or the call raises."""
        batches = [list(texts[i : i + self.batch_size]) for i in range(0, len(texts), self.batch_size)]
        vectors: list[list[float]] = []
        dim: int | None = None
        for number, batch in enumerate(batches, start=1):
            raw = await self._embed_with_retry(batch, number, len(batches))
            for vector in raw:
                if dim is None:
                    dim = len(vector)
                elif len(vector) != dim:
                    raise EmbeddingError(
                        f"batch {number}/{len(batches)} returned dimension {len(vector)}, expected {dim}",
                        batch=number,
                    )
                vectors.append(normalize(vector, batch=number))
            if on_batch is not None:
                on_batch(number, len(batches))
        return vectors

    async def embed_query(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]

    async def _embed_with_retry(self, batch: list[str], number: int, total: int) -> list[list[float]]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    raw = await self.provider.embed(batch)
                    if len(raw) != len(batch):
                        raise EmbeddingError(
                            f"provider returned {len(raw)} vectors for {len(batch)} inputs",
                            batch=number,
                        )
        except BatchSizeLimitError as exc:
            EMBEDDING_CALLS.labels(outcome="error").inc()
            exc.batch = number
            raise
        except Exception as exc:
            EMBEDDING_CALLS.labels(outcome="error").inc()
            status = getattr(exc, "status_code", None)
            raise EmbeddingError(
                f"embedding batch {number}/{total} failed: {exc}",
                batch=number,
                status_code=status,
            ) from exc
        EMBEDDING_CALLS.labels(outcome="ok").inc()
        return raw


def normalize(vector: Sequence[float], batch: int | None = None) -> list[float]:
    """Return ``vector`` scaled to unit L2 norm."""
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0 or not math.isfinite(norm):
        raise EmbeddingError("provider returned a zero or non-finite vector", batch=batch)
    inv = 1.0 / norm
    return [value * inv for value in vector]


def vector_to_bytes(vector: Sequence[float]) -> bytes:
    return array("f", vector).tobytes()


def vector_from_bytes(payload: bytes) -> list[float]:
    floats = array("f")
    floats.frombytes(payload)
    return list(floats)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, BatchSizeLimitError):
        return False
    status = getattr(exc, "status_code", None)
    if status is not None and 400 <= status < 500 and status not in (408, 429):
        return False
    return True


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if payload.get("message"):
            return str(payload["message"])
    return response.text


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


__all__ = [
    "EmbeddingProvider",
    "HashedEmbeddingProvider",
    "HttpEmbeddingProvider",
    "EmbeddingClient",
    "normalize",
    "vector_to_bytes",
    "vector_from_bytes",
]
