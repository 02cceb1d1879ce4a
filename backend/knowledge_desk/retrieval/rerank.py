"""Cross-encoder reranking through an external provider, with fallback."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import httpx

from knowledge_desk.core.errors import RerankExhaustedError, RerankShapeError
from knowledge_desk.core.metrics import RERANK_OUTCOMES

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RerankResult:
    index: int
    score: float


@dataclass(slots=True, frozen=True)
class RequestShape:
    """One way of laying out the provider's ``input`` body.

    ``trigger`` matches the error message of the previous attempt that makes
    this shape worth trying; the first shape has none and is always tried.
    """

    name: str
    build: Callable[[str, list[str]], dict[str, Any]]
    trigger: re.Pattern[str] | None = None

    def applies_after(self, message: str) -> bool:
        return self.trigger is not None and bool(self.trigger.search(message))


DEFAULT_SHAPES: tuple[RequestShape, ...] = (
    RequestShape(
        name="documents",
        build=lambda query, docs: {"query": query, "documents": docs},
    ),
    RequestShape(
        name="contents",
        build=lambda query, docs: {"query": query, "contents": docs},
        trigger=re.compile(r"contents is neither str|expect.*contents", re.IGNORECASE),
    ),
    RequestShape(
        name="document_objects",
        build=lambda query, docs: {"query": query, "documents": [{"text": doc} for doc in docs]},
        trigger=re.compile(r"documents.*(object|map)", re.IGNORECASE),
    ),
)


class Reranker:
    """Rerank a small candidate set; never raises to the caller."""

    def __init__(
        self,
        url: str | None,
        api_key: str | None = None,
        model: str = "qwen3-rerank",
        timeout: float = 20.0,
        input_max: int = 10,
        shapes: Sequence[RequestShape] = DEFAULT_SHAPES,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.model = model
        self.input_max = input_max
        self.shapes = tuple(shapes)
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._timeout = timeout
        self._client = client

    async def rerank(
        self,
        query: str,
        documents: Sequence[str],
        top_n: int,
        fallback_scores: Sequence[float] | None = None,
    ) -> list[RerankResult]:
        """Return up to ``top_n`` results whose ``index`` points into ``documents``.

        When the provider cannot be used, ordering falls back to
        ``fallback_scores`` (vector similarity of the same documents).
        """
        docs = [str(doc) for doc in documents][: self.input_max]
        top = min(top_n, len(docs))
        if top <= 0:
            return []
        try:
            results = await self._call_provider(query, docs, top)
        except Exception as exc:
            logger.warning("Rerank provider failed, falling back to vector similarity: %s", exc)
            RERANK_OUTCOMES.labels(path="fallback").inc()
            return fallback_order(fallback_scores, len(docs), top)
        RERANK_OUTCOMES.labels(path="provider").inc()
        return results

    async def _call_provider(self, query: str, docs: list[str], top: int) -> list[RerankResult]:
        if not self.url:
            raise RerankExhaustedError([("provider", "no rerank url configured")])
        attempts: list[tuple[str, str]] = []
        last_message: str | None = None
        for position, shape in enumerate(self.shapes):
            if position > 0 and (last_message is None or not shape.applies_after(last_message)):
                continue
            try:
                return await self._post(shape, query, docs, top)
            except RerankShapeError as exc:
                last_message = str(exc)
                attempts.append((shape.name, last_message))
                logger.info("Rerank shape %s rejected: %s", shape.name, last_message)
            except httpx.HTTPError as exc:
                attempts.append((shape.name, f"{exc.__class__.__name__}: {exc}"))
                break
        raise RerankExhaustedError(attempts)

    async def _post(self, shape: RequestShape, query: str, docs: list[str], top: int) -> list[RerankResult]:
        body = {
            "model": self.model,
            "input": shape.build(query, docs),
            "parameters": {"top_n": top, "return_documents": False},
        }
        if self._client is not None:
            response = await self._client.post(self.url, json=body, headers=self._headers)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self.url, json=body, headers=self._headers)
        if response.is_error:
            raise RerankShapeError(_error_message(response), status_code=response.status_code)
        return parse_results(response.json(), len(docs), top)


def parse_results(payload: Any, doc_count: int, top: int) -> list[RerankResult]:
    """Read ``output.results`` / ``data`` / ``results`` items into ranked results."""
    items: Any = []
    if isinstance(payload, dict):
        output = payload.get("output")
        if isinstance(output, dict) and output.get("results"):
            items = output["results"]
        else:
            items = payload.get("data") or payload.get("results") or []
    results: list[RerankResult] = []
    seen: set[int] = set()
    for item in items:
        index = item.get("index", item.get("document_index"))
        score = item.get("relevance_score", item.get("score"))
        if index is None or score is None:
            continue
        index = int(index)
        if not 0 <= index < doc_count or index in seen:
            continue
        seen.add(index)
        results.append(RerankResult(index=index, score=float(score)))
    if not results:
        raise ValueError("rerank response contained no usable results")
    results.sort(key=lambda result: result.score, reverse=True)
    return results[:top]


def fallback_order(scores: Sequence[float] | None, count: int, top: int) -> list[RerankResult]:
    """Order indices by descending score; unknown scores count as zero."""
    values = list(scores or [])[:count]
    values.extend([0.0] * (count - len(values)))
    ranked = sorted(range(count), key=lambda idx: values[idx], reverse=True)
    return [RerankResult(index=idx, score=float(values[idx])) for idx in ranked[:top]]


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, dict):
                value = value.get("message")
            if value:
                return str(value)
    return response.text or f"HTTP {response.status_code}"


__all__ = ["Reranker", "RerankResult", "RequestShape", "DEFAULT_SHAPES", "fallback_order", "parse_results"]
