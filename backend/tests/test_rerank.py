"""Tests for reranking and its fallback path."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from knowledge_desk.retrieval.rerank import Reranker, fallback_order, parse_results


def _reranker(handler, input_max: int = 10) -> tuple[Reranker, list[dict]]:
    bodies: list[dict] = []

    def recording(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        return handler(body)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return Reranker(url="http://rerank.test/v1/rerank", api_key="k", input_max=input_max, client=client), bodies


def _ok(*pairs: tuple[int, float]) -> httpx.Response:
    results = [{"index": index, "relevance_score": score} for index, score in pairs]
    return httpx.Response(200, json={"output": {"results": results}})


def test_plain_shape_first() -> None:
    reranker, bodies = _reranker(lambda body: _ok((1, 0.9), (0, 0.2)))
    results = asyncio.run(reranker.rerank("q", ["a", "b"], top_n=2))
    assert [r.index for r in results] == [1, 0]
    assert bodies[0]["input"] == {"query": "q", "documents": ["a", "b"]}
    assert bodies[0]["parameters"]["top_n"] == 2


def test_switches_to_contents_shape() -> None:
    def handler(body: dict) -> httpx.Response:
        if "contents" in body["input"]:
            return _ok((0, 0.4), (1, 0.8))
        return httpx.Response(400, json={"message": "contents is neither str nor list of str"})

    reranker, bodies = _reranker(handler)
    results = asyncio.run(reranker.rerank("q", ["a", "b"], top_n=2))
    assert [r.index for r in results] == [1, 0]
    assert [sorted(body["input"]) for body in bodies] == [["documents", "query"], ["contents", "query"]]


def test_switches_to_wrapped_documents() -> None:
    def handler(body: dict) -> httpx.Response:
        docs = body["input"].get("documents")
        if docs and isinstance(docs[0], dict):
            return _ok((0, 0.7))
        return httpx.Response(400, json={"message": "documents[0] should be an object"})

    reranker, bodies = _reranker(handler)
    results = asyncio.run(reranker.rerank("q", ["a"], top_n=1))
    assert [r.index for r in results] == [0]
    assert len(bodies) == 2
    assert bodies[1]["input"]["documents"] == [{"text": "a"}]


def test_total_failure_falls_back_to_similarity() -> None:
    reranker, bodies = _reranker(lambda body: httpx.Response(400, json={"message": "bad request"}))
    results = asyncio.run(reranker.rerank("q", ["a", "b", "c"], top_n=2, fallback_scores=[0.1, 0.7, 0.3]))
    assert [r.index for r in results] == [1, 2]
    assert [r.score for r in results] == pytest.approx([0.7, 0.3])
    assert len(bodies) == 1


def test_each_rejection_selects_next_shape_then_falls_back() -> None:
    def handler(body: dict) -> httpx.Response:
        if "contents" in body["input"]:
            return httpx.Response(400, json={"message": "documents must be a list of objects"})
        if isinstance(body["input"]["documents"][0], dict):
            return httpx.Response(400, json={"message": "still rejected"})
        return httpx.Response(400, json={"message": "contents is neither str nor list of str"})

    reranker, bodies = _reranker(handler)
    results = asyncio.run(reranker.rerank("q", ["a", "b", "c"], top_n=2, fallback_scores=[0.2, 0.1, 0.6]))

    assert len(bodies) == 3
    assert bodies[0]["input"]["documents"] == ["a", "b", "c"]
    assert bodies[1]["input"]["contents"] == ["a", "b", "c"]
    assert bodies[2]["input"]["documents"] == [{"text": "a"}, {"text": "b"}, {"text": "c"}]
    assert [r.index for r in results] == [2, 0]
    assert len(results) <= 2


def test_network_failure_falls_back() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    reranker = Reranker(url="http://rerank.test", client=client)
    results = asyncio.run(reranker.rerank("q", ["a", "b"], top_n=5, fallback_scores=[0.2, 0.9]))
    assert [r.index for r in results] == [1, 0]


def test_no_url_always_falls_back() -> None:
    reranker = Reranker(url=None)
    results = asyncio.run(reranker.rerank("q", ["a", "b", "c"], top_n=1, fallback_scores=[0.5, 0.1, 0.9]))
    assert [r.index for r in results] == [2]


def test_input_is_capped() -> None:
    reranker, bodies = _reranker(lambda body: _ok(*[(i, 1.0 - i / 10) for i in range(3)]), input_max=4)
    results = asyncio.run(reranker.rerank("q", [str(i) for i in range(12)], top_n=10))
    assert len(bodies[0]["input"]["documents"]) == 4
    assert bodies[0]["parameters"]["top_n"] == 4
    assert len(results) <= 4


def test_parse_results_variants() -> None:
    assert [r.index for r in parse_results({"data": [{"index": 1, "score": 0.3}]}, 2, 2)] == [1]
    assert [r.index for r in parse_results({"results": [{"document_index": 0, "relevance_score": 1}]}, 1, 1)] == [0]
    with pytest.raises(ValueError):
        parse_results({"results": [{"index": 9, "score": 1.0}]}, 2, 2)


def test_fallback_order_pads_missing_scores() -> None:
    ranked = fallback_order([0.3], count=3, top=3)
    assert [r.index for r in ranked] == [0, 1, 2]
    assert [r.score for r in ranked] == [0.3, 0.0, 0.0]
