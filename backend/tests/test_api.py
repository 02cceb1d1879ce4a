"""API integration tests."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from knowledge_desk.api import dependencies as deps
from knowledge_desk.app import app
from knowledge_desk.ingest.embeddings import EmbeddingClient, HttpEmbeddingProvider
from knowledge_desk.ingest.pipeline import IngestPipeline
from knowledge_desk.retrieval.hybrid import HybridRetriever
from knowledge_desk.retrieval.lexical import LexicalIndex
from knowledge_desk.retrieval.rerank import Reranker
from knowledge_desk.retrieval.search import SearchService
from knowledge_desk.retrieval.vector_store import VectorStore

NOTES = (
    "# Notes\n\n"
    "This document explains hybrid retrieval with reranking.\n\n"
    "Lexical scores come from BM25 and vectors come from embeddings."
)


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _collection(client: TestClient, name: str = "Docs") -> int:
    resp = client.post("/collections", json={"name": name, "description": "test"})
    assert resp.status_code == 200
    return resp.json()["id"]


def _upload(client: TestClient, collection_id: int, filename: str = "notes.md", body: str = NOTES):
    return client.post(
        "/documents/upload",
        params={"collection_id": collection_id},
        files=[("files", (filename, body.encode("utf-8"), "text/markdown"))],
    )


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_collection_crud(client: TestClient) -> None:
    collection_id = _collection(client)

    listed = client.get("/collections").json()
    assert [item["name"] for item in listed] == ["Docs"]

    renamed = client.put(f"/collections/{collection_id}", json={"name": "Manuals"})
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Manuals"

    assert client.delete(f"/collections/{collection_id}").status_code == 200
    assert client.get("/collections").json() == []
    assert client.get(f"/collections/{collection_id}/documents").status_code == 404


def test_upload_ingest_search_flow(client: TestClient) -> None:
    collection_id = _collection(client)

    upload = _upload(client, collection_id)
    assert upload.status_code == 200
    [uploaded] = upload.json()
    assert uploaded["filename"] == "notes.md"
    assert uploaded["size"] == len(NOTES.encode("utf-8"))
    assert uploaded["snippet"] == NOTES
    doc_id = uploaded["docId"]

    listing = client.get(f"/collections/{collection_id}/documents").json()
    assert listing[0]["status"] == "uploaded"
    assert listing[0]["chunkCount"] == 0

    ingest = client.post(f"/documents/{doc_id}/ingest")
    assert ingest.status_code == 200
    assert ingest.json()["chunks"] == 1
    assert ingest.json()["dim"] == 384

    status = client.get(f"/documents/{doc_id}").json()
    assert status["status"] == "ready"
    assert status["progress"] == 100
    assert status["error"] is None

    search = client.post("/search", json={"collection_id": collection_id, "query": "hybrid retrieval", "top_k": 5})
    assert search.status_code == 200
    hits = search.json()
    assert len(hits) == 1
    hit = hits[0]
    assert hit["docId"] == doc_id
    assert hit["docName"] == "notes.md"
    assert hit["index"] == 0
    assert 0.0 <= hit["fusedScore"] <= 1.0
    assert hit["rerankScore"] is not None

    chunk = client.get(f"/chunks/{hit['segmentId']}")
    assert chunk.status_code == 200
    assert chunk.json()["content"] == NOTES
    assert chunk.json()["docName"] == "notes.md"
    assert chunk.json()["start"] == 0
    assert chunk.json()["end"] == len(NOTES)

    assert client.delete(f"/documents/{doc_id}").status_code == 200
    assert client.get(f"/documents/{doc_id}").status_code == 404
    assert client.get(f"/chunks/{hit['segmentId']}").status_code == 404
    after = client.post("/search", json={"collection_id": collection_id, "query": "hybrid retrieval"})
    assert after.json() == []


def test_search_empty_collection(client: TestClient) -> None:
    collection_id = _collection(client)
    resp = client.post("/search", json={"collection_id": collection_id, "query": "anything"})
    assert resp.status_code == 200
    assert resp.json() == []


def test_search_orders_by_rerank_score(client: TestClient) -> None:
    scores = {"Apples are a fruit.": 0.1, "Bananas are a fruit.": 0.5, "Cherries are a fruit.": 0.9}
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        docs = body["input"]["documents"]
        results = [{"index": idx, "relevance_score": scores[doc]} for idx, doc in enumerate(docs)]
        return httpx.Response(200, json={"output": {"results": results}})

    db = deps.get_database()
    retriever = HybridRetriever(
        repository=deps.get_repository(),
        lexical_index=LexicalIndex(db),
        vector_store=VectorStore(db),
        embedder=deps.get_embedder(),
    )
    reranker = Reranker(
        url="http://rerank.test/v1/rerank",
        input_max=2,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    service = SearchService(deps.get_repository(), retriever, reranker, deps.get_app_settings())
    app.dependency_overrides[deps.get_search_service] = lambda: service

    collection_id = _collection(client)
    for name, text in zip(("apples.txt", "bananas.txt", "cherries.txt"), scores):
        doc_id = _upload(client, collection_id, filename=name, body=text).json()[0]["docId"]
        assert client.post(f"/documents/{doc_id}/ingest").status_code == 200

    candidates = asyncio.run(retriever.search(collection_id, "fruit"))
    assert len(candidates) == 3
    fused = {c.segment.id: c.fused_score for c in candidates}

    resp = client.post("/search", json={"collection_id": collection_id, "query": "fruit", "top_k": 5})
    assert resp.status_code == 200
    hits = resp.json()

    assert len(bodies) == 1
    sent = bodies[0]["input"]["documents"]
    assert sent == [c.segment.content for c in candidates[:2]]
    assert len(hits) == 2
    assert [hit["rerankScore"] for hit in hits] == sorted((scores[doc] for doc in sent), reverse=True)
    for hit in hits:
        assert hit["content"] in sent
        assert hit["rerankScore"] == pytest.approx(scores[hit["content"]])
        assert hit["fusedScore"] == pytest.approx(fused[hit["segmentId"]])
        assert 0.0 <= hit["fusedScore"] <= 1.0


def test_search_validation_and_missing_collection(client: TestClient) -> None:
    assert client.post("/search", json={"collection_id": 1, "query": ""}).status_code == 422
    assert client.post("/search", json={"collection_id": 999, "query": "x"}).status_code == 404


def test_unsupported_upload_creates_nothing(client: TestClient) -> None:
    collection_id = _collection(client)
    resp = client.post(
        "/documents/upload",
        params={"collection_id": collection_id},
        files=[
            ("files", ("ok.txt", b"fine", "text/plain")),
            ("files", ("tool.exe", b"\x00\x01", "application/octet-stream")),
        ],
    )
    assert resp.status_code == 400
    assert "unsupported file type" in resp.json()["detail"]
    assert client.get(f"/collections/{collection_id}/documents").json() == []


def test_upload_requires_collection(client: TestClient) -> None:
    resp = client.post("/documents/upload", files=[("files", ("a.txt", b"text", "text/plain"))])
    assert resp.status_code == 400
    assert _upload(client, 999).status_code == 404


def test_paste_then_ingest(client: TestClient) -> None:
    collection_id = _collection(client)
    resp = client.post(
        "/documents/paste",
        json={"collection_id": collection_id, "text": "Pasted notes about rerank fallback.", "filename": "clip.txt"},
    )
    assert resp.status_code == 200
    doc_id = resp.json()["docId"]
    assert resp.json()["filename"] == "clip.txt"
    assert resp.json()["snippet"] == "Pasted notes about rerank fallback."

    assert client.post(f"/documents/{doc_id}/ingest").json()["chunks"] == 1
    listing = client.get(f"/collections/{collection_id}/documents").json()
    assert listing[0]["chunkCount"] == 1


def test_ingest_unknown_document(client: TestClient) -> None:
    assert client.post("/documents/12345/ingest").status_code == 404


def test_ingest_failure_is_reported_and_stored(client: TestClient) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "Invalid API-key provided."}})

    provider = HttpEmbeddingProvider(
        base_url="http://embed.test/v1",
        api_key="bad",
        model="remote",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    db = deps.get_database()
    pipeline = IngestPipeline(
        repository=deps.get_repository(),
        embedder=EmbeddingClient(provider, max_retries=0),
        vector_store=VectorStore(db),
        lexical_index=LexicalIndex(db),
        settings=deps.get_app_settings(),
    )
    app.dependency_overrides[deps.get_ingest_pipeline] = lambda: pipeline

    collection_id = _collection(client)
    doc_id = _upload(client, collection_id).json()[0]["docId"]

    resp = client.post(f"/documents/{doc_id}/ingest")
    assert resp.status_code == 500
    assert resp.json()["errorType"] == "auth_error"
    assert resp.json()["message"]

    status = client.get(f"/documents/{doc_id}").json()
    assert status["status"] == "error"
    assert status["progress"] == 0
    assert status["errorType"] == "auth_error"
    assert status["error"] == resp.json()["message"]


def test_metrics_endpoint(client: TestClient) -> None:
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "kdesk_index_segments" in resp.text
