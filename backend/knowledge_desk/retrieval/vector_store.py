"""Embedding persistence with a bounded brute-force similarity scan."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from knowledge_desk.db.sqlite import SQLiteDatabase, now_ms
from knowledge_desk.ingest.embeddings import vector_from_bytes, vector_to_bytes

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class VectorHit:
    segment_id: int
    score: float


class VectorStore:
    """One unit vector per segment, scored by dot product."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def upsert(
        self,
        collection_id: int,
        segment_ids: Sequence[int],
        vectors: Sequence[Sequence[float]],
        model: str,
    ) -> None:
        if len(segment_ids) != len(vectors):
            raise ValueError("segment_ids and vectors must have equal length")
        if not segment_ids:
            return
        now = now_ms()
        with self.db.transaction() as cursor:
            cursor.executemany(
                """
                INSERT OR REPLACE INTO embeddings (segment_id, collection_id, model, dim, vector, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (segment_id, collection_id, model, len(vector), vector_to_bytes(vector), now)
                    for segment_id, vector in zip(segment_ids, vectors)
                ],
            )

    def scan(
        self,
        collection_id: int,
        vector: Sequence[float],
        pool_size: int = 1000,
        limit: int = 200,
    ) -> list[VectorHit]:
        """Score the ``pool_size`` most recent segments of a collection."""
        rows = self.db.query(
            """
            SELECT embeddings.segment_id, embeddings.dim, embeddings.vector
            FROM segments
            JOIN embeddings ON embeddings.segment_id = segments.id
            WHERE segments.collection_id = ? AND segments.seq_index >= 0
            ORDER BY segments.id DESC
            LIMIT ?
            """,
            [collection_id, pool_size],
        )
        return top_hits(self._score_rows(rows, vector), limit)

    def similarities(self, segment_ids: Sequence[int], vector: Sequence[float]) -> dict[int, float]:
        if not segment_ids:
            return {}
        placeholders = ",".join("?" for _ in segment_ids)
        rows = self.db.query(
            f"SELECT segment_id, dim, vector FROM embeddings WHERE segment_id IN ({placeholders})",
            list(segment_ids),
        )
        return {hit.segment_id: hit.score for hit in self._score_rows(rows, vector)}

    def has_vectors(self, collection_id: int) -> bool:
        row = self.db.query_one("SELECT 1 FROM embeddings WHERE collection_id = ? LIMIT 1", [collection_id])
        return row is not None

    def size(self) -> int:
        row = self.db.query_one("SELECT COUNT(1) AS count FROM embeddings")
        return int(row["count"]) if row else 0

    def _score_rows(self, rows, vector: Sequence[float]) -> list[VectorHit]:
        hits: list[VectorHit] = []
        skipped = 0
        for row in rows:
            if row["dim"] != len(vector):
                skipped += 1
                continue
            hits.append(VectorHit(segment_id=int(row["segment_id"]), score=dot(vector_from_bytes(row["vector"]), vector)))
        if skipped:
            logger.warning("Skipped %s embeddings with dimension other than %s", skipped, len(vector))
        return hits


def top_hits(hits: list[VectorHit], limit: int) -> list[VectorHit]:
    hits.sort(key=lambda hit: hit.score, reverse=True)
    return hits[:limit]


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


__all__ = ["VectorStore", "VectorHit", "dot"]
