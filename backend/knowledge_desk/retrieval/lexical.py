"""FTS5-backed lexical index over segment content."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from knowledge_desk.db.sqlite import SQLiteDatabase

_TERM_RE = re.compile(r"\w+")


@dataclass(slots=True)
class LexicalHit:
    segment_id: int
    score: float  # native bm25(): lower is better


class LexicalIndex:
    """Inverted index kept beside the ``segments`` table.

    Rows are added explicitly during ingest; deletes and content updates on
    ``segments`` propagate through triggers defined in the schema.
    """

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def add(self, collection_id: int, entries: Sequence[tuple[int, str]]) -> None:
        if not entries:
            return
        with self.db.transaction() as cursor:
            cursor.executemany(
                "INSERT OR REPLACE INTO segments_fts (rowid, content, collection_id) VALUES (?, ?, ?)",
                [(segment_id, content, collection_id) for segment_id, content in entries],
            )

    def search(self, collection_id: int, query: str, limit: int = 50) -> list[LexicalHit]:
        match = build_match_query(query)
        if not match:
            return []
        rows = self.db.query(
            """
            SELECT rowid AS segment_id, bm25(segments_fts) AS score
            FROM segments_fts
            WHERE segments_fts MATCH ? AND collection_id = ?
            ORDER BY score
            LIMIT ?
            """,
            [match, collection_id, limit],
        )
        return [LexicalHit(segment_id=int(row["segment_id"]), score=float(row["score"])) for row in rows]

    def count(self, collection_id: int) -> int:
        row = self.db.query_one("SELECT COUNT(1) AS count FROM segments_fts WHERE collection_id = ?", [collection_id])
        return int(row["count"]) if row else 0


def build_match_query(query: str) -> str:
    """Quote each term and OR them so user input never hits FTS5 syntax."""
    terms = list(dict.fromkeys(term.lower() for term in _TERM_RE.findall(query)))
    return " OR ".join(f'"{term}"' for term in terms)


__all__ = ["LexicalIndex", "LexicalHit", "build_match_query"]
