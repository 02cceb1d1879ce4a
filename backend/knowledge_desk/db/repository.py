"""Persistence for collections, documents and segments."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Sequence

from knowledge_desk.core.errors import NotFoundError
from knowledge_desk.db.sqlite import SQLiteDatabase, now_ms
from knowledge_desk.ingest.chunker import Chunk, approx_tokens
from knowledge_desk.models.entities import STAGING_INDEX, Collection, Document, Segment
from knowledge_desk.utils.text import repair_mojibake

_DOCUMENT_COLUMNS = (
    "id, collection_id, filename, ext, mime, size_bytes, sha256, status, progress, "
    "error, error_kind, created_at, updated_at"
)


@dataclass(slots=True)
class DocumentSummary:
    document: Document
    chunk_count: int


@dataclass(slots=True)
class NewDocument:
    collection_id: int
    filename: str
    ext: str | None
    mime: str | None
    size_bytes: int
    sha256: str
    text: str


class KnowledgeRepository:
    """SQL access for everything except the vector and lexical indexes."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    # Collections ------------------------------------------------------

    def create_collection(self, owner: str, name: str, description: str | None) -> Collection:
        now = now_ms()
        cursor = self.db.execute(
            "INSERT INTO collections (owner, name, description, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            [owner, name, description, now, now],
        )
        self.db.commit()
        return self.get_collection(int(cursor.lastrowid))

    def list_collections(self, owner: str) -> list[Collection]:
        rows = self.db.query(
            "SELECT * FROM collections WHERE owner = ? ORDER BY id DESC",
            [owner],
        )
        return [_row_to_collection(row) for row in rows]

    def get_collection(self, collection_id: int) -> Collection:
        row = self.db.query_one("SELECT * FROM collections WHERE id = ?", [collection_id])
        if row is None:
            raise NotFoundError("collection", collection_id)
        return _row_to_collection(row)

    def update_collection(self, collection_id: int, name: str | None, description: str | None) -> Collection:
        self.get_collection(collection_id)
        updates: list[str] = []
        params: list[object] = []
        if name is not None:
            updates.append("name = ?")
            params.append(name)
        if description is not None:
            updates.append("description = ?")
            params.append(description)
        if updates:
            updates.append("updated_at = ?")
            params.extend([now_ms(), collection_id])
            self.db.execute(f"UPDATE collections SET {', '.join(updates)} WHERE id = ?", params)
            self.db.commit()
        return self.get_collection(collection_id)

    def delete_collection(self, collection_id: int) -> None:
        self.get_collection(collection_id)
        self.db.execute("DELETE FROM collections WHERE id = ?", [collection_id])
        self.db.commit()

    def fix_collection_dim(self, collection_id: int, dim: int) -> int:
        """Record ``dim`` if the collection has none yet; return the stored dimension."""
        self.db.execute(
            "UPDATE collections SET embedding_dim = ? WHERE id = ? AND embedding_dim IS NULL",
            [dim, collection_id],
        )
        self.db.commit()
        return int(self.get_collection(collection_id).embedding_dim or dim)

    # Documents --------------------------------------------------------

    def create_document(self, new: NewDocument) -> Document:
        """Insert a document row plus its staging segment holding the full text."""
        self.get_collection(new.collection_id)
        now = now_ms()
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO documents (
                  collection_id, filename, ext, mime, size_bytes, sha256, status, progress,
                  created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, 'uploaded', 0, ?, ?)
                """,
                [new.collection_id, new.filename, new.ext, new.mime, new.size_bytes, new.sha256, now, now],
            )
            document_id = int(cursor.lastrowid)
            cursor.execute(
                """
                INSERT INTO segments (
                  document_id, collection_id, seq_index, content, token_count, start_char, end_char, created_at
                ) VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                """,
                [
                    document_id,
                    new.collection_id,
                    STAGING_INDEX,
                    new.text,
                    approx_tokens(new.text),
                    len(new.text),
                    now,
                ],
            )
        return self.get_document(document_id)

    def get_document(self, document_id: int) -> Document:
        row = self.db.query_one(f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", [document_id])
        if row is None:
            raise NotFoundError("document", document_id)
        return _row_to_document(row)

    def list_documents(self, collection_id: int) -> list[DocumentSummary]:
        self.get_collection(collection_id)
        rows = self.db.query(
            f"""
            SELECT {_DOCUMENT_COLUMNS},
              (SELECT COUNT(1) FROM segments s WHERE s.document_id = documents.id AND s.seq_index >= 0)
                AS chunk_count
            FROM documents
            WHERE collection_id = ?
            ORDER BY id DESC
            """,
            [collection_id],
        )
        return [DocumentSummary(document=_row_to_document(row), chunk_count=int(row["chunk_count"])) for row in rows]

    def delete_document(self, document_id: int) -> None:
        self.get_document(document_id)
        self.db.execute("DELETE FROM documents WHERE id = ?", [document_id])
        self.db.commit()

    def staged_text(self, document_id: int) -> str | None:
        row = self.db.query_one(
            "SELECT content FROM segments WHERE document_id = ? AND seq_index = ?",
            [document_id, STAGING_INDEX],
        )
        return row["content"] if row else None

    # Status transitions -----------------------------------------------

    def begin_processing(self, document_id: int, progress: int) -> bool:
        """Move a document into ``processing``; False if it is already there."""
        cursor = self.db.execute(
            "UPDATE documents SET status = 'processing', progress = ?, error = NULL, error_kind = NULL, "
            "updated_at = ? WHERE id = ? AND status != 'processing'",
            [progress, now_ms(), document_id],
        )
        self.db.commit()
        return cursor.rowcount == 1

    def fail_interrupted(self) -> int:
        """Move documents left in ``processing`` by a previous process to ``error``."""
        cursor = self.db.execute(
            "UPDATE documents SET status = 'error', progress = 0, error = ?, error_kind = 'unknown', "
            "updated_at = ? WHERE status = 'processing'",
            ["Ingest was interrupted, please retry", now_ms()],
        )
        self.db.commit()
        return cursor.rowcount

    def set_progress(self, document_id: int, progress: int) -> None:
        self.db.execute(
            "UPDATE documents SET progress = ?, updated_at = ? WHERE id = ? AND status = 'processing'",
            [progress, now_ms(), document_id],
        )
        self.db.commit()

    def mark_ready(self, document_id: int) -> None:
        self.db.execute(
            "UPDATE documents SET status = 'ready', progress = 100, error = NULL, error_kind = NULL, "
            "updated_at = ? WHERE id = ?",
            [now_ms(), document_id],
        )
        self.db.commit()

    def mark_error(self, document_id: int, kind: str, message: str) -> None:
        self.db.execute(
            "UPDATE documents SET status = 'error', progress = 0, error = ?, error_kind = ?, updated_at = ? "
            "WHERE id = ?",
            [message, kind, now_ms(), document_id],
        )
        self.db.commit()

    # Segments ---------------------------------------------------------

    def clear_segments(self, document_id: int) -> int:
        """Drop real segments of a document; embeddings and lexical rows cascade."""
        cursor = self.db.execute(
            "DELETE FROM segments WHERE document_id = ? AND seq_index >= 0",
            [document_id],
        )
        self.db.commit()
        return cursor.rowcount

    def insert_segments(self, document: Document, chunks: Sequence[Chunk]) -> list[Segment]:
        now = now_ms()
        segments: list[Segment] = []
        with self.db.transaction() as cursor:
            for chunk in chunks:
                cursor.execute(
                    """
                    INSERT INTO segments (
                      document_id, collection_id, seq_index, content, token_count, start_char, end_char, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        document.id,
                        document.collection_id,
                        chunk.index,
                        chunk.content,
                        chunk.approx_tokens,
                        chunk.start,
                        chunk.end,
                        now,
                    ],
                )
                segments.append(
                    Segment(
                        id=int(cursor.lastrowid),
                        document_id=document.id,
                        collection_id=document.collection_id,
                        seq_index=chunk.index,
                        content=chunk.content,
                        token_count=chunk.approx_tokens,
                        start_char=chunk.start,
                        end_char=chunk.end,
                    )
                )
        return segments

    def fetch_segments(self, segment_ids: Sequence[int]) -> dict[int, Segment]:
        """Load real segments by id, joined with their document filename."""
        if not segment_ids:
            return {}
        placeholders = ",".join("?" for _ in segment_ids)
        rows = self.db.query(
            f"""
            SELECT segments.*, documents.filename AS document_name
            FROM segments
            JOIN documents ON documents.id = segments.document_id
            WHERE segments.id IN ({placeholders}) AND segments.seq_index >= 0
            """,
            list(segment_ids),
        )
        return {int(row["id"]): _row_to_segment(row) for row in rows}

    def get_segment(self, segment_id: int) -> Segment:
        segment = self.fetch_segments([segment_id]).get(segment_id)
        if segment is None:
            raise NotFoundError("segment", segment_id)
        return segment

    def count_segments(self) -> int:
        row = self.db.query_one("SELECT COUNT(1) AS count FROM segments WHERE seq_index >= 0")
        return int(row["count"]) if row else 0


def _row_to_collection(row: sqlite3.Row) -> Collection:
    return Collection(
        id=int(row["id"]),
        owner=row["owner"],
        name=row["name"],
        description=row["description"],
        embedding_dim=row["embedding_dim"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=int(row["id"]),
        collection_id=int(row["collection_id"]),
        filename=repair_mojibake(row["filename"]) or "",
        ext=row["ext"],
        mime=row["mime"],
        size_bytes=int(row["size_bytes"]),
        sha256=row["sha256"],
        status=row["status"],
        progress=int(row["progress"]),
        error=row["error"],
        error_kind=row["error_kind"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_segment(row: sqlite3.Row) -> Segment:
    return Segment(
        id=int(row["id"]),
        document_id=int(row["document_id"]),
        collection_id=int(row["collection_id"]),
        seq_index=int(row["seq_index"]),
        content=row["content"],
        token_count=int(row["token_count"]),
        start_char=int(row["start_char"]),
        end_char=int(row["end_char"]),
        document_name=repair_mojibake(row["document_name"]),
    )


__all__ = ["KnowledgeRepository", "DocumentSummary", "NewDocument"]
