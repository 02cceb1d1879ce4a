"""Test fixtures for Knowledge Desk."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("KDESK_DB_PATH", str(tmp_path / "kd.db"))
    for name in ("KDESK_CONFIG", "KDESK_EMBEDDING_BASE_URL", "KDESK_RERANK_URL"):
        monkeypatch.delenv(name, raising=False)

    from knowledge_desk.api import dependencies as deps

    deps.reset_state()
    yield
    deps.reset_state()


@pytest.fixture
def database(tmp_path: Path):
    from knowledge_desk.db.sqlite import SQLiteDatabase

    db = SQLiteDatabase(tmp_path / "unit.db")
    db.ensure_schema()
    yield db
    db.close()


@pytest.fixture
def repository(database):
    from knowledge_desk.db.repository import KnowledgeRepository

    return KnowledgeRepository(database)


@pytest.fixture(scope="session")
def sample_text() -> str:
    paragraphs = [f"Paragraph {idx} talks about hybrid retrieval " + "and more words " * 4 for idx in range(12)]
    return "# Notes\n\n" + "\n\n".join(paragraphs)
