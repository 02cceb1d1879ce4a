"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from knowledge_desk.core.config import Settings


def test_yaml_and_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "embeddings:\n  batch_size: 25\n  max_batch_size: 10\nretrieval:\n  alpha: 0.3\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("KDESK_RERANK_INPUT_MAX", "5")

    settings = Settings.from_yaml(config)

    assert settings.embedding_batch_size == 25
    assert settings.hybrid_alpha == pytest.approx(0.3)
    assert settings.rerank_input_max == 5
    assert settings.db_path == tmp_path / "kd.db"


def test_overlap_must_be_smaller_than_target() -> None:
    with pytest.raises(ValueError):
        Settings(chunk_target_chars=100, chunk_overlap_chars=100)
