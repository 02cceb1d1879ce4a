"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "KDESK_"
DEFAULT_CONFIG_PATH = Path("~/.config/knowledge-desk/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("embeddings", "base_url"): "embedding_base_url",
    ("embeddings", "api_key"): "embedding_api_key",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "batch_size"): "embedding_batch_size",
    ("embeddings", "max_batch_size"): "embedding_max_batch_size",
    ("embeddings", "max_retries"): "embedding_max_retries",
    ("embeddings", "backoff_base"): "embedding_backoff_base",
    ("embeddings", "timeout"): "embedding_timeout",
    ("rerank", "url"): "rerank_url",
    ("rerank", "api_key"): "rerank_api_key",
    ("rerank", "model"): "rerank_model",
    ("rerank", "timeout"): "rerank_timeout",
    ("rerank", "input_max"): "rerank_input_max",
    ("chunking", "target_chars"): "chunk_target_chars",
    ("chunking", "overlap_chars"): "chunk_overlap_chars",
    ("retrieval", "lexical_limit"): "lexical_limit",
    ("retrieval", "vector_pool_size"): "vector_pool_size",
    ("retrieval", "vector_limit"): "vector_limit",
    ("retrieval", "alpha"): "hybrid_alpha",
    ("retrieval", "top_k"): "hybrid_top_k",
    ("ingest", "progress_every_batches"): "progress_every_batches",
    ("upload", "max_bytes"): "max_upload_bytes",
    ("upload", "max_files"): "max_upload_files",
    ("upload", "max_text_chars"): "max_text_chars",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".knowledge-desk" / "kd.db")
    default_owner: str = "local"

    embedding_base_url: str | None = None
    embedding_api_key: str | None = None
    embedding_model: str = "text-embedding-v4"
    embedding_dim: int = Field(default=384, ge=1)
    embedding_batch_size: int = Field(default=10, ge=1)
    embedding_max_batch_size: int = Field(default=10, ge=1)
    embedding_max_retries: int = Field(default=3, ge=0)
    embedding_backoff_base: float = Field(default=0.5, ge=0.0)
    embedding_timeout: float = 60.0

    rerank_url: str | None = None
    rerank_api_key: str | None = None
    rerank_model: str = "qwen3-rerank"
    rerank_timeout: float = 20.0
    rerank_input_max: int = Field(default=10, ge=1)

    chunk_target_chars: int = Field(default=3200, ge=1)
    chunk_overlap_chars: int = Field(default=600, ge=0)

    lexical_limit: int = Field(default=50, ge=1)
    vector_pool_size: int = Field(default=1000, ge=1)
    vector_limit: int = Field(default=200, ge=1)
    hybrid_alpha: float = Field(default=0.5, ge=0.0, le=1.0)
    hybrid_top_k: int = Field(default=50, ge=1)

    progress_every_batches: int = Field(default=5, ge=1)

    max_upload_bytes: int = 10 * 1024 * 1024
    max_upload_files: int = 10
    max_text_chars: int = 200_000

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if self.chunk_overlap_chars >= self.chunk_target_chars:
            raise ValueError("chunk_overlap_chars must be smaller than chunk_target_chars")
        return self

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with KDESK_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
