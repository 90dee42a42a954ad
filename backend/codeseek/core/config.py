"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "CODESEEK_"
DEFAULT_CONFIG_PATH = Path("~/.config/codeseek/config.yaml")
INDEX_DIR_NAME = ".ck"

DEFAULT_EXCLUDES: tuple[str, ...] = (
    ".git",
    ".hg",
    ".svn",
    INDEX_DIR_NAME,
    "node_modules",
    "target",
    "build",
    "dist",
    "__pycache__",
    ".venv",
    "venv",
    ".mypy_cache",
    ".pytest_cache",
    ".tox",
    ".idea",
    ".vscode",
)

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "max_tokens"): "max_tokens",
    ("embeddings", "overlap_tokens"): "overlap_tokens",
    ("embeddings", "batch_size"): "embed_batch_size",
    ("embeddings", "timeout"): "model_timeout",
    ("embeddings", "cache_dir"): "model_cache_dir",
    ("rerank", "model"): "rerank_model",
    ("search", "topk"): "topk",
    ("search", "threshold"): "threshold",
    ("search", "fusion"): "hybrid_fusion",
    ("search", "semantic_weight"): "hybrid_weight_semantic",
    ("index", "workers"): "index_workers",
    ("index", "verify_hashes"): "verify_hashes",
    ("index", "exclude"): "default_excludes",
    ("retry", "max_attempts"): "retry_max_attempts",
    ("retry", "base_delay"): "retry_base_delay",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    embedding_model: str = "nomic-embed-text-v1.5"
    rerank_model: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"
    model_cache_dir: Path | None = None
    model_timeout: float = 300.0
    max_tokens: int = Field(default=512, ge=16)
    overlap_tokens: int = Field(default=64, ge=0)
    embed_batch_size: int = Field(default=32, ge=1)
    topk: int = Field(default=10, ge=1)
    threshold: float = 0.6
    hybrid_fusion: Literal["weighted", "rrf"] = "weighted"
    hybrid_weight_semantic: float = Field(default=0.6, ge=0.0, le=1.0)
    index_workers: int = Field(default=4, ge=1)
    verify_hashes: bool = False
    default_excludes: tuple[str, ...] = DEFAULT_EXCLUDES
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0.0)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("model_cache_dir", mode="before")
    @classmethod
    def _expand_cache_dir(cls, value: Any) -> Path | None:
        if value is None or value == "":
            return None
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("model_cache_dir must be a path or string")

    @field_validator("default_excludes", mode="before")
    @classmethod
    def _split_excludes(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value

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
    """Map environment variables with CODESEEK_ prefix into Settings fields."""
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
    """Cached settings accessor shared by the CLI commands."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings", "DEFAULT_EXCLUDES", "INDEX_DIR_NAME"]
