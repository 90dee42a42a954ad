"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from codeseek.core.config import DEFAULT_EXCLUDES, Settings, get_settings


def test_defaults_without_config_file() -> None:
    settings = get_settings()
    assert settings.embedding_model == "nomic-embed-text-v1.5"
    assert settings.topk == 10
    assert settings.threshold == 0.6
    assert settings.hybrid_fusion == "weighted"
    assert settings.default_excludes == DEFAULT_EXCLUDES


def test_yaml_sections_map_to_fields(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "embeddings:\n"
        "  model: hashed\n"
        "  max_tokens: 256\n"
        "  batch_size: 8\n"
        "search:\n"
        "  fusion: rrf\n"
        "  topk: 5\n"
        "index:\n"
        "  workers: 2\n"
        "  exclude: [vendor, dist]\n"
        "verify_hashes: true\n"
    )
    settings = Settings.from_yaml(config)
    assert settings.embedding_model == "hashed"
    assert settings.max_tokens == 256
    assert settings.embed_batch_size == 8
    assert settings.hybrid_fusion == "rrf"
    assert settings.topk == 5
    assert settings.index_workers == 2
    assert settings.default_excludes == ("vendor", "dist")
    assert settings.verify_hashes is True


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("search:\n  topk: 5\n")
    monkeypatch.setenv("CODESEEK_CONFIG", str(config))
    monkeypatch.setenv("CODESEEK_TOPK", "7")
    monkeypatch.setenv("CODESEEK_DEFAULT_EXCLUDES", "a, b,,c")
    settings = get_settings()
    assert settings.topk == 7
    assert settings.default_excludes == ("a", "b", "c")


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(hybrid_fusion="borda")
    with pytest.raises(ValidationError):
        Settings(index_workers=0)
