"""Tests for embedding utilities."""

from __future__ import annotations

import pytest

from codeseek.core.config import Settings
from codeseek.core.errors import EmbeddingUnavailable, ModelNotFound
from codeseek.core.retry import RetryPolicy
from codeseek.ingest.embeddings import (
    HashedEmbeddingModel,
    SentenceTransformerEmbedder,
    load_embedder,
)


def test_hashed_model_vectors_are_normalized() -> None:
    model = HashedEmbeddingModel(dim=64)
    vectors = model.embed_batch(["hello", "world"])
    assert len(vectors) == 2
    assert all(len(vec) == model.dim for vec in vectors)
    assert abs(sum(value * value for value in vectors[0]) - 1.0) < 1e-6


def test_hashed_model_is_deterministic() -> None:
    assert HashedEmbeddingModel().embed("parse config") == HashedEmbeddingModel().embed("parse config")


def test_empty_text_embeds_to_zero_vector() -> None:
    assert not any(HashedEmbeddingModel(dim=8).embed(""))


def test_estimate_tokens_is_quarter_of_characters() -> None:
    model = HashedEmbeddingModel()
    assert model.estimate_tokens("") == 0
    assert model.estimate_tokens("abcd") == 1
    assert model.estimate_tokens("abcde") == 2


def test_chunk_config_respects_model_limits() -> None:
    config = HashedEmbeddingModel(max_tokens=128).chunk_config(overlap_tokens=16, max_tokens=512)
    assert config.max_tokens == 128
    assert config.overlap_tokens == 16


def test_load_embedder_resolves_hashed_ids() -> None:
    settings = Settings()
    assert load_embedder("hashed", settings).model_id == "hashed"
    sized = load_embedder("hashed-32", settings)
    assert sized.model_id == "hashed-32"
    assert sized.dim == 32


def test_load_embedder_known_model_is_lazy() -> None:
    provider = load_embedder("BAAI/bge-small-en-v1.5", Settings(max_tokens=256))
    assert isinstance(provider, SentenceTransformerEmbedder)
    assert provider.model_id == "BAAI/bge-small-en-v1.5"
    assert provider.max_tokens == 256
    assert provider.dim == 384


def test_unknown_model_lists_alternatives() -> None:
    with pytest.raises(ModelNotFound) as excinfo:
        load_embedder("definitely-not-a-model", Settings())
    assert "nomic-embed-text-v1.5" in excinfo.value.available
    assert "definitely-not-a-model" in str(excinfo.value)


def test_failed_model_load_becomes_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    delays: list[float] = []
    provider = SentenceTransformerEmbedder(
        model_id="BAAI/bge-small-en-v1.5",
        hub_id="BAAI/bge-small-en-v1.5",
        dim=384,
        max_tokens=512,
        retry=RetryPolicy(max_attempts=3, base_delay=0.5, sleep=delays.append),
    )
    attempts: list[int] = []

    def failing_load():
        attempts.append(1)
        raise OSError("offline")

    monkeypatch.setattr(provider, "_load", failing_load)
    with pytest.raises(EmbeddingUnavailable):
        provider.embed_batch(["anything"])
    assert len(attempts) == 3
    assert delays == [1.0, 2.0]


def test_failed_model_load_is_not_retried_per_batch(monkeypatch: pytest.MonkeyPatch) -> None:
    provider = SentenceTransformerEmbedder(
        model_id="BAAI/bge-small-en-v1.5",
        hub_id="BAAI/bge-small-en-v1.5",
        dim=384,
        max_tokens=512,
        retry=RetryPolicy(max_attempts=2, base_delay=0.0, sleep=lambda _: None),
    )
    attempts: list[int] = []

    def failing_load():
        attempts.append(1)
        raise OSError("offline")

    monkeypatch.setattr(provider, "_load", failing_load)
    for _ in range(3):
        with pytest.raises(EmbeddingUnavailable) as excinfo:
            provider.embed_batch(["anything"])
        assert "download of embedding model" in str(excinfo.value)
    assert len(attempts) == 2
