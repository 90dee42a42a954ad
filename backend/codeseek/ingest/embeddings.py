"""Embedding providers.

A provider is an explicitly owned handle: the indexer and the search engine
receive the same instance instead of looking one up globally.
"""

from __future__ import annotations

import hashlib
import math
import re
import threading
from typing import TYPE_CHECKING, Any, Sequence

from codeseek.core.config import Settings
from codeseek.core.errors import EmbeddingUnavailable, ModelNotFound, NetworkError
from codeseek.core.logging import get_logger
from codeseek.core.retry import RetryPolicy
from codeseek.ingest.chunker import ChunkConfig
from codeseek.utils.text import approx_tokens

if TYPE_CHECKING:  # pragma: no cover
    from sentence_transformers import SentenceTransformer

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")

HASHED_MODEL = "hashed"

# Friendly name -> (hub id, dimension, max tokens).
KNOWN_MODELS: dict[str, tuple[str, int, int]] = {
    "BAAI/bge-small-en-v1.5": ("BAAI/bge-small-en-v1.5", 384, 512),
    "nomic-embed-text-v1.5": ("nomic-ai/nomic-embed-text-v1.5", 768, 8192),
    "jina-embeddings-v2-base-code": ("jinaai/jina-embeddings-v2-base-code", 768, 8192),
    "sentence-transformers/all-MiniLM-L6-v2": ("sentence-transformers/all-MiniLM-L6-v2", 384, 256),
    "BAAI/bge-base-en-v1.5": ("BAAI/bge-base-en-v1.5", 768, 512),
    "BAAI/bge-large-en-v1.5": ("BAAI/bge-large-en-v1.5", 1024, 512),
}

_TRUST_REMOTE_CODE = {"nomic-embed-text-v1.5", "jina-embeddings-v2-base-code"}


class EmbeddingProvider:
    """Text to fixed-dimension vector interface."""

    model_id: str = ""
    max_tokens: int = 512

    @property
    def dim(self) -> int:  # pragma: no cover - interface
        raise NotImplementedError

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:  # pragma: no cover - interface
        raise NotImplementedError

    def estimate_tokens(self, text: str) -> int:
        return approx_tokens(text)

    def chunk_config(self, overlap_tokens: int = 64, max_tokens: int | None = None) -> ChunkConfig:
        budget = min(max_tokens or self.max_tokens, self.max_tokens)
        return ChunkConfig(
            max_tokens=budget,
            overlap_tokens=min(overlap_tokens, max(budget - 1, 0)),
            estimate_tokens=self.estimate_tokens,
        )


class HashedEmbeddingModel(EmbeddingProvider):
    """Lightweight hashed embedding model with deterministic output."""

    def __init__(self, dim: int = 384, max_tokens: int = 512, model_id: str | None = None) -> None:
        if dim < 1:
            raise ValueError("dim must be >= 1")
        self._dim = dim
        self.max_tokens = max_tokens
        self.model_id = model_id or (HASHED_MODEL if dim == 384 else f"{HASHED_MODEL}-{dim}")

    @property
    def dim(self) -> int:
        return self._dim

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self._dim
            for token in _tokenize(text):
                vector[_hash_token(token, self._dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return vectors


class SentenceTransformerEmbedder(EmbeddingProvider):
    """Neural embeddings via sentence-transformers, loaded on first use."""

    def __init__(
        self,
        model_id: str,
        hub_id: str,
        dim: int,
        max_tokens: int,
        batch_size: int = 32,
        cache_dir: str | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.model_id = model_id
        self.hub_id = hub_id
        self.max_tokens = max_tokens
        self.batch_size = batch_size
        self.cache_dir = cache_dir
        self.retry = retry or RetryPolicy()
        self._dim = dim
        self._model: SentenceTransformer | None = None
        self._failure: str | None = None
        self._lock = threading.Lock()

    @property
    def dim(self) -> int:
        return self._dim

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        model = self._ensure_model()
        try:
            encoded = model.encode(
                list(texts),
                batch_size=self.batch_size,
                normalize_embeddings=True,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except Exception as exc:
            raise EmbeddingUnavailable(f"{self.model_id} failed to encode: {exc}") from exc
        return [[float(value) for value in row] for row in encoded]

    def _ensure_model(self) -> "SentenceTransformer":
        with self._lock:
            if self._model is None:
                if self._failure is not None:
                    raise EmbeddingUnavailable(self._failure)
                try:
                    self._model = self.retry.execute_with_retry(
                        self._load,
                        description=f"download of embedding model {self.model_id}",
                    )
                except NetworkError as exc:
                    self._failure = str(exc)
                    raise EmbeddingUnavailable(self._failure) from exc
                actual = self._model.get_sentence_embedding_dimension()
                if actual:
                    self._dim = int(actual)
            return self._model

    def _load(self) -> "SentenceTransformer":
        from sentence_transformers import SentenceTransformer

        logger.info("Loading embedding model %s", self.hub_id)
        kwargs: dict[str, Any] = {"trust_remote_code": self.model_id in _TRUST_REMOTE_CODE}
        if self.cache_dir:
            kwargs["cache_folder"] = self.cache_dir
        return SentenceTransformer(self.hub_id, **kwargs)


def available_models() -> list[str]:
    return [*KNOWN_MODELS, HASHED_MODEL, f"{HASHED_MODEL}-<dim>"]


def load_embedder(model: str | None, settings: Settings) -> EmbeddingProvider:
    """Resolve a model name to a provider; unknown names raise ModelNotFound."""
    name = model or settings.embedding_model
    if name == HASHED_MODEL:
        return HashedEmbeddingModel()
    if name.startswith(f"{HASHED_MODEL}-"):
        suffix = name[len(HASHED_MODEL) + 1 :]
        if suffix.isdigit() and int(suffix) > 0:
            return HashedEmbeddingModel(dim=int(suffix), model_id=name)
        raise ModelNotFound(name, available_models())
    if name not in KNOWN_MODELS:
        raise ModelNotFound(name, available_models())
    hub_id, dim, max_tokens = KNOWN_MODELS[name]
    return SentenceTransformerEmbedder(
        model_id=name,
        hub_id=hub_id,
        dim=dim,
        max_tokens=min(max_tokens, settings.max_tokens),
        batch_size=settings.embed_batch_size,
        cache_dir=str(settings.model_cache_dir) if settings.model_cache_dir else None,
        retry=RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            timeout=settings.model_timeout,
        ),
    )


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EmbeddingProvider",
    "HashedEmbeddingModel",
    "SentenceTransformerEmbedder",
    "KNOWN_MODELS",
    "HASHED_MODEL",
    "available_models",
    "load_embedder",
]
