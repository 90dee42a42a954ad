"""In-memory cosine index over candidate embeddings."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from codeseek.retrieval.candidates import Candidate


@dataclass(slots=True)
class VectorHit:
    position: int
    score: float


class VectorIndex:
    """Simple in-memory vector index using cosine similarity."""

    def __init__(self, dim: int) -> None:
        self.dim = dim
        self._vectors: list[list[float]] = []

    @property
    def size(self) -> int:
        return len(self._vectors)

    def add(self, vectors: Sequence[Sequence[float]]) -> None:
        for vector in vectors:
            if len(vector) != self.dim:
                raise ValueError("Vector dimension mismatch")
        self._vectors.extend(_unit(vector) for vector in vectors)

    def search(self, vector: Sequence[float], top_k: int | None = None) -> list[VectorHit]:
        """Hits by descending similarity; equal scores keep insertion order."""
        if not self._vectors:
            return []
        if len(vector) != self.dim:
            raise ValueError("Query vector dimension mismatch")
        query = _unit(vector)
        scores = [VectorHit(position=idx, score=_dot(stored, query)) for idx, stored in enumerate(self._vectors)]
        scores.sort(key=lambda hit: hit.score, reverse=True)
        limit = len(scores) if top_k is None else min(top_k, len(scores))
        return scores[:limit]


def score_semantic(query_vector: Sequence[float], candidates: Sequence[Candidate]) -> list[Candidate]:
    """Attach cosine similarity to every embedded candidate."""
    embedded = [candidate for candidate in candidates if candidate.embedding is not None]
    if not embedded:
        return []
    index = VectorIndex(dim=len(query_vector))
    usable = [candidate for candidate in embedded if len(candidate.embedding or ()) == index.dim]
    index.add([candidate.embedding for candidate in usable if candidate.embedding is not None])
    for hit in index.search(query_vector):
        candidate = usable[hit.position]
        candidate.semantic = hit.score
        candidate.score = hit.score
    return usable


def _unit(vector: Sequence[float]) -> list[float]:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return [0.0] * len(vector)
    return [value / norm for value in vector]


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


__all__ = ["VectorIndex", "VectorHit", "score_semantic"]
