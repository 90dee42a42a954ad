"""Hybrid search utilities."""

from __future__ import annotations

from typing import Sequence

from codeseek.retrieval.candidates import Candidate

RRF_K = 60.0


def weighted_fusion(candidates: Sequence[Candidate], semantic_weight: float = 0.6) -> list[Candidate]:
    """Min-max normalise both score kinds over the set, then blend them linearly."""
    lexical = _min_max([candidate.lexical for candidate in candidates])
    semantic = _min_max([candidate.semantic for candidate in candidates])
    for candidate, lex, sem in zip(candidates, lexical, semantic):
        candidate.score = semantic_weight * sem + (1.0 - semantic_weight) * lex
    return list(candidates)


def reciprocal_rank_fusion(candidates: Sequence[Candidate], weight: float = RRF_K) -> list[Candidate]:
    """Combine the lexical and semantic rankings using reciprocal rank fusion."""
    fused: dict[tuple[str, int], float] = {candidate.identifier: 0.0 for candidate in candidates}
    for score_of in (_lexical_score, _semantic_score):
        ordering = sorted(
            (candidate for candidate in candidates if score_of(candidate) > 0),
            key=lambda candidate: (-score_of(candidate), *candidate.identifier),
        )
        for rank, candidate in enumerate(ordering, start=1):
            fused[candidate.identifier] += 1.0 / (weight + rank)
    for candidate in candidates:
        candidate.score = fused[candidate.identifier]
    return list(candidates)


def fuse(candidates: Sequence[Candidate], method: str = "weighted", semantic_weight: float = 0.6) -> list[Candidate]:
    if method == "rrf":
        return reciprocal_rank_fusion(candidates)
    if method == "weighted":
        return weighted_fusion(candidates, semantic_weight=semantic_weight)
    raise ValueError(f"Unknown fusion method: {method}")


def _lexical_score(candidate: Candidate) -> float:
    return candidate.lexical


def _semantic_score(candidate: Candidate) -> float:
    return candidate.semantic


def _min_max(values: Sequence[float]) -> list[float]:
    if not values:
        return []
    low, high = min(values), max(values)
    if high == low:
        return [1.0 if high > 0 else 0.0 for _ in values]
    span = high - low
    return [(value - low) / span for value in values]


__all__ = ["weighted_fusion", "reciprocal_rank_fusion", "fuse", "RRF_K"]
