"""BM25 ranking over chunk text."""

from __future__ import annotations

from typing import Sequence

from rank_bm25 import BM25Okapi

from codeseek.retrieval.candidates import Candidate
from codeseek.utils.text import tokenize


def bm25_scores(query: str, candidates: Sequence[Candidate]) -> list[float]:
    """BM25 weight of ``query`` for every candidate, in input order."""
    if not candidates:
        return []
    corpus_tokens = [tokenize(candidate.chunk.text) for candidate in candidates]
    query_tokens = tokenize(query)
    if not query_tokens or not any(corpus_tokens):
        return [0.0] * len(candidates)
    model = BM25Okapi(corpus_tokens)
    return [float(score) for score in model.get_scores(query_tokens)]


def score_lexical(query: str, candidates: Sequence[Candidate]) -> list[Candidate]:
    """Attach BM25 weights; candidates with no positive weight are dropped."""
    matched: list[Candidate] = []
    for candidate, score in zip(candidates, bm25_scores(query, candidates)):
        candidate.lexical = score
        if score > 0:
            candidate.score = score
            matched.append(candidate)
    return matched


__all__ = ["bm25_scores", "score_lexical"]
