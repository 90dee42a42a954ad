"""Retrieval orchestration components."""

from .vector_index import VectorIndex
from .search import SearchEngine
from .rerank import Reranker
from .hybrid import fuse, reciprocal_rank_fusion, weighted_fusion
from .lexical import bm25_scores

__all__ = [
    "VectorIndex",
    "SearchEngine",
    "Reranker",
    "fuse",
    "reciprocal_rank_fusion",
    "weighted_fusion",
    "bm25_scores",
]
