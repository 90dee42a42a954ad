"""Reranking helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from rapidfuzz import fuzz

from codeseek.core.logging import get_logger
from codeseek.models.dto import SearchResult

if TYPE_CHECKING:  # pragma: no cover
    from sentence_transformers import CrossEncoder

logger = get_logger(__name__)

FUZZY_MODEL = "fuzzy"


class Reranker:
    """Wrapper around CrossEncoder with a deterministic fuzzy fallback."""

    def __init__(self, model_name: str, device: str | None = None) -> None:
        self.model_name = model_name
        self.device = device
        self._model: CrossEncoder | None = None
        self._loaded = False

    @property
    def backend(self) -> str:
        self._load()
        return "cross-encoder" if self._model is not None else FUZZY_MODEL

    def rerank(self, query: str, results: Sequence[SearchResult]) -> list[SearchResult]:
        """Re-score ``results`` and re-sort them; the set itself never changes."""
        if not results:
            return []
        self._load()
        if self._model is not None:
            raw = self._model.predict([[query, result.preview] for result in results], convert_to_numpy=True)
            scores = [float(score) for score in raw]
        else:
            scores = [fuzz.token_set_ratio(query, result.preview) / 100.0 for result in results]
        rescored = [result.model_copy(update={"score": score}) for result, score in zip(results, scores)]
        return sorted(rescored, key=lambda item: (-item.score, item.file.as_posix(), item.line_start))

    def _load(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if self.model_name == FUZZY_MODEL:
            return
        from sentence_transformers import CrossEncoder

        try:
            self._model = CrossEncoder(self.model_name, device=self.device)
        except Exception as exc:  # pragma: no cover - requires network
            logger.warning("Failed to load rerank model '%s': %s; using fuzzy reranker", self.model_name, exc)
            self._model = None


__all__ = ["Reranker", "FUZZY_MODEL"]
