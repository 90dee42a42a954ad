"""Search orchestration."""

from __future__ import annotations

import time
from pathlib import Path

from codeseek.core.config import Settings
from codeseek.core.errors import NotIndexedError
from codeseek.core.logging import get_logger
from codeseek.core.metrics import SEARCH_LATENCY
from codeseek.ingest.discovery import collect_paths, has_nul_byte
from codeseek.ingest.embeddings import EmbeddingProvider, load_embedder
from codeseek.ingest.indexer import NO_MODEL
from codeseek.models.dto import SearchMode, SearchOptions, SearchResponse, SearchResult, SearchSummary
from codeseek.retrieval import regex
from codeseek.retrieval.candidates import Candidate, CandidateSource, ranked
from codeseek.retrieval.hybrid import fuse
from codeseek.retrieval.lexical import bm25_scores, score_lexical
from codeseek.retrieval.rerank import Reranker
from codeseek.retrieval.vector_index import score_semantic
from codeseek.store.sidecar import SidecarStore, find_index_root

logger = get_logger(__name__)


class SearchEngine:
    """Stateless per query; owns the embedding provider and reranker handles."""

    def __init__(
        self,
        settings: Settings,
        provider: EmbeddingProvider | None = None,
        reranker: Reranker | None = None,
    ) -> None:
        self.settings = settings
        self.provider = provider
        self.reranker = reranker

    def search(self, options: SearchOptions) -> SearchResponse:
        """Run ``options`` against every target path and merge the per-path answers."""
        start_time = time.perf_counter()
        response = SearchResponse()
        for path in options.paths:
            response = _merge(response, self._search_path(path, options))
        SEARCH_LATENCY.labels(mode=options.mode.value).observe(time.perf_counter() - start_time)
        return response

    # ------------------------------------------------------------------

    def _search_path(self, path: Path, options: SearchOptions) -> SearchResponse:
        start_time = time.perf_counter()
        closest: SearchResult | None = None
        mode = options.mode
        if mode is SearchMode.REGEX:
            files = self._files(path, options)
            results = regex.search_files(files, options)
        elif mode is SearchMode.LEXICAL:
            files = self._files(path, options)
            results = self._lexical(files, options)
        elif mode is SearchMode.SEMANTIC:
            store = self._index_for(path)
            files = self._files(path, options)
            results, closest = self._semantic(store, files, options)
        elif mode is SearchMode.HYBRID:
            store = self._index_for(path)
            files = self._files(path, options)
            results, closest = self._hybrid(store, files, options)
        else:  # pragma: no cover - SearchMode is closed
            raise ValueError(f"Unsupported search mode: {mode}")

        if options.topk is not None and not mode.needs_index:
            results = results[: options.topk]
        return _shape(results, files, closest, options, time.perf_counter() - start_time)

    def _lexical(self, files: list[Path], options: SearchOptions) -> list[SearchResult]:
        candidates = CandidateSource(self.settings).chunk_candidates(files)
        return [candidate.to_result() for candidate in ranked(score_lexical(options.pattern, candidates))]

    def _semantic(
        self,
        store: SidecarStore,
        files: list[Path],
        options: SearchOptions,
    ) -> tuple[list[SearchResult], SearchResult | None]:
        provider = self._provider_for(options, store)
        candidates = self._embedded_candidates(store, files, provider)
        scored = ranked(score_semantic(provider.embed(options.pattern), candidates))
        threshold = options.threshold if options.threshold is not None else self.settings.threshold
        return self._select(scored, threshold, options)

    def _hybrid(
        self,
        store: SidecarStore,
        files: list[Path],
        options: SearchOptions,
    ) -> tuple[list[SearchResult], SearchResult | None]:
        provider = self._provider_for(options, store)
        candidates = self._embedded_candidates(store, files, provider)
        candidates = score_semantic(provider.embed(options.pattern), candidates)
        for candidate, lexical in zip(candidates, bm25_scores(options.pattern, candidates)):
            candidate.lexical = lexical
        fused = fuse(
            candidates,
            method=self.settings.hybrid_fusion,
            semantic_weight=self.settings.hybrid_weight_semantic,
        )
        scored = ranked(candidate for candidate in fused if candidate.score > 0)
        return self._select(scored, options.threshold, options)

    def _embedded_candidates(
        self,
        store: SidecarStore,
        files: list[Path],
        provider: EmbeddingProvider,
    ) -> list[Candidate]:
        candidates = CandidateSource(self.settings).embedded_candidates(store, files, provider.model_id)
        if files and not candidates:
            logger.info("No chunks embedded with %s under %s", provider.model_id, store.root)
            raise NotIndexedError(store.root, model=provider.model_id)
        return candidates

    def _select(
        self,
        scored: list[Candidate],
        threshold: float | None,
        options: SearchOptions,
    ) -> tuple[list[SearchResult], SearchResult | None]:
        topk = options.topk or self.settings.topk
        passing = scored if threshold is None else [item for item in scored if item.score >= threshold]
        if not passing:
            return [], scored[0].to_result() if scored else None
        results = [candidate.to_result() for candidate in passing[:topk]]
        if options.rerank:
            results = self._reranker_for(options).rerank(options.pattern, results)
        return results, None

    def _files(self, path: Path, options: SearchOptions) -> list[Path]:
        return collect_paths(
            [path],
            excludes=options.exclude,
            default_excludes=() if options.no_default_excludes else self.settings.default_excludes,
            respect_ignore=options.respect_ignore,
            recursive=options.recursive,
            is_binary=has_nul_byte if options.mode is SearchMode.REGEX else None,
        )

    def _index_for(self, path: Path) -> SidecarStore:
        root = find_index_root(path)
        if root is None:
            raise NotIndexedError(path)
        return SidecarStore(root)

    def _provider_for(self, options: SearchOptions, store: SidecarStore) -> EmbeddingProvider:
        name = options.model
        if name is None and self.provider is not None:
            return self.provider
        if name is None:
            name = _index_model(store) or self.settings.embedding_model
        if self.provider is None or self.provider.model_id != name:
            self.provider = load_embedder(name, self.settings)
        return self.provider

    def _reranker_for(self, options: SearchOptions) -> Reranker:
        name = options.rerank_model or self.settings.rerank_model
        if self.reranker is None or self.reranker.model_name != name:
            self.reranker = Reranker(name)
        return self.reranker


def _index_model(store: SidecarStore) -> str | None:
    """Model recorded by the first readable entry of an index."""
    for _, entry in store.iter_entries():
        if entry is not None and entry.fingerprint.model_id != NO_MODEL:
            return entry.fingerprint.model_id
    return None


def _shape(
    results: list[SearchResult],
    files: list[Path],
    closest: SearchResult | None,
    options: SearchOptions,
    duration: float,
) -> SearchResponse:
    """Apply file-level filters after ranking and build the per-path summary."""
    matched: list[Path] = []
    for result in results:
        if result.file not in matched:
            matched.append(result.file)
    matched_set = set(matched)
    unmatched = [file for file in files if file not in matched_set]

    shaped = results
    if options.files_with_matches:
        seen: set[Path] = set()
        shaped = []
        for result in results:
            if result.file not in seen:
                seen.add(result.file)
                shaped.append(result)
    elif options.files_without_matches:
        shaped = []

    return SearchResponse(
        results=shaped,
        summary=SearchSummary(
            total_matches=len(results),
            files_with_matches=len(matched),
            files_searched=len(files),
            duration=duration,
        ),
        matched_files=matched,
        unmatched_files=unmatched,
        closest_below_threshold=closest,
    )


def _merge(left: SearchResponse, right: SearchResponse) -> SearchResponse:
    closest = left.closest_below_threshold
    candidate = right.closest_below_threshold
    if candidate is not None and (closest is None or candidate.score > closest.score):
        closest = candidate
    return SearchResponse(
        results=[*left.results, *right.results],
        summary=left.summary.merge(right.summary),
        matched_files=[*left.matched_files, *right.matched_files],
        unmatched_files=[*left.unmatched_files, *right.unmatched_files],
        closest_below_threshold=closest,
    )


__all__ = ["SearchEngine"]
