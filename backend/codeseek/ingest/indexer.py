"""Incremental index maintenance.

Worker threads read and chunk files; the calling thread owns the single
embedding provider, embeds chunk batches and publishes sidecars.
"""

from __future__ import annotations

import dataclasses
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

from codeseek.core.config import Settings
from codeseek.core.errors import ChunkError, EmbeddingUnavailable, FileAccessError, IndexingFailed
from codeseek.core.logging import get_logger
from codeseek.core.metrics import CHUNKS_CREATED, FILES_PROCESSED, INDEX_DURATION, INDEX_SIZE
from codeseek.ingest.chunker import ChunkConfig, chunk, embedding_inputs
from codeseek.ingest.discovery import discover_files
from codeseek.ingest.embeddings import EmbeddingProvider, load_embedder
from codeseek.ingest.languages import detect_language
from codeseek.ingest.progress import CancellationToken, ChunkProgress, FileProgress, IndexObserver, NullObserver
from codeseek.models.entities import Chunk, IndexStats, SidecarEntry
from codeseek.store.sidecar import Freshness, SidecarStore
from codeseek.utils.text import preview_line

logger = get_logger(__name__)

NO_MODEL = "none"


@dataclass(slots=True)
class _Prepared:
    """Outcome of the worker half; rebuilt entries carry no embeddings yet."""

    path: Path
    status: str
    entry: SidecarEntry | None = None
    error: IndexingFailed | None = None


@dataclass(slots=True, frozen=True)
class ChunkInspection:
    line_start: int
    line_end: int
    tokens: int
    symbol: str | None
    preview: str


@dataclass(slots=True, frozen=True)
class FileInspection:
    path: Path
    language: str
    size: int
    chunks: tuple[ChunkInspection, ...]

    @property
    def total_tokens(self) -> int:
        return sum(item.tokens for item in self.chunks)


class Indexer:
    """Bring the sidecars under a root in line with the files on disk."""

    def __init__(
        self,
        settings: Settings,
        provider: EmbeddingProvider | None = None,
        workers: int | None = None,
    ) -> None:
        self.settings = settings
        self.provider = provider
        self.workers = workers or settings.index_workers

    def update(
        self,
        root: Path,
        force_rebuild: bool = False,
        excludes: Sequence[str] = (),
        model: str | None = None,
        observer: IndexObserver | None = None,
        cancel: CancellationToken | None = None,
        verify_content: bool | None = None,
    ) -> IndexStats:
        started = time.perf_counter()
        root = root.expanduser().resolve()
        if not root.is_dir():
            raise FileAccessError(root, "index", "not a directory")
        provider = self._provider_for(model)
        files = discover_files(root, excludes=excludes, default_excludes=self.settings.default_excludes)
        logger.info("Indexing %s files under %s with model %s", len(files), root, _model_id(provider))
        stats = self._process(
            SidecarStore(root),
            files,
            provider=provider,
            force_rebuild=force_rebuild,
            observer=observer or NullObserver(),
            cancel=cancel or CancellationToken(),
            verify_content=self.settings.verify_hashes if verify_content is None else verify_content,
        )
        if files and stats.files_failed == len(files):
            first = stats.failures[0]
            raise IndexingFailed(
                root,
                f"none of {len(files)} files could be indexed; first error: {first.reason}",
                suggestion="Check file permissions and that the files are UTF-8 text",
            )
        self._fill_totals(SidecarStore(root), stats)
        INDEX_DURATION.observe(time.perf_counter() - started)
        INDEX_SIZE.set(stats.total_chunks)
        logger.info(
            "Index update finished: %s indexed, %s skipped, %s failed",
            stats.files_indexed,
            stats.files_skipped,
            stats.files_failed,
        )
        return stats

    def index_file(
        self,
        root: Path,
        path: Path,
        model: str | None = None,
        force_rebuild: bool = False,
    ) -> IndexStats:
        """Add or refresh the sidecar of one file; failure is raised, not recorded."""
        root = root.expanduser().resolve()
        target = _absolute(root, path)
        if not target.is_file():
            raise FileAccessError(target, "index", "no such file")
        store = SidecarStore(root)
        stats = self._process(
            store,
            [target],
            provider=self._provider_for(model),
            force_rebuild=force_rebuild,
            observer=NullObserver(),
            cancel=CancellationToken(),
            verify_content=self.settings.verify_hashes,
        )
        if stats.failures:
            raise stats.failures[0]
        self._fill_totals(store, stats)
        return stats

    def remove_file(self, root: Path, path: Path) -> bool:
        root = root.expanduser().resolve()
        removed = SidecarStore(root).remove(_absolute(root, path))
        if removed:
            logger.info("Removed sidecar for %s", path)
        return removed

    def inspect_file(self, path: Path) -> FileInspection:
        """Chunk one file without touching the index and report token estimates."""
        path = path.expanduser().resolve()
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise FileAccessError(path, "read", str(exc)) from exc
        config = self._chunk_config(self.provider)
        chunks = chunk(data, path, config)
        return FileInspection(
            path=path,
            language=detect_language(path).value,
            size=len(data),
            chunks=tuple(
                ChunkInspection(
                    line_start=item.span.line_start,
                    line_end=item.span.line_end,
                    tokens=config.estimate_tokens(item.text),
                    symbol=f"{item.symbol.kind} {item.symbol.name}" if item.symbol else None,
                    preview=preview_line(item.text),
                )
                for item in chunks
            ),
        )

    # Internal helpers -------------------------------------------------

    def _provider_for(self, model: str | None) -> EmbeddingProvider | None:
        if model is None or model == _model_id(self.provider):
            return self.provider
        if model == NO_MODEL:
            return None
        self.provider = load_embedder(model, self.settings)
        return self.provider

    def _chunk_config(self, provider: EmbeddingProvider | None) -> ChunkConfig:
        if provider is None:
            return ChunkConfig(max_tokens=self.settings.max_tokens, overlap_tokens=self.settings.overlap_tokens)
        return provider.chunk_config(self.settings.overlap_tokens, self.settings.max_tokens)

    def _process(
        self,
        store: SidecarStore,
        files: Sequence[Path],
        provider: EmbeddingProvider | None,
        force_rebuild: bool,
        observer: IndexObserver,
        cancel: CancellationToken,
        verify_content: bool,
    ) -> IndexStats:
        stats = IndexStats()
        model_id = _model_id(provider)
        config = self._chunk_config(provider)
        total = len(files)
        window = max(self.workers * 4, 1)
        pending: deque[Future[_Prepared]] = deque()
        remaining = iter(files)
        pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="codeseek-index")
        try:
            for path in _take(remaining, window):
                pending.append(
                    pool.submit(self._prepare, store, path, model_id, config, force_rebuild, verify_content)
                )
            index = 0
            while pending:
                cancel.raise_if_cancelled(index)
                prepared = pending.popleft().result()
                for path in _take(remaining, 1):
                    pending.append(
                        pool.submit(self._prepare, store, path, model_id, config, force_rebuild, verify_content)
                    )
                index += 1
                status = self._publish(store, prepared, provider, config, model_id, stats, observer, cancel)
                FILES_PROCESSED.labels(outcome=status).inc()
                observer.on_file_progress(FileProgress(path=prepared.path, index=index, total=total, status=status))
        finally:
            pool.shutdown(wait=True, cancel_futures=True)
        return stats

    def _prepare(
        self,
        store: SidecarStore,
        path: Path,
        model_id: str,
        config: ChunkConfig,
        force_rebuild: bool,
        verify_content: bool,
    ) -> _Prepared:
        try:
            if not force_rebuild:
                entry = store.read(path)
                freshness = store.check(entry, path, model_id, verify_content=verify_content)
                if freshness.usable and _lacks_embeddings(entry, model_id):
                    freshness = Freshness.STALE
                if freshness is Freshness.FRESH:
                    return _Prepared(path=path, status="skipped", entry=entry)
                if freshness is Freshness.TOUCHED:
                    return _Prepared(path=path, status="touched", entry=entry)
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise FileAccessError(path, "read", str(exc)) from exc
            fingerprint = store.compute_fingerprint(path, model_id, data=data)
            chunks = chunk(data, path, config)
        except (ChunkError, FileAccessError) as exc:
            return _Prepared(path=path, status="failed", error=IndexingFailed(path, exc.reason))
        return _Prepared(path=path, status="rebuild", entry=SidecarEntry(fingerprint=fingerprint, chunks=tuple(chunks)))

    def _publish(
        self,
        store: SidecarStore,
        prepared: _Prepared,
        provider: EmbeddingProvider | None,
        config: ChunkConfig,
        model_id: str,
        stats: IndexStats,
        observer: IndexObserver,
        cancel: CancellationToken,
    ) -> str:
        entry = prepared.entry
        if prepared.error is not None or entry is None:
            failure = prepared.error or IndexingFailed(prepared.path, "nothing was prepared for this file")
            logger.warning("%s", failure)
            stats.files_failed += 1
            stats.failures.append(failure)
            return "failed"
        if prepared.status == "touched":
            try:
                store.touch(prepared.path, entry, model_id)
            except FileAccessError as exc:
                logger.warning("Could not refresh fingerprint of %s: %s", prepared.path, exc)
        if prepared.status != "rebuild":
            stats.files_skipped += 1
            return "skipped"

        embeddings = self._embed(prepared.path, entry.chunks, provider, config, observer, cancel, stats.files_indexed)
        entry = dataclasses.replace(entry, embeddings=embeddings)
        try:
            store.write(prepared.path, entry)
        except FileAccessError as exc:
            stats.files_failed += 1
            stats.failures.append(IndexingFailed(prepared.path, exc.reason, suggestion="Check write access to the index"))
            return "failed"
        stats.files_indexed += 1
        stats.chunks_created += len(entry.chunks)
        CHUNKS_CREATED.inc(len(entry.chunks))
        return "indexed"

    def _embed(
        self,
        path: Path,
        chunks: Sequence[Chunk],
        provider: EmbeddingProvider | None,
        config: ChunkConfig,
        observer: IndexObserver,
        cancel: CancellationToken,
        processed: int,
    ) -> tuple[tuple[float, ...], ...] | None:
        if provider is None:
            return None
        inputs = embedding_inputs(chunks, config)
        batch_size = self.settings.embed_batch_size
        vectors: list[tuple[float, ...]] = []
        try:
            for offset in range(0, len(inputs), batch_size):
                cancel.raise_if_cancelled(processed)
                batch = inputs[offset : offset + batch_size]
                embedded = provider.embed_batch(batch)
                if len(embedded) != len(batch):
                    raise EmbeddingUnavailable(f"expected {len(batch)} vectors, got {len(embedded)}")
                vectors.extend(tuple(vector) for vector in embedded)
                observer.on_chunk_progress(ChunkProgress(path=path, embedded=len(vectors), total=len(inputs)))
        except EmbeddingUnavailable as exc:
            logger.warning("Indexing %s without embeddings: %s", path, exc.reason)
            return None
        return tuple(vectors)

    def _fill_totals(self, store: SidecarStore, stats: IndexStats) -> None:
        totals = store.stats()
        stats.total_files = totals.total_files
        stats.total_chunks = totals.total_chunks
        stats.index_size_bytes = totals.index_size_bytes
        stats.last_modified = totals.last_modified
        stats.orphaned_files = totals.orphaned_files


def _lacks_embeddings(entry: SidecarEntry | None, model_id: str) -> bool:
    """Entry written during an embedding outage; rebuilt once the model answers again."""
    return entry is not None and entry.embeddings is None and model_id != NO_MODEL


def _model_id(provider: EmbeddingProvider | None) -> str:
    return provider.model_id if provider is not None else NO_MODEL


def _absolute(root: Path, path: Path) -> Path:
    path = path.expanduser()
    return (path if path.is_absolute() else root / path).resolve()


def _take(iterator: Iterator[Path], count: int) -> list[Path]:
    items: list[Path] = []
    for item in iterator:
        items.append(item)
        if len(items) >= count:
            break
    return items


__all__ = ["Indexer", "FileInspection", "ChunkInspection", "NO_MODEL"]
