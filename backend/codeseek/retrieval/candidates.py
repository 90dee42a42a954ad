"""Chunk candidates shared by the ranked search modes."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from codeseek.core.config import Settings
from codeseek.core.errors import ChunkError
from codeseek.core.logging import get_logger
from codeseek.ingest.chunker import ChunkConfig, chunk
from codeseek.models.dto import SearchResult
from codeseek.models.entities import Chunk
from codeseek.store.sidecar import SidecarStore, find_index_root

logger = get_logger(__name__)


@dataclass(slots=True)
class Candidate:
    file: Path
    chunk: Chunk
    embedding: tuple[float, ...] | None = None
    lexical: float = 0.0
    semantic: float = 0.0
    score: float = 0.0

    @property
    def identifier(self) -> tuple[str, int]:
        return self.file.as_posix(), self.chunk.span.line_start

    @property
    def sort_key(self) -> tuple[float, str, int]:
        return (-self.score, self.file.as_posix(), self.chunk.span.line_start)

    def to_result(self) -> SearchResult:
        symbol = self.chunk.symbol
        return SearchResult(
            file=self.file,
            line_start=self.chunk.span.line_start,
            line_end=self.chunk.span.line_end,
            preview=self.chunk.text,
            score=self.score,
            symbol=f"{symbol.kind} {symbol.name}" if symbol else None,
        )


def ranked(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Descending score; ties by file path then first line."""
    return sorted(candidates, key=lambda item: item.sort_key)


class CandidateSource:
    """Resolve files to chunks, preferring sidecars that are still valid."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._stores: dict[Path, SidecarStore | None] = {}

    def store_for(self, file: Path) -> SidecarStore | None:
        directory = file.parent
        if directory not in self._stores:
            root = find_index_root(directory)
            self._stores[directory] = SidecarStore(root) if root is not None else None
        return self._stores[directory]

    def chunk_candidates(self, files: Iterable[Path]) -> list[Candidate]:
        """Fresh sidecar chunks where available, otherwise chunks computed on the fly."""
        config = ChunkConfig(max_tokens=self.settings.max_tokens, overlap_tokens=self.settings.overlap_tokens)
        candidates: list[Candidate] = []
        for file in files:
            chunks = self._indexed_chunks(file)
            if chunks is None:
                try:
                    chunks = chunk(file.read_bytes(), file, config)
                except (ChunkError, OSError) as exc:
                    logger.debug("Skipping %s for lexical search: %s", file, exc)
                    continue
            candidates.extend(Candidate(file=file, chunk=item) for item in chunks)
        return candidates

    def embedded_candidates(self, store: SidecarStore, files: Iterable[Path], model_id: str) -> list[Candidate]:
        """Chunks of fresh entries embedded with ``model_id``; nothing else qualifies."""
        candidates: list[Candidate] = []
        for file, entry in store.fresh_entries(files, model_id):
            if entry.embeddings is None:
                continue
            candidates.extend(
                Candidate(file=file, chunk=item, embedding=vector)
                for item, vector in zip(entry.chunks, entry.embeddings)
            )
        return candidates

    def _indexed_chunks(self, file: Path) -> tuple[Chunk, ...] | None:
        store = self.store_for(file)
        if store is None:
            return None
        entry = store.read(file)
        if entry is None:
            return None
        if not store.check(entry, file, entry.fingerprint.model_id).usable:
            return None
        return entry.chunks


__all__ = ["Candidate", "CandidateSource", "ranked"]
