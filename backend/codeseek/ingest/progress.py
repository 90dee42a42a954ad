"""Progress reporting and cooperative cancellation for index updates."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path

from codeseek.core.errors import IndexCancelled


@dataclass(slots=True, frozen=True)
class FileProgress:
    path: Path
    index: int
    total: int
    status: str


@dataclass(slots=True, frozen=True)
class ChunkProgress:
    path: Path
    embedded: int
    total: int


class IndexObserver:
    """Receives progress callbacks from the indexer; the default does nothing."""

    def on_file_progress(self, progress: FileProgress) -> None:
        pass

    def on_chunk_progress(self, progress: ChunkProgress) -> None:
        pass


class NullObserver(IndexObserver):
    pass


class CancellationToken:
    """Thread-safe flag checked by the indexer between files and batches."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, processed: int) -> None:
        if self._event.is_set():
            raise IndexCancelled(processed)


__all__ = ["FileProgress", "ChunkProgress", "IndexObserver", "NullObserver", "CancellationToken"]
