"""Filesystem watcher that keeps an index current file by file."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from codeseek.core.config import INDEX_DIR_NAME
from codeseek.core.errors import CodeseekError
from codeseek.core.logging import get_logger
from codeseek.ingest.discovery import DiscoveryFilter, is_binary_file
from codeseek.ingest.indexer import Indexer

logger = get_logger(__name__)

FileEventCallback = Callable[[str, Path], None]


class IndexEventHandler(FileSystemEventHandler):
    """Dispatch filesystem events to the indexer."""

    def __init__(
        self,
        root: Path,
        indexer: Indexer,
        excludes: tuple[str, ...] = (),
        on_event: FileEventCallback | None = None,
    ) -> None:
        super().__init__()
        self.root = root
        self.indexer = indexer
        self.filters = DiscoveryFilter(
            root=root,
            excludes=excludes,
            default_excludes=indexer.settings.default_excludes,
        )
        self.filters.load_rules(root)
        self.on_event = on_event
        self._lock = threading.Lock()

    def on_created(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        if not event.is_directory:
            self.reindex(Path(str(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        if not event.is_directory:
            self.reindex(Path(str(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        if not event.is_directory:
            self.forget(Path(str(event.src_path)))
            self.reindex(Path(str(event.dest_path)))

    def on_deleted(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        if not event.is_directory:
            self.forget(Path(str(event.src_path)))

    def reindex(self, path: Path) -> None:
        if not self._eligible(path) or not path.is_file() or is_binary_file(path):
            return
        with self._lock:
            try:
                self.indexer.index_file(self.root, path)
            except CodeseekError as exc:
                logger.warning("Re-index of %s failed: %s", path, exc)
                return
        self._notify("indexed", path)

    def forget(self, path: Path) -> None:
        if not self._eligible(path):
            return
        with self._lock:
            try:
                removed = self.indexer.remove_file(self.root, path)
            except CodeseekError as exc:
                logger.warning("Removing sidecar of %s failed: %s", path, exc)
                return
        if removed:
            self._notify("removed", path)

    def _eligible(self, path: Path) -> bool:
        try:
            relative = path.resolve().relative_to(self.root)
        except ValueError:
            return False
        if relative.parts and relative.parts[0] == INDEX_DIR_NAME:
            return False
        current = self.root
        for part in relative.parts[:-1]:
            current = current / part
            if self.filters.excluded(current, is_dir=True):
                return False
        return not self.filters.excluded(self.root / relative, is_dir=False)

    def _notify(self, action: str, path: Path) -> None:
        if self.on_event is not None:
            self.on_event(action, path)


class Watcher:
    """High-level wrapper around a watchdog observer for one index root."""

    def __init__(
        self,
        root: Path,
        indexer: Indexer,
        excludes: tuple[str, ...] = (),
        on_event: FileEventCallback | None = None,
    ) -> None:
        self.root = root.expanduser().resolve()
        self.handler = IndexEventHandler(self.root, indexer, excludes=excludes, on_event=on_event)
        self._observer: BaseObserver = Observer()
        self._lock = threading.Lock()
        self._started = False

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._observer.schedule(self.handler, str(self.root), recursive=True)
            self._observer.start()
            self._started = True
            logger.info("Watching %s", self.root)

    def stop(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._observer.stop()
            self._observer.join(timeout=5)
            self._started = False


__all__ = ["Watcher", "IndexEventHandler", "FileEventCallback"]
