"""Per-file sidecar persistence under ``<root>/.ck``.

Every indexed source file owns exactly one sidecar, ``<root>/.ck/<relpath>.ck``,
holding its fingerprint, chunks and optional embeddings. Sidecars are replaced
atomically so concurrent readers see either the old or the new entry.
"""

from __future__ import annotations

import dataclasses
import os
import shutil
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Iterator

import orjson

from codeseek.core.config import INDEX_DIR_NAME
from codeseek.core.errors import FileAccessError
from codeseek.core.logging import get_logger
from codeseek.models.entities import SCHEMA_VERSION, Chunk, Fingerprint, IndexStats, SidecarEntry
from codeseek.utils.hashing import sha256_bytes, sha256_file
from codeseek.utils.time import from_ns

logger = get_logger(__name__)

SIDECAR_SUFFIX = ".ck"


class Freshness(str, Enum):
    FRESH = "fresh"
    # Stat changed but content did not: reusable once the fingerprint is refreshed.
    TOUCHED = "touched"
    STALE = "stale"

    @property
    def usable(self) -> bool:
        return self is not Freshness.STALE


class SidecarStore:
    """Read, write and sweep the sidecars of one index root."""

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser().resolve()
        self.index_dir = self.root / INDEX_DIR_NAME

    def exists(self) -> bool:
        return self.index_dir.is_dir()

    def sidecar_path(self, source: Path) -> Path:
        relative = self._relative(source)
        return self.index_dir / f"{relative.as_posix()}{SIDECAR_SUFFIX}"

    def source_path(self, sidecar: Path) -> Path:
        relative = sidecar.relative_to(self.index_dir).as_posix()
        return self.root / relative[: -len(SIDECAR_SUFFIX)]

    def read(self, source: Path) -> SidecarEntry | None:
        """Load the entry for ``source``; anything unreadable is treated as absent."""
        return self._read_sidecar(self.sidecar_path(source))

    def write(self, source: Path, entry: SidecarEntry) -> Path:
        target = self.sidecar_path(source)
        payload = orjson.dumps(_encode_entry(entry))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        except OSError as exc:
            raise FileAccessError(target, "write", str(exc)) from exc
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, target)
        except OSError as exc:
            _discard(Path(tmp_name))
            raise FileAccessError(target, "write", str(exc)) from exc
        except BaseException:
            _discard(Path(tmp_name))
            raise
        logger.debug("Wrote sidecar %s (%s chunks)", target, len(entry.chunks))
        return target

    def remove(self, source: Path) -> bool:
        target = self.sidecar_path(source)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise FileAccessError(target, "remove", str(exc)) from exc
        self._prune_empty_dirs(target.parent)
        return True

    def compute_fingerprint(self, source: Path, model_id: str, data: bytes | None = None) -> Fingerprint:
        try:
            stat = source.stat()
            content_hash = sha256_bytes(data) if data is not None else sha256_file(source)
        except OSError as exc:
            raise FileAccessError(source, "read", str(exc)) from exc
        return Fingerprint(content_hash=content_hash, size=stat.st_size, mtime=stat.st_mtime_ns, model_id=model_id)

    def check(
        self,
        entry: SidecarEntry | None,
        source: Path,
        model_id: str,
        verify_content: bool = False,
    ) -> Freshness:
        """Decide whether ``entry`` still describes ``source`` as indexed with ``model_id``."""
        if entry is None or entry.fingerprint.model_id != model_id:
            return Freshness.STALE
        try:
            stat = source.stat()
        except OSError:
            return Freshness.STALE
        recorded = entry.fingerprint
        same_stat = recorded.size == stat.st_size and recorded.mtime == stat.st_mtime_ns
        if same_stat and not verify_content:
            return Freshness.FRESH
        if recorded.size != stat.st_size:
            return Freshness.STALE
        try:
            content_hash = sha256_file(source)
        except OSError:
            return Freshness.STALE
        if content_hash != recorded.content_hash:
            return Freshness.STALE
        return Freshness.FRESH if same_stat else Freshness.TOUCHED

    def touch(self, source: Path, entry: SidecarEntry, model_id: str) -> SidecarEntry:
        """Rewrite an unchanged entry with the file's current fingerprint."""
        refreshed = dataclasses.replace(entry, fingerprint=self.compute_fingerprint(source, model_id))
        self.write(source, refreshed)
        return refreshed

    def iter_entries(self) -> Iterator[tuple[Path, SidecarEntry | None]]:
        """Yield ``(source path, entry)`` for every sidecar in path order."""
        for sidecar in self._iter_sidecars():
            yield self.source_path(sidecar), self._read_sidecar(sidecar)

    def fresh_entries(self, sources: Iterable[Path], model_id: str) -> Iterator[tuple[Path, SidecarEntry]]:
        """Entries that exist and match both the current file content and ``model_id``."""
        for source in sources:
            entry = self.read(source)
            if entry is not None and self.check(entry, source, model_id).usable:
                yield source, entry

    def orphans(self) -> list[Path]:
        return [self.source_path(sidecar) for sidecar in self._iter_sidecars() if not self.source_path(sidecar).is_file()]

    def stats(self) -> IndexStats:
        stats = IndexStats()
        latest = 0
        for sidecar in self._iter_sidecars():
            try:
                stat = sidecar.stat()
            except OSError:
                continue
            stats.index_size_bytes += stat.st_size
            latest = max(latest, stat.st_mtime_ns)
            source = self.source_path(sidecar)
            if not source.is_file():
                stats.orphaned_files.append(source)
            entry = self._read_sidecar(sidecar)
            if entry is None:
                continue
            stats.total_files += 1
            stats.total_chunks += len(entry.chunks)
        stats.last_modified = from_ns(latest) if latest else None
        return stats

    def clean(self) -> bool:
        if not self.index_dir.exists():
            return False
        try:
            shutil.rmtree(self.index_dir)
        except OSError as exc:
            raise FileAccessError(self.index_dir, "remove", str(exc)) from exc
        logger.info("Removed index %s", self.index_dir)
        return True

    def clean_orphans(self) -> int:
        removed = 0
        for sidecar in list(self._iter_sidecars()):
            if self.source_path(sidecar).is_file():
                continue
            try:
                sidecar.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise FileAccessError(sidecar, "remove", str(exc)) from exc
            removed += 1
            self._prune_empty_dirs(sidecar.parent)
        if removed:
            logger.info("Removed %s orphaned sidecars from %s", removed, self.index_dir)
        return removed

    # Internal helpers -------------------------------------------------

    def _relative(self, source: Path) -> Path:
        resolved = source.expanduser()
        resolved = resolved if resolved.is_absolute() else self.root / resolved
        for candidate in (Path(os.path.normpath(resolved)), resolved.resolve()):
            try:
                return candidate.relative_to(self.root)
            except ValueError:
                continue
        raise FileAccessError(source, "index", f"outside of index root {self.root}")

    def _iter_sidecars(self) -> Iterator[Path]:
        if not self.index_dir.is_dir():
            return iter(())
        return iter(sorted(path for path in self.index_dir.rglob(f"*{SIDECAR_SUFFIX}") if path.is_file()))

    def _read_sidecar(self, sidecar: Path) -> SidecarEntry | None:
        try:
            raw = sidecar.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Cannot read sidecar %s: %s", sidecar, exc)
            return None
        try:
            return _decode_entry(orjson.loads(raw))
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring unreadable sidecar %s: %s", sidecar, exc)
            return None

    def _prune_empty_dirs(self, directory: Path) -> None:
        while directory != self.index_dir and self.index_dir in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent


def find_index_root(path: Path) -> Path | None:
    """Nearest directory at or above ``path`` that holds an index."""
    current = path.expanduser().resolve()
    if not current.is_dir():
        current = current.parent
    for candidate in (current, *current.parents):
        if (candidate / INDEX_DIR_NAME).is_dir():
            return candidate
    return None


def _encode_entry(entry: SidecarEntry) -> dict[str, Any]:
    return {
        "schema_version": entry.schema_version,
        "fingerprint": entry.fingerprint.to_dict(),
        "chunks": [chunk.to_dict() for chunk in entry.chunks],
        "embeddings": [list(vector) for vector in entry.embeddings] if entry.embeddings is not None else None,
    }


def _decode_entry(data: Any) -> SidecarEntry:
    if not isinstance(data, dict):
        raise TypeError("sidecar payload is not an object")
    version = data.get("schema_version")
    if version != SCHEMA_VERSION:
        raise ValueError(f"schema version {version!r} != {SCHEMA_VERSION}")
    embeddings = data.get("embeddings")
    return SidecarEntry(
        fingerprint=Fingerprint.from_dict(data["fingerprint"]),
        chunks=tuple(Chunk.from_dict(item) for item in data["chunks"]),
        embeddings=tuple(tuple(float(value) for value in vector) for vector in embeddings)
        if embeddings is not None
        else None,
        schema_version=version,
    )


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


__all__ = ["Freshness", "SidecarStore", "find_index_root", "SIDECAR_SUFFIX"]
