"""Internal dataclasses representing chunks, fingerprints, and persisted sidecars."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from codeseek.core.errors import IndexingFailed

SCHEMA_VERSION = 2


@dataclass(slots=True, frozen=True)
class Span:
    line_start: int
    line_end: int

    def __post_init__(self) -> None:
        if self.line_start < 1 or self.line_end < self.line_start:
            raise ValueError(f"invalid span {self.line_start}-{self.line_end}")


@dataclass(slots=True, frozen=True)
class Symbol:
    kind: str
    name: str


@dataclass(slots=True, frozen=True)
class Chunk:
    """Contiguous slice of a file; identified by its span."""

    text: str
    span: Span
    symbol: Symbol | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "text": self.text,
            "line_start": self.span.line_start,
            "line_end": self.span.line_end,
        }
        if self.symbol is not None:
            payload["symbol"] = {"kind": self.symbol.kind, "name": self.symbol.name}
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chunk":
        symbol_data = data.get("symbol")
        symbol = Symbol(kind=symbol_data["kind"], name=symbol_data["name"]) if symbol_data else None
        return cls(
            text=data["text"],
            span=Span(line_start=int(data["line_start"]), line_end=int(data["line_end"])),
            symbol=symbol,
        )


@dataclass(slots=True, frozen=True)
class Fingerprint:
    """Exact state a sidecar was built from; ``mtime`` is in nanoseconds."""

    content_hash: str
    size: int
    mtime: int
    model_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "content_hash": self.content_hash,
            "size": self.size,
            "mtime": self.mtime,
            "model_id": self.model_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Fingerprint":
        return cls(
            content_hash=str(data["content_hash"]),
            size=int(data["size"]),
            mtime=int(data["mtime"]),
            model_id=str(data["model_id"]),
        )


@dataclass(slots=True, frozen=True)
class SidecarEntry:
    """Persisted cache for one source file; replaced wholesale, never patched."""

    fingerprint: Fingerprint
    chunks: tuple[Chunk, ...]
    embeddings: tuple[tuple[float, ...], ...] | None = None
    schema_version: int = SCHEMA_VERSION

    def __post_init__(self) -> None:
        if self.embeddings is not None and len(self.embeddings) != len(self.chunks):
            raise ValueError(
                f"embeddings length {len(self.embeddings)} does not match chunk count {len(self.chunks)}"
            )


@dataclass(slots=True)
class IndexStats:
    """Aggregate counters derived from the store and the last update run."""

    files_indexed: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    chunks_created: int = 0
    total_files: int = 0
    total_chunks: int = 0
    index_size_bytes: int = 0
    last_modified: datetime | None = None
    orphaned_files: list[Path] = field(default_factory=list)
    failures: list[IndexingFailed] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_indexed": self.files_indexed,
            "files_skipped": self.files_skipped,
            "files_failed": self.files_failed,
            "chunks_created": self.chunks_created,
            "total_files": self.total_files,
            "total_chunks": self.total_chunks,
            "index_size_bytes": self.index_size_bytes,
            "last_modified": self.last_modified.isoformat() if self.last_modified else None,
            "orphaned_files": [str(path) for path in self.orphaned_files],
            "failures": [
                {"path": str(item.path), "reason": item.reason, "suggestion": item.suggestion}
                for item in self.failures
            ],
        }


__all__ = [
    "SCHEMA_VERSION",
    "Span",
    "Symbol",
    "Chunk",
    "Fingerprint",
    "SidecarEntry",
    "IndexStats",
]
