"""Structured error taxonomy shared by the indexer, store, and search engine."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class CodeseekError(Exception):
    """Base class for every error raised by the core."""


class ChunkError(CodeseekError):
    """Raised when file content cannot be decoded into chunks."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot chunk {self.path}: {reason}")


class IndexingFailed(CodeseekError):
    def __init__(self, path: Path | str, reason: str, suggestion: str | None = None) -> None:
        self.path = Path(path)
        self.reason = reason
        self.suggestion = suggestion
        message = f"Indexing failed for {self.path}: {reason}"
        if suggestion:
            message += f"\nSuggestion: {suggestion}"
        super().__init__(message)


class EmbeddingUnavailable(CodeseekError):
    """Embedding backend could not produce vectors; indexing degrades to structure only."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Embeddings unavailable: {reason}")


class ModelNotFound(CodeseekError):
    def __init__(self, model: str, available: Sequence[str] = ()) -> None:
        self.model = model
        self.available = list(available)
        message = f"Model '{model}' not found"
        if self.available:
            message += "\nAvailable models:\n" + "\n".join(f"  - {name}" for name in self.available)
        super().__init__(message)


class FileAccessError(CodeseekError):
    def __init__(self, path: Path | str, operation: str, reason: str) -> None:
        self.path = Path(path)
        self.operation = operation
        self.reason = reason
        super().__init__(f"Cannot {operation} file {self.path}: {reason}")


class NetworkError(CodeseekError):
    def __init__(self, operation: str, retry_possible: bool, fallback: str | None = None) -> None:
        self.operation = operation
        self.retry_possible = retry_possible
        self.fallback = fallback
        message = f"Network error during {operation}"
        if fallback:
            message += f"\nFallback: {fallback}"
        super().__init__(message)


class InvalidConfiguration(CodeseekError):
    def __init__(self, setting: str, value: object, expected: str) -> None:
        self.setting = setting
        self.value = value
        self.expected = expected
        super().__init__(f"Invalid configuration: {setting} = '{value}'\nExpected: {expected}")


class NotIndexedError(CodeseekError):
    """Semantic and hybrid search need an index that does not exist yet."""

    def __init__(self, path: Path | str, model: str | None = None) -> None:
        self.path = Path(path)
        self.model = model
        if model is None:
            message = f"No index found for {self.path}. Run 'codeseek index' to create one."
        else:
            message = (
                f"No embeddings for model {model} in the index at {self.path}. "
                f"Run 'codeseek index --model {model}' to build them."
            )
        super().__init__(message)


class IndexCancelled(CodeseekError):
    """Raised when an index update observes a cancellation request."""

    def __init__(self, processed: int) -> None:
        self.processed = processed
        super().__init__(f"Index update cancelled after {processed} files")


class CleanNotConfirmed(CodeseekError):
    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        super().__init__(f"Removal of the index under {self.root} was not confirmed")


__all__ = [
    "CodeseekError",
    "ChunkError",
    "IndexingFailed",
    "EmbeddingUnavailable",
    "ModelNotFound",
    "FileAccessError",
    "NetworkError",
    "InvalidConfiguration",
    "NotIndexedError",
    "IndexCancelled",
    "CleanNotConfirmed",
]
