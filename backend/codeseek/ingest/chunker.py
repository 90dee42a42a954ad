"""Chunking utilities.

Files are cut into line-aligned chunks. When an outliner recognises the
language, every top-level symbol becomes one chunk (or several, when it does
not fit the token budget); everything between symbols, and files with no
recognised structure, fall back to fixed-size text windows.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Sequence

from codeseek.core.errors import ChunkError
from codeseek.ingest.languages import detect_language
from codeseek.ingest.outline import OutlinerRegistry, SymbolRange
from codeseek.models.entities import Chunk, Span, Symbol
from codeseek.utils.text import approx_tokens

_REGISTRY = OutlinerRegistry()


@dataclass(slots=True, frozen=True)
class ChunkConfig:
    """Token budget for one chunk and the overlap carried into the next embedding."""

    max_tokens: int = 512
    overlap_tokens: int = 64
    estimate_tokens: Callable[[str], int] = approx_tokens

    def __post_init__(self) -> None:
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if self.overlap_tokens < 0:
            raise ValueError("overlap_tokens must be >= 0")
        if self.overlap_tokens >= self.max_tokens:
            raise ValueError("overlap_tokens must be less than max_tokens")


@dataclass(slots=True)
class Segment:
    """Half-open slice ``[start, end)`` of zero-based line indexes."""

    start: int
    end: int
    symbol: Symbol | None = None


def chunk(content: str | bytes, path: Path | str, config: ChunkConfig | None = None) -> list[Chunk]:
    """Split file content into ordered, non-overlapping, line-aligned chunks."""
    config = config or ChunkConfig()
    text = decode_content(content, path)
    lines = text.splitlines()
    if not any(line.strip() for line in lines):
        return []

    language = detect_language(path)
    symbols = _usable_symbols(_REGISTRY.outline(language, text), len(lines))

    chunks: list[Chunk] = []
    for segment in _iter_segments(symbols, len(lines)):
        chunks.extend(_segment_chunks(lines, segment, config))
    return chunks


def decode_content(content: str | bytes, path: Path | str) -> str:
    """Decode raw file bytes; binary or undecodable content is a ChunkError."""
    if isinstance(content, bytes):
        if b"\x00" in content:
            raise ChunkError(path, "binary content (NUL byte)")
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ChunkError(path, f"not valid UTF-8: {exc}") from exc
    elif "\x00" in content:
        raise ChunkError(path, "binary content (NUL byte)")
    return content.removeprefix("﻿")


def embedding_inputs(chunks: Sequence[Chunk], config: ChunkConfig) -> list[str]:
    """Texts handed to the embedder: each chunk prefixed by the tail of its predecessor."""
    inputs: list[str] = []
    previous: Chunk | None = None
    for item in chunks:
        overlap = _apply_overlap(previous, config) if previous is not None else ""
        inputs.append(f"{overlap}\n{item.text}" if overlap else item.text)
        previous = item
    return inputs


def _apply_overlap(previous: Chunk, config: ChunkConfig) -> str:
    if config.overlap_tokens <= 0:
        return ""
    retained: list[str] = []
    budget = 0
    for line in reversed(previous.text.splitlines()):
        line_tokens = config.estimate_tokens(line + "\n")
        if budget + line_tokens > config.overlap_tokens:
            break
        retained.append(line)
        budget += line_tokens
    return "\n".join(reversed(retained))


def _usable_symbols(symbols: list[SymbolRange], line_count: int) -> list[SymbolRange]:
    """Sort, clip, and drop symbols that overlap an earlier one."""
    usable: list[SymbolRange] = []
    last_end = 0
    for symbol in sorted(symbols, key=lambda item: (item.start_line, -item.end_line)):
        if symbol.start_line <= last_end or symbol.start_line > line_count:
            continue
        end_line = min(symbol.end_line, line_count)
        if end_line < symbol.start_line:
            continue
        usable.append(
            SymbolRange(kind=symbol.kind, name=symbol.name, start_line=symbol.start_line, end_line=end_line)
        )
        last_end = end_line
    return usable


def _iter_segments(symbols: list[SymbolRange], line_count: int) -> Iterator[Segment]:
    cursor = 0
    for symbol in symbols:
        start = symbol.start_line - 1
        if start > cursor:
            yield Segment(start=cursor, end=start)
        yield Segment(start=start, end=symbol.end_line, symbol=Symbol(kind=symbol.kind, name=symbol.name))
        cursor = symbol.end_line
    if cursor < line_count:
        yield Segment(start=cursor, end=line_count)


def _segment_chunks(lines: list[str], segment: Segment, config: ChunkConfig) -> list[Chunk]:
    trimmed = _trim_segment(lines, segment)
    if trimmed is None:
        return []
    body = "\n".join(lines[trimmed.start : trimmed.end])
    if trimmed.symbol is not None and config.estimate_tokens(body) <= config.max_tokens:
        return [_finalize_chunk(lines, trimmed)]
    return [_finalize_chunk(lines, window) for window in _split_segment(lines, trimmed, config)]


def _trim_segment(lines: list[str], segment: Segment) -> Segment | None:
    start, end = segment.start, segment.end
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    if start >= end:
        return None
    return Segment(start=start, end=end, symbol=segment.symbol)


def _split_segment(lines: list[str], segment: Segment, config: ChunkConfig) -> list[Segment]:
    """Greedy line windows under the token budget, preferring blank-line breaks."""
    windows: list[Segment] = []
    start = segment.start
    while start < segment.end:
        tokens = 0
        end = start
        last_blank: int | None = None
        while end < segment.end:
            line_tokens = config.estimate_tokens(lines[end] + "\n")
            if end > start and tokens + line_tokens > config.max_tokens:
                break
            tokens += line_tokens
            if not lines[end].strip() and end > start:
                last_blank = end
            end += 1
        if end < segment.end and last_blank is not None and last_blank - start >= (end - start) // 2:
            end = last_blank
        window = _trim_segment(lines, Segment(start=start, end=end, symbol=segment.symbol))
        if window is not None:
            windows.append(window)
        start = end
    return windows


def _finalize_chunk(lines: list[str], segment: Segment) -> Chunk:
    return Chunk(
        text="\n".join(lines[segment.start : segment.end]),
        span=Span(line_start=segment.start + 1, line_end=segment.end),
        symbol=segment.symbol,
    )


__all__ = ["ChunkConfig", "chunk", "decode_content", "embedding_inputs"]
