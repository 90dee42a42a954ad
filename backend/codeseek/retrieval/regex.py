"""Line-oriented pattern matching over raw file content."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Pattern

from codeseek.core.errors import InvalidConfiguration
from codeseek.core.logging import get_logger
from codeseek.models.dto import SearchOptions, SearchResult

logger = get_logger(__name__)


def compile_pattern(options: SearchOptions) -> Pattern[str]:
    pattern = re.escape(options.pattern) if options.fixed_strings else options.pattern
    if options.word_regexp:
        pattern = rf"\b(?:{pattern})\b"
    flags = re.IGNORECASE if options.ignore_case else 0
    try:
        return re.compile(pattern, flags)
    except re.error as exc:
        raise InvalidConfiguration("pattern", options.pattern, f"a valid regular expression ({exc})") from exc


def search_file(path: Path, compiled: Pattern[str], before: int = 0, after: int = 0) -> list[SearchResult]:
    """One result per matching line; context lines only widen the preview."""
    try:
        data = path.read_bytes()
    except OSError as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return []
    if b"\x00" in data:
        return []
    lines = data.decode("utf-8", errors="replace").splitlines()
    results: list[SearchResult] = []
    for index, line in enumerate(lines):
        if compiled.search(line) is None:
            continue
        first = max(0, index - before)
        last = min(len(lines), index + after + 1)
        results.append(
            SearchResult(
                file=path,
                line_start=index + 1,
                line_end=index + 1,
                preview="\n".join(lines[first:last]),
                score=1.0,
            )
        )
    return results


def search_files(files: Iterable[Path], options: SearchOptions) -> list[SearchResult]:
    compiled = compile_pattern(options)
    results: list[SearchResult] = []
    for path in files:
        results.extend(search_file(path, compiled, before=options.lines_before, after=options.lines_after))
    return results


__all__ = ["compile_pattern", "search_file", "search_files"]
