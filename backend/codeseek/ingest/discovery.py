"""Deterministic discovery of indexable files under a root."""

from __future__ import annotations

import codecs
import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, Sequence

from codeseek.core.config import DEFAULT_EXCLUDES
from codeseek.core.logging import get_logger

logger = get_logger(__name__)

IGNORE_FILES = (".gitignore", ".ckignore")
_BINARY_SNIFF_BYTES = 8192


@dataclass(slots=True, frozen=True)
class IgnoreRule:
    """One gitignore-style line, scoped to the directory that declared it."""

    base: str
    pattern: str
    negated: bool = False
    directory_only: bool = False
    anchored: bool = False

    def matches(self, relative: str, is_dir: bool) -> bool:
        if self.directory_only and not is_dir:
            return False
        if self.base:
            if not relative.startswith(self.base + "/"):
                return False
            relative = relative[len(self.base) + 1 :]
        if self.anchored:
            return fnmatch.fnmatchcase(relative, self.pattern)
        name = relative.rsplit("/", 1)[-1]
        return fnmatch.fnmatchcase(name, self.pattern) or fnmatch.fnmatchcase(relative, f"*/{self.pattern}")


def parse_ignore_file(path: Path, base: str) -> list[IgnoreRule]:
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as exc:
        logger.warning("Cannot read ignore file %s: %s", path, exc)
        return []
    rules: list[IgnoreRule] = []
    for raw in lines:
        line = raw.rstrip()
        if not line or line.startswith("#"):
            continue
        negated = line.startswith("!")
        if negated:
            line = line[1:]
        directory_only = line.endswith("/")
        line = line.rstrip("/")
        anchored = "/" in line
        line = line.lstrip("/")
        if line.startswith("**/"):
            line = line[3:]
            anchored = "/" in line
        if not line:
            continue
        rules.append(
            IgnoreRule(base=base, pattern=line, negated=negated, directory_only=directory_only, anchored=anchored)
        )
    return rules


@dataclass(slots=True)
class DiscoveryFilter:
    """Exclusion state for one walk: built-in names, user globs and ignore files."""

    root: Path
    excludes: tuple[str, ...] = ()
    default_excludes: tuple[str, ...] = DEFAULT_EXCLUDES
    respect_ignore: bool = True
    _rules: list[IgnoreRule] = field(default_factory=list)

    def load_rules(self, directory: Path) -> None:
        if not self.respect_ignore:
            return
        base = _relative(self.root, directory)
        for name in IGNORE_FILES:
            candidate = directory / name
            if candidate.is_file():
                self._rules.extend(parse_ignore_file(candidate, base))

    def excluded(self, path: Path, is_dir: bool) -> bool:
        relative = _relative(self.root, path)
        if not relative:
            return False
        if path.name in self.default_excludes:
            return True
        if any(_glob_match(relative, pattern) for pattern in self.excludes):
            return True
        ignored = False
        for rule in self._rules:
            if rule.matches(relative, is_dir):
                ignored = not rule.negated
        return ignored


def discover_files(
    root: Path,
    excludes: Sequence[str] = (),
    default_excludes: Sequence[str] | None = DEFAULT_EXCLUDES,
    respect_ignore: bool = True,
    recursive: bool = True,
    is_binary: Callable[[Path], bool] | None = None,
) -> list[Path]:
    """Sorted, de-duplicated text files under ``root`` honoring every exclusion."""
    root = root.expanduser().resolve()
    filters = DiscoveryFilter(
        root=root,
        excludes=tuple(excludes),
        default_excludes=tuple(default_excludes or ()),
        respect_ignore=respect_ignore,
    )
    return sorted(set(_walk(root, filters, recursive, is_binary or is_binary_file)))


def collect_paths(
    paths: Iterable[Path],
    excludes: Sequence[str] = (),
    default_excludes: Sequence[str] | None = DEFAULT_EXCLUDES,
    respect_ignore: bool = True,
    recursive: bool = True,
    is_binary: Callable[[Path], bool] | None = None,
) -> list[Path]:
    """Expand user-supplied paths; explicit files are taken as given."""
    collected: list[Path] = []
    for path in paths:
        resolved = path.expanduser().resolve()
        if resolved.is_file():
            collected.append(resolved)
        elif resolved.is_dir():
            collected.extend(
                discover_files(
                    resolved,
                    excludes=excludes,
                    default_excludes=default_excludes,
                    respect_ignore=respect_ignore,
                    recursive=recursive,
                    is_binary=is_binary,
                )
            )
        else:
            logger.warning("Skipping missing path %s", path)
    seen: set[Path] = set()
    ordered: list[Path] = []
    for item in collected:
        if item not in seen:
            seen.add(item)
            ordered.append(item)
    return ordered


def is_binary_file(path: Path) -> bool:
    """Content sniffing: a NUL byte or invalid UTF-8 in the first block means binary."""
    try:
        with path.open("rb") as handle:
            sample = handle.read(_BINARY_SNIFF_BYTES)
    except OSError:
        return True
    if b"\x00" in sample:
        return True
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        decoder.decode(sample, final=len(sample) < _BINARY_SNIFF_BYTES)
    except UnicodeDecodeError:
        return True
    return False


def has_nul_byte(path: Path) -> bool:
    """Looser sniff for line matching: only a NUL byte in the first block means binary."""
    try:
        with path.open("rb") as handle:
            return b"\x00" in handle.read(_BINARY_SNIFF_BYTES)
    except OSError:
        return True


def _walk(root: Path, filters: DiscoveryFilter, recursive: bool, is_binary: Callable[[Path], bool]) -> Iterator[Path]:
    stack: list[Path] = [root]
    while stack:
        current = stack.pop()
        filters.load_rules(current)
        try:
            with os.scandir(current) as entries:
                ordered_entries = sorted(entries, key=lambda item: item.name)
        except OSError as exc:
            logger.warning("Cannot list %s: %s", current, exc)
            continue
        for entry in reversed(ordered_entries):
            full_path = Path(entry.path)
            if entry.is_dir(follow_symlinks=False):
                if recursive and not filters.excluded(full_path, is_dir=True):
                    stack.append(full_path)
                continue
            if not entry.is_file(follow_symlinks=False):
                continue
            if filters.excluded(full_path, is_dir=False):
                continue
            if is_binary(full_path):
                logger.debug("Skipping binary file %s", full_path)
                continue
            yield full_path


def _glob_match(relative: str, pattern: str) -> bool:
    pattern = pattern.strip()
    if not pattern:
        return False
    name = relative.rsplit("/", 1)[-1]
    return (
        fnmatch.fnmatch(relative, pattern)
        or fnmatch.fnmatch(name, pattern)
        or fnmatch.fnmatch(relative, f"*/{pattern}")
        or fnmatch.fnmatch(relative, f"{pattern.rstrip('/')}/*")
    )


def _relative(root: Path, path: Path) -> str:
    try:
        relative = path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
    return "" if relative == "." else relative


__all__ = [
    "IGNORE_FILES",
    "IgnoreRule",
    "DiscoveryFilter",
    "parse_ignore_file",
    "discover_files",
    "collect_paths",
    "is_binary_file",
    "has_nul_byte",
]
