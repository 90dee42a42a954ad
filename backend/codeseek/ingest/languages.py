"""Language detection from file paths."""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class Language(str, Enum):
    PYTHON = "python"
    RUST = "rust"
    GO = "go"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    JAVA = "java"
    CSHARP = "csharp"
    C = "c"
    CPP = "cpp"
    MARKDOWN = "markdown"
    TEXT = "text"


_SUFFIXES: dict[str, Language] = {
    ".py": Language.PYTHON,
    ".pyi": Language.PYTHON,
    ".rs": Language.RUST,
    ".go": Language.GO,
    ".js": Language.JAVASCRIPT,
    ".jsx": Language.JAVASCRIPT,
    ".mjs": Language.JAVASCRIPT,
    ".cjs": Language.JAVASCRIPT,
    ".ts": Language.TYPESCRIPT,
    ".tsx": Language.TYPESCRIPT,
    ".mts": Language.TYPESCRIPT,
    ".java": Language.JAVA,
    ".cs": Language.CSHARP,
    ".c": Language.C,
    ".h": Language.C,
    ".cc": Language.CPP,
    ".cpp": Language.CPP,
    ".cxx": Language.CPP,
    ".hpp": Language.CPP,
    ".hh": Language.CPP,
    ".md": Language.MARKDOWN,
    ".markdown": Language.MARKDOWN,
    ".mdx": Language.MARKDOWN,
}


def detect_language(path: Path | str) -> Language:
    """Map a path to a language; anything unrecognised is plain text."""
    return _SUFFIXES.get(Path(path).suffix.lower(), Language.TEXT)


__all__ = ["Language", "detect_language"]
