"""Structural boundary extraction (functions, classes, sections) per language."""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass
from typing import Pattern

from markdown_it import MarkdownIt

from codeseek.ingest.languages import Language


@dataclass(slots=True, frozen=True)
class SymbolRange:
    """Outermost symbol with a 1-based inclusive line range."""

    kind: str
    name: str
    start_line: int
    end_line: int


class BaseOutliner:
    """Common outliner interface."""

    languages: tuple[Language, ...] = ()

    def supports(self, language: Language) -> bool:
        return language in self.languages

    def outline(self, text: str) -> list[SymbolRange]:  # pragma: no cover - interface
        raise NotImplementedError


class PythonOutliner(BaseOutliner):
    languages = (Language.PYTHON,)

    def outline(self, text: str) -> list[SymbolRange]:
        try:
            tree = ast.parse(text)
        except (SyntaxError, ValueError):
            return []
        symbols: list[SymbolRange] = []
        for node in tree.body:
            if isinstance(node, ast.ClassDef):
                kind = "class"
            elif isinstance(node, ast.AsyncFunctionDef):
                kind = "async_function"
            elif isinstance(node, ast.FunctionDef):
                kind = "function"
            else:
                continue
            start = min([node.lineno, *(decorator.lineno for decorator in node.decorator_list)])
            end = node.end_lineno or node.lineno
            symbols.append(SymbolRange(kind=kind, name=node.name, start_line=start, end_line=end))
        return symbols


@dataclass(slots=True, frozen=True)
class _Declaration:
    pattern: Pattern[str]
    kind_group: str | None = None
    fixed_kind: str | None = None


def _decl(pattern: str, *, kind: str | None = None) -> _Declaration:
    compiled = re.compile(pattern)
    return _Declaration(
        pattern=compiled,
        kind_group=None if kind else "kind",
        fixed_kind=kind,
    )


_RUST_DECLS = (
    _decl(
        r"^\s*(?:pub(?:\([^)]*\))?\s+)?(?:const\s+)?(?:async\s+)?(?:unsafe\s+)?(?:extern\s+\"[^\"]*\"\s+)?"
        r"(?P<kind>fn|struct|enum|trait|mod|union)\s+(?P<name>[A-Za-z_]\w*)"
    ),
    _decl(r"^\s*(?:unsafe\s+)?impl(?:<[^>]*>)?\s+(?P<name>[^{]+?)\s*(?:\{|$)", kind="impl"),
    _decl(r"^\s*macro_rules!\s*(?P<name>[A-Za-z_]\w*)", kind="macro"),
)

_GO_DECLS = (
    _decl(r"^func\s+(?:\([^)]*\)\s*)?(?P<name>[A-Za-z_]\w*)", kind="function"),
    _decl(r"^type\s+(?P<name>[A-Za-z_]\w*)\s+(?P<kind>struct|interface)\b"),
)

_JS_DECLS = (
    _decl(
        r"^\s*(?:export\s+)?(?:default\s+)?(?:declare\s+)?(?:abstract\s+)?(?:async\s+)?"
        r"(?P<kind>function\*?|class|interface|enum|namespace)\s+(?P<name>[A-Za-z_$][\w$]*)"
    ),
    _decl(
        r"^\s*(?:export\s+)?(?:const|let|var)\s+(?P<name>[A-Za-z_$][\w$]*)\s*(?::[^=]+)?=\s*"
        r"(?:async\s+)?(?:function\b|\([^)]*\)\s*(?::[^=]+)?=>|[A-Za-z_$][\w$]*\s*=>)",
        kind="function",
    ),
)

_JAVA_DECLS = (
    _decl(
        r"^\s*(?:(?:public|protected|private|internal|static|abstract|final|sealed|partial|"
        r"readonly|unsafe|new)\s+)*(?P<kind>class|interface|enum|record|struct|namespace)\s+"
        r"(?P<name>[A-Za-z_][\w.]*)"
    ),
)

_C_DECLS = (
    _decl(r"^\s*(?:typedef\s+)?(?P<kind>struct|union|enum|class|namespace)\s+(?P<name>[A-Za-z_]\w*)"),
    _decl(
        r"^(?!\s*(?:if|for|while|switch|return|else|do)\b)[A-Za-z_][\w\s\*&:<>,~]*?"
        r"\b(?P<name>[A-Za-z_~][\w:~]*)\s*\([^;]*$",
        kind="function",
    ),
)


class BraceOutliner(BaseOutliner):
    """Lexical outliner for curly-brace languages.

    Comments and string literals are masked first, then declarations found at
    brace depth zero are extended to their matching closing brace.
    """

    SUPPORTED_LANGUAGES = (
        Language.RUST,
        Language.GO,
        Language.JAVASCRIPT,
        Language.TYPESCRIPT,
        Language.JAVA,
        Language.CSHARP,
        Language.C,
        Language.CPP,
    )

    _DECLARATIONS: dict[Language, tuple[_Declaration, ...]] = {
        Language.RUST: _RUST_DECLS,
        Language.GO: _GO_DECLS,
        Language.JAVASCRIPT: _JS_DECLS,
        Language.TYPESCRIPT: _JS_DECLS,
        Language.JAVA: _JAVA_DECLS,
        Language.CSHARP: _JAVA_DECLS,
        Language.C: _C_DECLS,
        Language.CPP: _C_DECLS,
    }
    _LOOKAHEAD_LINES = 6

    def __init__(self, language: Language) -> None:
        if language not in self.SUPPORTED_LANGUAGES:
            raise ValueError(f"{language.value} is not a brace language")
        self.language = language
        self.languages = (language,)

    def outline(self, text: str) -> list[SymbolRange]:
        masked = mask_comments_and_strings(text, backtick_strings=self.language in _BACKTICK_LANGUAGES)
        lines = masked.splitlines()
        original = text.splitlines()
        declarations = self._DECLARATIONS.get(self.language, ())
        depth_at_start = _depths(lines)
        symbols: list[SymbolRange] = []
        index = 0
        while index < len(lines):
            if depth_at_start[index] != 0:
                index += 1
                continue
            found = _match_declaration(declarations, lines[index], original[index])
            if found is None:
                index += 1
                continue
            kind, name = found
            end_index = _block_end(lines, index, self._LOOKAHEAD_LINES)
            if end_index is None:
                index += 1
                continue
            symbols.append(SymbolRange(kind=kind, name=name, start_line=index + 1, end_line=end_index + 1))
            index = end_index + 1
        return symbols


class MarkdownOutliner(BaseOutliner):
    """Heading-delimited sections; each section runs to the next heading."""

    languages = (Language.MARKDOWN,)

    def __init__(self) -> None:
        self._md = MarkdownIt()

    def outline(self, text: str) -> list[SymbolRange]:
        tokens = self._md.parse(text)
        headings: list[tuple[int, str]] = []
        for position, token in enumerate(tokens):
            if token.type != "heading_open" or not token.map:
                continue
            inline = tokens[position + 1] if position + 1 < len(tokens) else None
            title = inline.content.strip() if inline is not None and inline.type == "inline" else ""
            headings.append((token.map[0] + 1, title or token.tag))
        total_lines = len(text.splitlines())
        symbols: list[SymbolRange] = []
        for position, (start, title) in enumerate(headings):
            end = headings[position + 1][0] - 1 if position + 1 < len(headings) else total_lines
            if end >= start:
                symbols.append(SymbolRange(kind="section", name=title, start_line=start, end_line=end))
        return symbols


class OutlinerRegistry:
    """Registry that selects an appropriate outliner for a language."""

    def __init__(self) -> None:
        self._outliners: dict[Language, BaseOutliner] = {}
        self.register(PythonOutliner())
        self.register(MarkdownOutliner())
        for language in BraceOutliner.SUPPORTED_LANGUAGES:
            self.register(BraceOutliner(language))

    def register(self, outliner: BaseOutliner) -> None:
        for language in outliner.languages:
            self._outliners[language] = outliner

    def for_language(self, language: Language) -> BaseOutliner | None:
        return self._outliners.get(language)

    def outline(self, language: Language, text: str) -> list[SymbolRange]:
        outliner = self.for_language(language)
        if outliner is None:
            return []
        return outliner.outline(text)


_BACKTICK_LANGUAGES = {Language.JAVASCRIPT, Language.TYPESCRIPT, Language.GO}


def mask_comments_and_strings(text: str, backtick_strings: bool = False) -> str:
    """Blank out comments and string literals, keeping newlines and offsets intact."""
    chars = list(text)
    length = len(text)
    quotes = ('"', "'", "`") if backtick_strings else ('"', "'")
    index = 0
    while index < length:
        if text.startswith("//", index):
            end = text.find("\n", index)
            end = length if end == -1 else end
            _blank(chars, index, end)
            index = end
            continue
        if text.startswith("/*", index):
            end = text.find("*/", index + 2)
            end = length if end == -1 else end + 2
            _blank(chars, index, end)
            index = end
            continue
        char = text[index]
        if char in quotes:
            end = _string_end(text, index, char)
            _blank(chars, index, end)
            index = end
            continue
        index += 1
    return "".join(chars)


def _string_end(text: str, start: int, quote: str) -> int:
    index = start + 1
    length = len(text)
    while index < length:
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char == quote:
            return index + 1
        if char == "\n" and quote != "`":
            # Unterminated literal (or a Rust lifetime like 'a); stop at the line end.
            return index
        index += 1
    return length


def _blank(chars: list[str], start: int, end: int) -> None:
    for position in range(start, end):
        if chars[position] != "\n":
            chars[position] = " "


def _depths(lines: list[str]) -> list[int]:
    depths: list[int] = []
    depth = 0
    for line in lines:
        depths.append(depth)
        depth += line.count("{") - line.count("}")
        depth = max(depth, 0)
    return depths


def _match_declaration(
    declarations: tuple[_Declaration, ...],
    masked_line: str,
    original_line: str,
) -> tuple[str, str] | None:
    for declaration in declarations:
        match = declaration.pattern.match(masked_line)
        if match is None:
            continue
        kind = declaration.fixed_kind or match.group(declaration.kind_group or "kind")
        name = match.group("name").strip()
        if not name:
            name = original_line.strip()
        return kind.rstrip("*"), name
    return None


def _block_end(lines: list[str], start: int, lookahead: int) -> int | None:
    """Index of the line closing the first block opened at or after ``start``."""
    depth = 0
    opened = False
    for index in range(start, len(lines)):
        if not opened and index - start >= lookahead:
            return None
        for char in lines[index]:
            if char == "{":
                depth += 1
                opened = True
            elif char == "}":
                depth -= 1
                if opened and depth == 0:
                    return index
            elif char == ";" and not opened:
                return None
    return None


__all__ = [
    "SymbolRange",
    "BaseOutliner",
    "PythonOutliner",
    "BraceOutliner",
    "MarkdownOutliner",
    "OutlinerRegistry",
    "mask_comments_and_strings",
]
