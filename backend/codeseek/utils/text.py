"""Text processing helpers."""

from __future__ import annotations

import re

_WORD_RE = re.compile(r"[A-Za-z0-9_]+")
_CAMEL_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|[0-9]+")


def tokenize(text: str) -> list[str]:
    """Lowercased identifier tokens, plus their snake_case and camelCase parts.

    ``parseHTTPHeader`` yields ``parsehttpheader``, ``parse``, ``http``, ``header``.
    """
    tokens: list[str] = []
    for match in _WORD_RE.finditer(text):
        word = match.group()
        lowered = word.lower()
        tokens.append(lowered)
        parts = [part.lower() for piece in word.split("_") for part in _CAMEL_RE.findall(piece)]
        if len(parts) > 1:
            tokens.extend(parts)
    return tokens


def preview_line(text: str, limit: int = 160) -> str:
    """First non-blank line of ``text`` clipped to ``limit`` characters."""
    for line in text.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped if len(stripped) <= limit else stripped[: limit - 3] + "..."
    return ""


def approx_tokens(text: str) -> int:
    """Cheap, model-independent token estimate: roughly four characters per token."""
    if not text:
        return 0
    return max(1, -(-len(text) // 4))
