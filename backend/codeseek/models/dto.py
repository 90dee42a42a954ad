"""Pydantic DTOs exchanged between the CLI layer and the search engine."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator


class SearchMode(str, Enum):
    REGEX = "regex"
    LEXICAL = "lexical"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"

    @property
    def needs_index(self) -> bool:
        return self in (SearchMode.SEMANTIC, SearchMode.HYBRID)


class SearchOptions(BaseModel):
    """Immutable per-query configuration, fully populated by the caller."""

    mode: SearchMode = SearchMode.REGEX
    pattern: str
    paths: tuple[Path, ...] = (Path("."),)

    ignore_case: bool = False
    fixed_strings: bool = False
    word_regexp: bool = False
    recursive: bool = True
    exclude: tuple[str, ...] = ()
    respect_ignore: bool = True
    no_default_excludes: bool = False

    topk: int | None = Field(default=None, ge=1)
    threshold: float | None = Field(default=None, ge=-1.0, le=1.0)
    rerank: bool = False
    rerank_model: str | None = None
    model: str | None = None

    context: int | None = Field(default=None, ge=0)
    before_context: int | None = Field(default=None, ge=0)
    after_context: int | None = Field(default=None, ge=0)

    show_scores: bool = False
    line_numbers: bool = False
    no_filename: bool = False
    files_with_matches: bool = False
    files_without_matches: bool = False

    model_config = {"frozen": True}

    @field_validator("pattern")
    @classmethod
    def _pattern_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("Search pattern cannot be empty")
        return value

    @field_validator("paths", mode="before")
    @classmethod
    def _default_paths(cls, value: object) -> object:
        if not value:
            return (Path("."),)
        return value

    @model_validator(mode="after")
    def _exclusive_file_filters(self) -> "SearchOptions":
        if self.files_with_matches and self.files_without_matches:
            raise ValueError("Cannot use both files_with_matches and files_without_matches")
        return self

    @property
    def lines_before(self) -> int:
        if self.before_context is not None:
            return self.before_context
        return self.context or 0

    @property
    def lines_after(self) -> int:
        if self.after_context is not None:
            return self.after_context
        return self.context or 0


class SearchResult(BaseModel):
    file: Path
    line_start: int
    line_end: int
    preview: str
    score: float
    symbol: str | None = None

    model_config = {"frozen": True}


class SearchSummary(BaseModel):
    total_matches: int = 0
    files_with_matches: int = 0
    files_searched: int = 0
    duration: float = 0.0

    def merge(self, other: "SearchSummary") -> "SearchSummary":
        return SearchSummary(
            total_matches=self.total_matches + other.total_matches,
            files_with_matches=self.files_with_matches + other.files_with_matches,
            files_searched=self.files_searched + other.files_searched,
            duration=self.duration + other.duration,
        )


class SearchResponse(BaseModel):
    results: list[SearchResult] = Field(default_factory=list)
    summary: SearchSummary = Field(default_factory=SearchSummary)
    matched_files: list[Path] = Field(default_factory=list)
    unmatched_files: list[Path] = Field(default_factory=list)
    closest_below_threshold: SearchResult | None = None

    @property
    def has_matches(self) -> bool:
        return self.summary.total_matches > 0

    @property
    def exit_code(self) -> int:
        """grep-style status: 0 when something matched, 1 otherwise."""
        return 0 if self.has_matches else 1


__all__ = [
    "SearchMode",
    "SearchOptions",
    "SearchResult",
    "SearchSummary",
    "SearchResponse",
]
