"""Tests for chunker."""

from __future__ import annotations

import pytest

from codeseek.core.errors import ChunkError
from codeseek.ingest.chunker import ChunkConfig, chunk, embedding_inputs
from codeseek.ingest.outline import BraceOutliner, MarkdownOutliner, PythonOutliner, mask_comments_and_strings
from codeseek.ingest.languages import Language


def assert_chunk_invariants(text: str, chunks) -> None:
    spans = [(item.span.line_start, item.span.line_end) for item in chunks]
    for (_, previous_end), (start, _) in zip(spans, spans[1:]):
        assert start > previous_end, f"overlapping or unordered spans: {spans}"
    covered = {line for start, end in spans for line in range(start, end + 1)}
    non_blank = {number for number, line in enumerate(text.splitlines(), start=1) if line.strip()}
    assert non_blank <= covered


PYTHON_SOURCE = (
    "import os\n"
    "\n"
    "\n"
    "@decorator\n"
    "def load(path):\n"
    "    return os.path.exists(path)\n"
    "\n"
    "\n"
    "class Loader:\n"
    "    def run(self):\n"
    "        return 1\n"
    "\n"
    "CONSTANT = 3\n"
)


def test_python_symbols_become_chunks() -> None:
    chunks = chunk(PYTHON_SOURCE, "loader.py")
    spans = [(item.span.line_start, item.span.line_end) for item in chunks]
    assert spans == [(1, 1), (4, 6), (9, 11), (13, 13)]
    assert chunks[1].symbol is not None
    assert (chunks[1].symbol.kind, chunks[1].symbol.name) == ("function", "load")
    assert chunks[2].symbol is not None and chunks[2].symbol.name == "Loader"
    assert chunks[0].symbol is None
    assert_chunk_invariants(PYTHON_SOURCE, chunks)


def test_large_symbol_is_split_and_keeps_tag() -> None:
    body = "".join(f"    value_{idx:02d} = {idx} + 1\n" for idx in range(40))
    source = "def big():\n" + body
    chunks = chunk(source, "big.py", ChunkConfig(max_tokens=50, overlap_tokens=5))
    assert len(chunks) > 1
    assert all(item.symbol is not None and item.symbol.name == "big" for item in chunks)
    assert chunks[0].span.line_start == 1
    assert chunks[-1].span.line_end == 41
    assert_chunk_invariants(source, chunks)


def test_unknown_language_falls_back_to_windows() -> None:
    text = "\n".join(f"line number {idx} with some words" for idx in range(100))
    chunks = chunk(text, "notes.unknown", ChunkConfig(max_tokens=40, overlap_tokens=4))
    assert len(chunks) > 1
    assert all(item.symbol is None for item in chunks)
    assert_chunk_invariants(text, chunks)


def test_broken_python_degrades_to_text() -> None:
    text = "def broken(:\n    pass\n"
    chunks = chunk(text, "broken.py")
    assert len(chunks) == 1
    assert chunks[0].symbol is None


def test_blank_content_has_no_chunks() -> None:
    assert chunk("\n\n   \n", "empty.py") == []


def test_binary_content_raises() -> None:
    with pytest.raises(ChunkError):
        chunk(b"abc\x00def", "blob.bin")


def test_undecodable_content_raises() -> None:
    with pytest.raises(ChunkError):
        chunk(b"caf\xe9 au lait\n", "menu.txt")


def test_chunking_is_deterministic() -> None:
    config = ChunkConfig(max_tokens=20, overlap_tokens=2)
    assert chunk(PYTHON_SOURCE, "loader.py", config) == chunk(PYTHON_SOURCE, "loader.py", config)


def test_chunk_config_rejects_overlap_not_below_max() -> None:
    with pytest.raises(ValueError):
        ChunkConfig(max_tokens=10, overlap_tokens=10)


def test_embedding_inputs_carry_previous_tail() -> None:
    chunks = chunk(PYTHON_SOURCE, "loader.py")
    inputs = embedding_inputs(chunks, ChunkConfig(max_tokens=512, overlap_tokens=8))
    assert inputs[0] == chunks[0].text
    assert inputs[1].startswith("import os\n")
    assert inputs[1].endswith(chunks[1].text)
    no_overlap = embedding_inputs(chunks, ChunkConfig(max_tokens=512, overlap_tokens=0))
    assert no_overlap == [item.text for item in chunks]


def test_python_outline_includes_decorators() -> None:
    symbols = PythonOutliner().outline(PYTHON_SOURCE)
    assert [(item.name, item.start_line, item.end_line) for item in symbols] == [
        ("load", 4, 6),
        ("Loader", 9, 11),
    ]


def test_brace_outliner_rust() -> None:
    source = (
        "use std::io;\n"
        "\n"
        "/// Starts { the server\n"
        "pub fn start(port: u16) {\n"
        "    let banner = \"{ not a block\";\n"
        "    println!(\"{}\", banner);\n"
        "}\n"
        "\n"
        "struct Config;\n"
        "\n"
        "impl Config {\n"
        "    fn new() -> Self { Config }\n"
        "}\n"
    )
    symbols = BraceOutliner(Language.RUST).outline(source)
    assert [(item.kind, item.name, item.start_line, item.end_line) for item in symbols] == [
        ("fn", "start", 4, 7),
        ("impl", "Config", 11, 13),
    ]


def test_brace_outliner_rejects_other_languages() -> None:
    with pytest.raises(ValueError):
        BraceOutliner(Language.PYTHON)


def test_markdown_sections_run_to_next_heading() -> None:
    text = "# Title\n\nIntro.\n\n## Usage\n\nRun it.\n"
    symbols = MarkdownOutliner().outline(text)
    assert [(item.name, item.start_line, item.end_line) for item in symbols] == [
        ("Title", 1, 4),
        ("Usage", 5, 7),
    ]


def test_mask_keeps_offsets() -> None:
    text = 'let s = "a { b"; // trailing }\nx = 1;\n'
    masked = mask_comments_and_strings(text)
    assert len(masked) == len(text)
    assert "{" not in masked and "}" not in masked
    assert masked.splitlines()[1] == "x = 1;"
