"""CLI entrypoint for codeseek."""

from __future__ import annotations

import time
from pathlib import Path
from typing import List, NoReturn, Optional

import orjson
import typer

from codeseek.core.config import Settings, get_settings
from codeseek.core.errors import CleanNotConfirmed, CodeseekError
from codeseek.core.logging import configure_logging
from codeseek.ingest.embeddings import EmbeddingProvider, load_embedder
from codeseek.ingest.indexer import NO_MODEL, Indexer
from codeseek.ingest.progress import FileProgress, IndexObserver
from codeseek.ingest.watcher import Watcher
from codeseek.models.dto import SearchMode, SearchOptions, SearchResponse, SearchResult
from codeseek.retrieval.search import SearchEngine
from codeseek.store.maintenance import IndexMaintenance
from codeseek.store.sidecar import find_index_root
from codeseek.utils.text import preview_line

app = typer.Typer(name="codeseek", help="Code-aware search with regex, BM25, semantic and hybrid modes")

EXIT_ERROR = 2


class EchoObserver(IndexObserver):
    """Per-file progress lines on stderr."""

    def on_file_progress(self, progress: FileProgress) -> None:
        typer.echo(f"[{progress.index}/{progress.total}] {progress.status} {progress.path}", err=True)


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=EXIT_ERROR)


def _settings() -> Settings:
    try:
        return get_settings()
    except ValueError as exc:
        _fail(exc)


def _dump(payload: object) -> str:
    return orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8")


def _provider(model: Optional[str], settings: Settings) -> Optional[EmbeddingProvider]:
    """Embedder for an index command; 'none' stores chunks without vectors."""
    name = model or settings.embedding_model
    if name == NO_MODEL:
        return None
    return load_embedder(name, settings)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress at INFO level"),
    log_json: bool = typer.Option(False, "--log-json", help="Emit logs as JSON lines"),
) -> None:
    """Configure logging for every subcommand."""
    if verbose:
        configure_logging("INFO", use_json=log_json)
    else:
        configure_logging(use_json=log_json)


@app.command()
def search(
    pattern: str = typer.Argument(..., help="Pattern or query text"),
    paths: Optional[List[Path]] = typer.Argument(None, help="Files or directories to search"),
    mode: SearchMode = typer.Option(SearchMode.REGEX, "--mode", "-m", help="Search mode"),
    ignore_case: bool = typer.Option(False, "--ignore-case", "-i"),
    fixed_strings: bool = typer.Option(False, "--fixed-strings", "-F"),
    word_regexp: bool = typer.Option(False, "--word-regexp", "-w"),
    no_recursive: bool = typer.Option(False, "--no-recursive", help="Only search direct children of directories"),
    line_numbers: bool = typer.Option(False, "--line-number", "-n"),
    no_filename: bool = typer.Option(False, "--no-filename"),
    files_with_matches: bool = typer.Option(False, "--files-with-matches", "-l"),
    files_without_matches: bool = typer.Option(False, "--files-without-match", "-L"),
    context: Optional[int] = typer.Option(None, "--context", "-C", min=0),
    after_context: Optional[int] = typer.Option(None, "--after-context", "-A", min=0),
    before_context: Optional[int] = typer.Option(None, "--before-context", "-B", min=0),
    topk: Optional[int] = typer.Option(None, "--topk", "--limit", min=1),
    threshold: Optional[float] = typer.Option(None, "--threshold"),
    scores: bool = typer.Option(False, "--scores", help="Show scores next to results"),
    rerank: bool = typer.Option(False, "--rerank", help="Re-score the top results with a cross-encoder"),
    rerank_model: Optional[str] = typer.Option(None, "--rerank-model"),
    model: Optional[str] = typer.Option(None, "--model", help="Embedding model for semantic/hybrid queries"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="Glob to exclude (repeatable)"),
    no_ignore: bool = typer.Option(False, "--no-ignore", help="Do not read .gitignore/.ckignore"),
    no_default_excludes: bool = typer.Option(False, "--no-default-excludes"),
    json_output: bool = typer.Option(False, "--json", help="Print the whole response as JSON"),
    jsonl_output: bool = typer.Option(False, "--jsonl", help="Print one JSON object per result"),
) -> None:
    """Search files; exits 0 on a match, 1 on none, 2 on error."""
    settings = _settings()
    try:
        options = SearchOptions(
            mode=mode,
            pattern=pattern,
            paths=tuple(paths or ()),
            ignore_case=ignore_case,
            fixed_strings=fixed_strings,
            word_regexp=word_regexp,
            recursive=not no_recursive,
            exclude=tuple(exclude or ()),
            respect_ignore=not no_ignore,
            no_default_excludes=no_default_excludes,
            topk=topk,
            threshold=threshold,
            rerank=rerank,
            rerank_model=rerank_model,
            model=model,
            context=context,
            before_context=before_context,
            after_context=after_context,
            show_scores=scores,
            line_numbers=line_numbers,
            no_filename=no_filename,
            files_with_matches=files_with_matches,
            files_without_matches=files_without_matches,
        )
    except ValueError as exc:
        _fail(exc)

    try:
        response = SearchEngine(settings).search(options)
    except CodeseekError as exc:
        _fail(exc)

    if json_output:
        typer.echo(_dump(response.model_dump(mode="json")))
    elif jsonl_output:
        for result in response.results:
            typer.echo(orjson.dumps(result.model_dump(mode="json")).decode("utf-8"))
    else:
        _print_response(response, options)
    raise typer.Exit(code=search_exit_code(response, options))


def search_exit_code(response: SearchResponse, options: SearchOptions) -> int:
    if options.files_without_matches:
        return 0 if response.unmatched_files else 1
    return response.exit_code


def _print_response(response: SearchResponse, options: SearchOptions) -> None:
    if options.files_with_matches:
        for path in response.matched_files:
            typer.echo(str(path))
    elif options.files_without_matches:
        for path in response.unmatched_files:
            typer.echo(str(path))
    else:
        for result in response.results:
            typer.echo(format_result(result, options))
    if not response.has_matches and not options.files_without_matches:
        typer.echo("No matches found", err=True)
        closest = response.closest_below_threshold
        if closest is not None:
            typer.echo(
                f"Closest match below threshold: {closest.file}:{closest.line_start} (score {closest.score:.3f})",
                err=True,
            )


def format_result(result: SearchResult, options: SearchOptions) -> str:
    prefix = ""
    if options.show_scores:
        prefix += f"[{result.score:.3f}] "
    if not options.no_filename:
        prefix += f"{result.file}:"
    if options.line_numbers or options.mode is not SearchMode.REGEX:
        if result.line_end != result.line_start:
            prefix += f"{result.line_start}-{result.line_end}:"
        else:
            prefix += f"{result.line_start}:"
    if options.mode is SearchMode.REGEX:
        return prefix + result.preview
    return prefix + preview_line(result.preview)


@app.command()
def index(
    path: Path = typer.Argument(Path("."), help="Directory to index"),
    force: bool = typer.Option(False, "--force", help="Rebuild every sidecar"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="Glob to exclude (repeatable)"),
    model: Optional[str] = typer.Option(None, "--model", help="Embedding model"),
    verify: bool = typer.Option(False, "--verify", help="Re-hash files even when size and mtime match"),
    progress: bool = typer.Option(False, "--progress", help="Print per-file progress to stderr"),
    json_output: bool = typer.Option(False, "--json"),
) -> None:
    """Create or incrementally update the index under PATH."""
    settings = _settings()
    try:
        provider = _provider(model, settings)
        stats = Indexer(settings, provider=provider).update(
            path,
            force_rebuild=force,
            excludes=tuple(exclude or ()),
            observer=EchoObserver() if progress else None,
            verify_content=verify or None,
        )
    except CodeseekError as exc:
        _fail(exc)
    if json_output:
        typer.echo(_dump(stats.to_dict()))
        return
    typer.echo(
        f"Indexed {stats.files_indexed} files ({stats.chunks_created} chunks), "
        f"{stats.files_skipped} up to date, {stats.files_failed} failed"
    )
    for failure in stats.failures:
        typer.echo(f"  {failure.path}: {failure.reason}", err=True)


@app.command()
def add(
    file: Path = typer.Argument(..., help="File to add to the nearest index"),
    model: Optional[str] = typer.Option(None, "--model", help="Embedding model"),
) -> None:
    """Index a single file into the index that contains it."""
    settings = _settings()
    root = find_index_root(file) or file.expanduser().resolve().parent
    try:
        stats = Indexer(settings, provider=_provider(model, settings)).index_file(root, file, force_rebuild=True)
    except CodeseekError as exc:
        _fail(exc)
    typer.echo(f"Added {file} ({stats.chunks_created} chunks)")


@app.command()
def status(
    path: Path = typer.Argument(Path("."), help="Directory inside an index"),
    json_output: bool = typer.Option(False, "--json"),
) -> None:
    """Report index statistics and orphaned sidecars."""
    root = find_index_root(path)
    if root is None:
        typer.echo(f"No index found for {path}", err=True)
        raise typer.Exit(code=1)
    try:
        stats = IndexMaintenance().status(root)
    except CodeseekError as exc:
        _fail(exc)
    if json_output:
        typer.echo(_dump({"root": str(root), **stats.to_dict()}))
        return
    typer.echo(f"Index root:     {root}")
    typer.echo(f"Files:          {stats.total_files}")
    typer.echo(f"Chunks:         {stats.total_chunks}")
    typer.echo(f"Size:           {stats.index_size_bytes} bytes")
    if stats.last_modified is not None:
        typer.echo(f"Last modified:  {stats.last_modified.isoformat()}")
    if stats.orphaned_files:
        typer.echo(f"Orphaned:       {len(stats.orphaned_files)} (run 'codeseek clean --orphans')")


@app.command()
def clean(
    path: Path = typer.Argument(Path("."), help="Directory inside an index"),
    orphans: bool = typer.Option(False, "--orphans", help="Only remove sidecars whose source file is gone"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Remove the index, or only its orphaned entries."""
    root = find_index_root(path)
    if root is None:
        typer.echo(f"No index found for {path}")
        return
    maintenance = IndexMaintenance()
    try:
        if orphans:
            removed = maintenance.clean_orphans(root)
            typer.echo(f"Removed {removed} orphaned entries")
            return
        maintenance.clean(root, confirm=lambda target: yes or typer.confirm(f"Delete the index under {target}?"))
    except CleanNotConfirmed:
        typer.echo("Aborted")
        raise typer.Exit(code=1)
    except CodeseekError as exc:
        _fail(exc)
    typer.echo(f"Removed index under {root}")


@app.command()
def inspect(
    file: Path = typer.Argument(..., help="File to chunk"),
    model: Optional[str] = typer.Option(None, "--model", help="Embedding model whose limits apply"),
    json_output: bool = typer.Option(False, "--json"),
) -> None:
    """Show how a file would be chunked, with estimated token counts."""
    settings = _settings()
    try:
        report = Indexer(settings, provider=_provider(model, settings)).inspect_file(file)
    except CodeseekError as exc:
        _fail(exc)
    if json_output:
        typer.echo(
            _dump(
                {
                    "path": str(report.path),
                    "language": report.language,
                    "size": report.size,
                    "total_tokens": report.total_tokens,
                    "chunks": [
                        {
                            "line_start": item.line_start,
                            "line_end": item.line_end,
                            "tokens": item.tokens,
                            "symbol": item.symbol,
                            "preview": item.preview,
                        }
                        for item in report.chunks
                    ],
                }
            )
        )
        return
    typer.echo(f"{report.path} ({report.language}, {report.size} bytes, ~{report.total_tokens} tokens)")
    for number, item in enumerate(report.chunks, start=1):
        label = f" {item.symbol}" if item.symbol else ""
        typer.echo(f"  #{number} lines {item.line_start}-{item.line_end} ~{item.tokens} tokens{label}: {item.preview}")


@app.command()
def watch(
    path: Path = typer.Argument(Path("."), help="Directory to keep indexed"),
    model: Optional[str] = typer.Option(None, "--model", help="Embedding model"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="Glob to exclude (repeatable)"),
) -> None:
    """Index PATH, then re-index files as they change until interrupted."""
    settings = _settings()
    try:
        indexer = Indexer(settings, provider=_provider(model, settings))
        indexer.update(path, excludes=tuple(exclude or ()))
    except CodeseekError as exc:
        _fail(exc)
    watcher = Watcher(
        path,
        indexer,
        excludes=tuple(exclude or ()),
        on_event=lambda action, changed: typer.echo(f"{action} {changed}", err=True),
    )
    watcher.start()
    typer.echo(f"Watching {watcher.root} (Ctrl-C to stop)", err=True)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        watcher.stop()


if __name__ == "__main__":
    app()
