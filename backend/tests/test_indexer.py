"""Tests for incremental index updates."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from codeseek.core.errors import EmbeddingUnavailable, FileAccessError, IndexCancelled, IndexingFailed
from codeseek.core.metrics import metrics_text
from codeseek.ingest.embeddings import HashedEmbeddingModel
from codeseek.ingest.indexer import Indexer
from codeseek.ingest.progress import CancellationToken, IndexObserver
from codeseek.store.sidecar import SidecarStore


def sidecar_bytes(root: Path) -> dict[str, bytes]:
    index_dir = root / ".ck"
    return {
        path.relative_to(index_dir).as_posix(): path.read_bytes()
        for path in sorted(index_dir.rglob("*.ck"))
    }


class RecordingObserver(IndexObserver):
    def __init__(self) -> None:
        self.files = []
        self.chunks = []

    def on_file_progress(self, progress) -> None:
        self.files.append(progress)

    def on_chunk_progress(self, progress) -> None:
        self.chunks.append(progress)


class OfflineModel(HashedEmbeddingModel):
    def embed_batch(self, texts):
        raise EmbeddingUnavailable("model download failed")


def test_first_run_indexes_every_discovered_file(repo: Path, settings, provider) -> None:
    stats = Indexer(settings, provider=provider).update(repo)
    assert stats.files_indexed == 3
    assert stats.files_skipped == 0
    assert stats.total_files == 3
    assert stats.total_chunks == stats.chunks_created > 0
    assert sorted(sidecar_bytes(repo)) == ["docs/guide.md.ck", "src/auth.py.ck", "src/server.rs.ck"]


def test_second_run_is_a_no_op(repo: Path, settings, provider) -> None:
    indexer = Indexer(settings, provider=provider)
    indexer.update(repo)
    before = sidecar_bytes(repo)

    stats = indexer.update(repo)
    assert stats.files_skipped == stats.total_files == 3
    assert stats.files_indexed == 0
    assert sidecar_bytes(repo) == before


def test_only_changed_and_new_files_are_rebuilt(tmp_path: Path, settings, provider) -> None:
    root = tmp_path / "abc"
    root.mkdir()
    (root / "a.txt").write_text("alpha\n")
    (root / "b.txt").write_text("bravo\n")
    indexer = Indexer(settings, provider=provider)
    indexer.update(root)
    untouched = (root / ".ck" / "a.txt.ck").read_bytes()

    (root / "b.txt").write_text("bravo, rewritten\n")
    (root / "c.txt").write_text("charlie\n")
    stats = indexer.update(root)

    assert stats.files_indexed == 2
    assert stats.files_skipped == 1
    assert (root / ".ck" / "a.txt.ck").read_bytes() == untouched
    entry = SidecarStore(root).read(root / "b.txt")
    assert entry is not None
    assert entry.chunks[0].text == "bravo, rewritten"


def test_verify_content_catches_edits_hidden_from_stat(repo: Path, settings, provider) -> None:
    indexer = Indexer(settings, provider=provider)
    indexer.update(repo)
    target = repo / "docs" / "guide.md"
    stat = target.stat()
    target.write_text(target.read_text().replace("Install", "INSTALL"))
    os.utime(target, ns=(stat.st_atime_ns, stat.st_mtime_ns))

    assert indexer.update(repo).files_indexed == 0
    stats = indexer.update(repo, verify_content=True)
    assert stats.files_indexed == 1
    assert stats.files_skipped == 2


def test_touched_file_is_skipped_and_refreshed(repo: Path, settings, provider) -> None:
    indexer = Indexer(settings, provider=provider)
    indexer.update(repo)
    target = repo / "src" / "server.rs"
    stat = target.stat()
    os.utime(target, ns=(stat.st_atime_ns, stat.st_mtime_ns + 3_000_000_000))

    stats = indexer.update(repo)
    assert stats.files_skipped == 3
    entry = SidecarStore(repo).read(target)
    assert entry is not None
    assert entry.fingerprint.mtime == target.stat().st_mtime_ns


def test_force_rebuild_reindexes_everything(repo: Path, settings, provider) -> None:
    indexer = Indexer(settings, provider=provider)
    indexer.update(repo)
    stats = indexer.update(repo, force_rebuild=True)
    assert stats.files_indexed == 3
    assert stats.files_skipped == 0


def test_model_switch_rebuilds_with_new_model(repo: Path, settings, provider) -> None:
    indexer = Indexer(settings, provider=provider)
    indexer.update(repo)

    stats = indexer.update(repo, model="hashed-64")
    assert stats.files_indexed == 3
    entry = SidecarStore(repo).read(repo / "src" / "auth.py")
    assert entry is not None
    assert entry.fingerprint.model_id == "hashed-64"
    assert entry.embeddings is not None
    assert {len(vector) for vector in entry.embeddings} == {64}


def test_unreadable_file_is_recorded_not_fatal(repo: Path, settings, provider) -> None:
    bad = repo / "src" / "broken.txt"
    bad.write_bytes(b"a" * 9000 + b"\xff\xfe\n")

    stats = Indexer(settings, provider=provider).update(repo)
    assert stats.files_indexed == 3
    assert stats.files_failed == 1
    assert [failure.path.name for failure in stats.failures] == ["broken.txt"]
    assert SidecarStore(repo).read(bad) is None


def test_all_files_failing_raises(tmp_path: Path, settings, provider) -> None:
    root = tmp_path / "only-bad"
    root.mkdir()
    (root / "broken.txt").write_bytes(b"b" * 9000 + b"\xff\n")
    with pytest.raises(IndexingFailed) as excinfo:
        Indexer(settings, provider=provider).update(root)
    assert "none of 1 files" in str(excinfo.value)


def test_missing_root_is_rejected(tmp_path: Path, settings, provider) -> None:
    with pytest.raises(FileAccessError):
        Indexer(settings, provider=provider).update(tmp_path / "nowhere")


def test_embedding_outage_still_writes_chunks(repo: Path, settings) -> None:
    stats = Indexer(settings, provider=OfflineModel(dim=32)).update(repo)
    assert stats.files_indexed == 3
    entry = SidecarStore(repo).read(repo / "src" / "auth.py")
    assert entry is not None
    assert entry.chunks
    assert entry.embeddings is None


def test_entries_written_during_outage_are_embedded_later(repo: Path, settings) -> None:
    Indexer(settings, provider=OfflineModel(dim=32)).update(repo)
    recovered = Indexer(settings, provider=HashedEmbeddingModel(dim=32))

    stats = recovered.update(repo)
    assert stats.files_indexed == 3
    entry = SidecarStore(repo).read(repo / "src" / "auth.py")
    assert entry is not None
    assert entry.embeddings is not None
    assert len(entry.embeddings) == len(entry.chunks)
    assert recovered.update(repo).files_skipped == 3


def test_index_without_model_has_no_embeddings(repo: Path, settings) -> None:
    Indexer(settings).update(repo, model="none")
    entry = SidecarStore(repo).read(repo / "src" / "server.rs")
    assert entry is not None
    assert entry.fingerprint.model_id == "none"
    assert entry.embeddings is None
    assert Indexer(settings).update(repo, model="none").files_skipped == 3


def test_observer_sees_every_file_and_batch(repo: Path, settings, provider) -> None:
    observer = RecordingObserver()
    Indexer(settings, provider=provider).update(repo, observer=observer)

    assert [item.index for item in observer.files] == [1, 2, 3]
    assert {item.total for item in observer.files} == {3}
    assert {item.status for item in observer.files} == {"indexed"}
    finished = [item for item in observer.chunks if item.embedded == item.total]
    assert {item.path.name for item in finished} == {"auth.py", "server.rs", "guide.md"}


def test_cancellation_stops_between_files(repo: Path, settings, provider) -> None:
    token = CancellationToken()

    class CancelAfterFirst(IndexObserver):
        def on_file_progress(self, progress) -> None:
            token.cancel()

    with pytest.raises(IndexCancelled) as excinfo:
        Indexer(settings, provider=provider).update(repo, observer=CancelAfterFirst(), cancel=token)
    assert excinfo.value.processed == 1
    assert len(sidecar_bytes(repo)) == 1


def test_index_and_remove_single_file(repo: Path, settings, provider) -> None:
    indexer = Indexer(settings, provider=provider)
    stats = indexer.index_file(repo, Path("src/auth.py"))
    assert stats.files_indexed == 1
    assert stats.total_files == 1
    assert indexer.index_file(repo, Path("src/auth.py")).files_skipped == 1

    assert indexer.remove_file(repo, Path("src/auth.py")) is True
    assert indexer.remove_file(repo, Path("src/auth.py")) is False
    assert not (repo / ".ck" / "src").exists()


def test_index_file_requires_existing_file(repo: Path, settings, provider) -> None:
    with pytest.raises(FileAccessError):
        Indexer(settings, provider=provider).index_file(repo, Path("src/missing.py"))


def test_index_file_raises_on_bad_content(repo: Path, settings, provider) -> None:
    bad = repo / "src" / "blob.txt"
    bad.write_bytes(b"\x00\x01binary")
    with pytest.raises(IndexingFailed):
        Indexer(settings, provider=provider).index_file(repo, bad)


def test_inspect_reports_chunks_without_indexing(repo: Path, settings, provider) -> None:
    inspection = Indexer(settings, provider=provider).inspect_file(repo / "src" / "auth.py")
    assert inspection.language == "python"
    assert inspection.size == (repo / "src" / "auth.py").stat().st_size
    assert [(item.line_start, item.line_end, item.symbol) for item in inspection.chunks] == [
        (1, 1, None),
        (4, 5, "function hash_password"),
        (8, 13, "class SessionStore"),
    ]
    assert inspection.chunks[0].preview == "import hashlib"
    assert inspection.total_tokens == sum(item.tokens for item in inspection.chunks) > 0
    assert not (repo / ".ck").exists()


def test_metrics_count_processed_files(repo: Path, settings, provider) -> None:
    Indexer(settings, provider=provider).update(repo)
    text = metrics_text()
    assert 'codeseek_index_files_total{outcome="indexed"}' in text
    assert "codeseek_index_duration_seconds_count" in text
