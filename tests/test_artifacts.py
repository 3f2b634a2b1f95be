from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

import pytest

from constructrs.errors import StorageError
from constructrs.storage.artifacts import ArtifactStore, backup_timestamp, ensure_dir


def _store(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "out", tmp_path / "deleted", [tmp_path / "root-a", tmp_path / "root-b"])


def test_backup_timestamp_format() -> None:
    stamp = backup_timestamp(datetime(2024, 5, 1, 13, 45, 9, 123456, tzinfo=timezone.utc))
    assert stamp == "2024-05-01T13-45-09-123Z"


def test_resolve_prefers_stored_absolute_path(tmp_path: Path) -> None:
    store = _store(tmp_path)
    stored = tmp_path / "somewhere" / "a.pdf"
    stored.parent.mkdir()
    stored.write_bytes(b"%PDF")
    (tmp_path / "out").mkdir()
    (tmp_path / "out" / "a.pdf").write_bytes(b"%PDF")
    assert store.resolve(str(stored)) == stored


def test_resolve_relative_to_working_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = _store(tmp_path)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "rel").mkdir()
    (tmp_path / "rel" / "b.pdf").write_bytes(b"%PDF")
    assert store.resolve("rel/b.pdf") == tmp_path / "rel" / "b.pdf"


def test_resolve_falls_back_to_output_dir_then_search_roots(tmp_path: Path) -> None:
    store = _store(tmp_path)
    stale = "/no/such/place/c.pdf"
    fallback = ensure_dir(tmp_path / "root-b" / "generated-reports") / "c.pdf"
    fallback.write_bytes(b"%PDF")
    assert store.resolve(stale) == fallback

    primary = ensure_dir(tmp_path / "out") / "c.pdf"
    primary.write_bytes(b"%PDF")
    assert store.resolve(stale) == primary


def test_resolve_missing_is_none_not_error(tmp_path: Path) -> None:
    store = _store(tmp_path)
    assert store.resolve("/no/such/file.pdf") is None
    assert store.resolve(None) is None
    assert store.resolve("") is None


def test_allocate_suffixes_when_another_file_holds_the_name(tmp_path: Path) -> None:
    store = _store(tmp_path)
    first = store.allocate("2024.01.01_Job_General_XX.pdf")
    first.write_bytes(b"%PDF")
    second = store.allocate("2024.01.01_Job_General_XX.pdf")
    assert second.name == "2024.01.01_Job_General_XX_2.pdf"
    second.write_bytes(b"%PDF")
    assert store.allocate("2024.01.01_Job_General_XX.pdf").name == "2024.01.01_Job_General_XX_3.pdf"


def test_allocate_may_overwrite_own_artifact(tmp_path: Path) -> None:
    store = _store(tmp_path)
    own = store.allocate("same.pdf")
    own.write_bytes(b"%PDF")
    assert store.allocate("same.pdf", replacing=str(own)) == own


def test_relocate_moves_with_timestamp_prefix(tmp_path: Path) -> None:
    store = _store(tmp_path)
    src = ensure_dir(tmp_path / "out") / "2024.01.01_Job_General_XX.pdf"
    src.write_bytes(b"%PDF-data")
    backup = store.relocate(src)
    assert not src.exists()
    assert backup.parent == tmp_path / "deleted"
    assert backup.read_bytes() == b"%PDF-data"
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z-2024\.01\.01_Job_General_XX\.pdf", backup.name)


def test_relocate_failure_raises_storage_error(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(StorageError):
        store.relocate(tmp_path / "vanished.pdf")


def test_discard_is_best_effort(tmp_path: Path) -> None:
    store = _store(tmp_path)
    target = ensure_dir(tmp_path / "out") / "old.pdf"
    target.write_bytes(b"%PDF")
    assert store.discard(target) is True
    assert store.discard(target) is False
    assert store.discard(None) is False


def test_concurrent_first_use_directory_creation(tmp_path: Path) -> None:
    out = ensure_dir(tmp_path / "out")
    sources = []
    for i in range(24):
        p = out / f"report_{i}.pdf"
        p.write_bytes(b"%PDF")
        sources.append(p)
    store = ArtifactStore(out, tmp_path / "fresh" / "nested" / "deleted")

    with ThreadPoolExecutor(max_workers=12) as pool:
        results = list(pool.map(store.relocate, sources))
        dirs = list(pool.map(ensure_dir, [tmp_path / "another" / "dir"] * 24))

    assert len({r.name for r in results}) == 24
    assert all(r.exists() for r in results)
    assert all(d.is_dir() for d in dirs)
