from __future__ import annotations

from pathlib import Path

from constructrs.db import Database, ensure_sqlite_dir


def test_sqlite_parent_directory_follows_url(tmp_path: Path) -> None:
    db_file = tmp_path / "data" / "nested" / "reports.db"
    assert ensure_sqlite_dir(f"sqlite:///{db_file}") == db_file.parent
    assert db_file.parent.is_dir()
    assert not (tmp_path / "var").exists()


def test_in_memory_sqlite_creates_nothing() -> None:
    assert ensure_sqlite_dir("sqlite://") is None
    assert ensure_sqlite_dir("sqlite:///:memory:") is None


def test_connect_creates_database_directory(tmp_path: Path) -> None:
    database = Database(f"sqlite:///{tmp_path / 'state' / 'app.db'}")
    database.create_all()
    try:
        assert database.health_check()
        assert (tmp_path / "state" / "app.db").exists()
    finally:
        database.close()
