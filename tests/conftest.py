import random
import sqlite3

import pytest

from media_triage.config import AppConfig
from media_triage.core import ReviewSession
from media_triage.database.schema import init_schema
from media_triage.database.store import FileRecordStore

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()

@pytest.fixture
def store(conn):
    """Returns a FileRecordStore attached to the in-memory DB."""
    return FileRecordStore(conn)

@pytest.fixture
def media_tree(tmp_path):
    """
    A small source tree: five reviewable files (one per category, two images)
    plus noise that every scan must ignore.
    """
    src = tmp_path / "src"
    (src / "sub").mkdir(parents=True)
    (src / "a.jpg").write_bytes(b"jpeg" * 10)
    (src / "b.png").write_bytes(b"png" * 10)
    (src / "c.pdf").write_bytes(b"pdf" * 10)
    (src / "sub" / "d.mp4").write_bytes(b"mp4" * 10)
    (src / "sub" / "e.mp3").write_bytes(b"mp3" * 10)
    (src / "notes.xyz").write_bytes(b"unknown")
    (src / ".hidden.jpg").write_bytes(b"hidden")
    return src

@pytest.fixture
def make_session(store, tmp_path):
    """Factory for a ReviewSession over the given roots with a seeded shuffle."""
    def _make(*roots, seed=42, **kwargs):
        cfg = AppConfig(scan_paths=[str(r) for r in roots],
                        deleted_folder=str(tmp_path / "deleted"))
        return ReviewSession.from_config(store, cfg, rng=random.Random(seed), **kwargs)
    return _make
