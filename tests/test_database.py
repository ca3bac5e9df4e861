import pytest

from media_triage.database.db import StateDB
from media_triage.exceptions import StorageError
from media_triage.models import FileRecord, FileStatus, MediaType

def _rec(path, media_type=MediaType.IMAGE, size=10):
    return FileRecord(filepath=path, media_type=media_type, file_size=size)

def test_schema_tables(conn):
    cur = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    tables = {row[0] for row in cur.fetchall()}
    assert {"files", "rejected_files", "queue_state", "queue_entries"} <= tables

def test_add_file_is_idempotent(store):
    fid = store.add_file(_rec("/p/a.jpg"))
    store.update_status("/p/a.jpg", FileStatus.KEPT)

    # Re-adding returns the same row and never resets the decision
    again = store.add_file(_rec("/p/a.jpg", size=999))
    assert again == fid

    rec = store.get_file("/p/a.jpg")
    assert rec.status == FileStatus.KEPT
    assert rec.file_size == 10
    assert rec.reviewed_at is not None

def test_add_files_batch(store):
    store.add_files(_rec(f"/p/{i}.jpg") for i in range(100))
    # Re-adding a batch overlapping existing rows is a no-op for those rows
    store.add_files(_rec(f"/p/{i}.jpg") for i in range(50, 120))

    stats = store.get_stats()
    assert stats.total == 120
    assert stats.pending == 120

def test_pending_files_after_decisions(store):
    store.add_files(_rec(f"/p/{i:03d}.jpg") for i in range(100))
    for i in range(50):
        store.update_status(f"/p/{i:03d}.jpg", FileStatus.KEPT)

    pending = store.get_pending_files()
    assert len(pending) == 50
    assert all(r.status == FileStatus.PENDING for r in pending)
    assert {r.filepath for r in pending} == {f"/p/{i:03d}.jpg" for i in range(50, 100)}

def test_oldest_pending_file(store):
    store.add_file(_rec("/p/first.jpg"))
    store.add_file(_rec("/p/second.jpg"))
    assert store.get_oldest_pending_file().filepath == "/p/first.jpg"

    store.update_status("/p/first.jpg", FileStatus.KEPT)
    assert store.get_oldest_pending_file().filepath == "/p/second.jpg"

    store.update_status("/p/second.jpg", FileStatus.REJECTED)
    assert store.get_oldest_pending_file() is None

def test_stats_counts(store):
    for name in ("a", "b", "c", "d", "e"):
        store.add_file(_rec(f"/p/{name}.jpg"))
    store.update_status("/p/a.jpg", FileStatus.KEPT)
    store.update_status("/p/b.jpg", FileStatus.KEPT)
    store.update_status("/p/c.jpg", FileStatus.REJECTED)
    store.update_status("/p/d.jpg", FileStatus.MISSING)

    stats = store.get_stats()
    assert (stats.total, stats.pending, stats.kept, stats.rejected) == (5, 1, 2, 1)
    assert stats.reviewed == 4

def test_is_reviewed(store):
    store.add_file(_rec("/p/a.jpg"))
    assert not store.is_reviewed("/p/a.jpg")
    assert not store.is_reviewed("/p/unknown.jpg")
    store.update_status("/p/a.jpg", FileStatus.KEPT)
    assert store.is_reviewed("/p/a.jpg")

def test_update_status_unknown_path_is_ignored(store):
    store.update_status("/p/ghost.jpg", FileStatus.KEPT)
    assert store.get_stats().total == 0

def test_record_rejection(store):
    store.add_file(_rec("/p/a.jpg"))
    rid = store.record_rejection("/p/a.jpg", "/q/a.jpg")

    assert store.get_file("/p/a.jpg").status == FileStatus.REJECTED
    records = store.get_rejected_records()
    assert len(records) == 1
    assert records[0].id == rid
    assert records[0].original_path == "/p/a.jpg"
    assert records[0].deleted_path == "/q/a.jpg"

def test_rejected_records_newest_first(store):
    for name in ("a", "b", "c"):
        store.add_file(_rec(f"/p/{name}.jpg"))
        store.record_rejection(f"/p/{name}.jpg", f"/q/{name}.jpg")

    records = store.get_rejected_records()
    assert [r.original_path for r in records] == ["/p/c.jpg", "/p/b.jpg", "/p/a.jpg"]

    store.remove_rejected_record(records[0].id)
    assert [r.original_path for r in store.get_rejected_records()] == ["/p/b.jpg", "/p/a.jpg"]

def test_queue_position_roundtrip(store):
    assert store.get_queue_position() == 0
    store.save_queue_position(7)
    assert store.get_queue_position() == 7
    store.save_queue_position(3)
    assert store.get_queue_position() == 3

def test_save_queue_replaces_order_and_rewinds(store):
    store.save_queue(["/p/b.jpg", "/p/a.jpg", "/p/c.jpg"])
    store.save_queue_position(2)

    store.save_queue(["/p/c.jpg", "/p/a.jpg"])
    assert store.get_saved_queue() == ["/p/c.jpg", "/p/a.jpg"]
    assert store.get_queue_position() == 0

def test_reads_degrade_on_broken_connection(store, conn):
    store.add_file(_rec("/p/a.jpg"))
    conn.close()

    assert store.get_file("/p/a.jpg") is None
    assert store.is_reviewed("/p/a.jpg") is False
    assert store.get_pending_files() == []
    assert store.get_rejected_records() == []
    assert store.get_saved_queue() == []
    assert store.get_queue_position() == 0
    assert store.get_stats().total == 0

def test_writes_raise_on_broken_connection(store, conn):
    conn.close()

    with pytest.raises(StorageError):
        store.add_file(_rec("/p/a.jpg"))
    with pytest.raises(StorageError):
        store.update_status("/p/a.jpg", FileStatus.KEPT)
    with pytest.raises(StorageError):
        store.record_rejection("/p/a.jpg", "/q/a.jpg")
    with pytest.raises(StorageError):
        store.save_queue(["/p/a.jpg"])

def test_state_db_creates_file(tmp_path):
    db_path = tmp_path / "nested" / "state.db"
    db = StateDB(db_path)
    with db as store:
        mode = db.conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"
        store.add_file(_rec("/p/a.jpg"))
    assert db.conn is None
    assert db_path.exists()

    # Reopening keeps the data and does not duplicate the version row
    with StateDB(db_path) as store:
        assert store.get_file("/p/a.jpg") is not None
        assert store.conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0] == 1

def test_state_db_unopenable(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    with pytest.raises((StorageError, OSError)):
        StateDB(blocker / "state.db").open()

def test_oldest_pending_file_with_exclusions(store):
    for name in ("a", "b", "c"):
        store.add_file(_rec(f"/p/{name}.jpg"))

    assert store.get_oldest_pending_file(exclude={"/p/a.jpg"}).filepath == "/p/b.jpg"
    assert store.get_oldest_pending_file(exclude={"/p/a.jpg", "/p/b.jpg", "/p/c.jpg"}) is None

def test_record_restore(store):
    store.add_file(_rec("/p/a.jpg", size=42))
    store.record_rejection("/p/a.jpg", "/q/a.jpg")

    store.record_restore("/p/a.jpg", "/p/a_restored.jpg", MediaType.IMAGE, 42)

    assert store.get_file("/p/a.jpg").status == FileStatus.PENDING
    copy = store.get_file("/p/a_restored.jpg")
    assert copy.status == FileStatus.PENDING
    assert copy.file_size == 42

    # Restoring to the original name adds no second row
    store.record_restore("/p/a.jpg", "/p/a.jpg", MediaType.IMAGE, 42)
    assert store.get_stats().total == 2
