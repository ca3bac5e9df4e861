import sqlite3
import logging
from datetime import datetime, UTC
from typing import Optional, List, Iterable, Set

from ..exceptions import StorageError
from ..models import FileRecord, FileStatus, MediaType, RejectedFileRecord, Stats

FILE_COLUMNS = "id, filepath, media_type, status, reviewed_at, file_size, file_hash, created_at"

INSERT_FILE_SQL = """
    INSERT OR IGNORE INTO files (filepath, media_type, status, file_size, file_hash, created_at)
    VALUES (?, ?, ?, ?, ?, ?)
"""


def _now() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds")


def _row_to_record(row) -> FileRecord:
    fid, filepath, media_type, status, reviewed_at, size, fhash, created_at = row
    return FileRecord(
        id=fid,
        filepath=filepath,
        media_type=MediaType(media_type),
        status=FileStatus(status),
        reviewed_at=reviewed_at,
        file_size=size,
        file_hash=fhash,
        created_at=created_at,
    )


class FileRecordStore:
    """
    Sole owner of the files, rejected_files and queue tables.

    Writes raise StorageError so the caller sees a failed keep/reject.
    Reads log and degrade to None / False / [] so a flaky store does not
    abort a scan or the review loop.
    """
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # --- Files ---

    def add_file(self, rec: FileRecord) -> int:
        """
        Inserts a file record unless its path is already known.
        Returns the id of the new or existing row; an existing row is never modified.
        """
        try:
            with self.conn:
                cur = self.conn.execute(INSERT_FILE_SQL, self._insert_params(rec, _now()))
                if cur.rowcount == 1 and cur.lastrowid is not None:
                    return cur.lastrowid
                cur = self.conn.execute("SELECT id FROM files WHERE filepath = ?", (rec.filepath,))
                row = cur.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to add {rec.filepath}: {e}") from e

        if row is None:
            raise StorageError(f"Insert of {rec.filepath} returned no row")
        return int(row[0])

    def add_files(self, records: Iterable[FileRecord]):
        """Batched add_file in a single all-or-nothing transaction."""
        now_iso = _now()
        params = [self._insert_params(rec, now_iso) for rec in records]
        if not params:
            return
        try:
            with self.conn:
                self.conn.executemany(INSERT_FILE_SQL, params)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to add {len(params)} files: {e}") from e

    def get_file(self, filepath: str) -> Optional[FileRecord]:
        try:
            cur = self.conn.execute(f"SELECT {FILE_COLUMNS} FROM files WHERE filepath = ?", (filepath,))
            row = cur.fetchone()
        except sqlite3.Error as e:
            logging.error(f"Failed to read {filepath}: {e}")
            return None
        return _row_to_record(row) if row else None

    def update_status(self, filepath: str, status: FileStatus):
        """Sets status and refreshes reviewed_at. Unknown paths are ignored."""
        try:
            with self.conn:
                self.conn.execute(
                    "UPDATE files SET status = ?, reviewed_at = ? WHERE filepath = ?",
                    (FileStatus(status).value, _now(), filepath),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to set {filepath} to {status}: {e}") from e

    def is_reviewed(self, filepath: str) -> bool:
        try:
            cur = self.conn.execute("SELECT status FROM files WHERE filepath = ?", (filepath,))
            row = cur.fetchone()
        except sqlite3.Error as e:
            logging.error(f"Failed to check review state of {filepath}: {e}")
            return False
        return row is not None and row[0] != FileStatus.PENDING.value

    def get_pending_files(self) -> List[FileRecord]:
        """Pending rows, first seen first."""
        try:
            cur = self.conn.execute(
                f"SELECT {FILE_COLUMNS} FROM files WHERE status = ? ORDER BY created_at, id",
                (FileStatus.PENDING.value,),
            )
            return [_row_to_record(r) for r in cur.fetchall()]
        except sqlite3.Error as e:
            logging.error(f"Failed to list pending files: {e}")
            return []

    def get_oldest_pending_file(self, exclude: Optional[Set[str]] = None) -> Optional[FileRecord]:
        """Oldest pending row whose path is not in exclude."""
        exclude = exclude or set()
        try:
            cur = self.conn.execute(
                f"SELECT {FILE_COLUMNS} FROM files WHERE status = ? ORDER BY created_at, id",
                (FileStatus.PENDING.value,),
            )
            for row in cur:
                if row[1] not in exclude:
                    return _row_to_record(row)
        except sqlite3.Error as e:
            logging.error(f"Failed to fetch next pending file: {e}")
        return None

    def get_stats(self) -> Stats:
        try:
            cur = self.conn.execute("""
                SELECT COUNT(*),
                       COALESCE(SUM(status = 'pending'), 0),
                       COALESCE(SUM(status = 'kept'), 0),
                       COALESCE(SUM(status = 'rejected'), 0)
                FROM files
            """)
            total, pending, kept, rejected = cur.fetchone()
        except sqlite3.Error as e:
            logging.error(f"Failed to compute stats: {e}")
            return Stats()
        return Stats(total=total, pending=pending, kept=kept, rejected=rejected)

    # --- Rejected files ---

    def add_rejected_record(self, original_path: str, deleted_path: str) -> int:
        try:
            with self.conn:
                cur = self.conn.execute(
                    "INSERT INTO rejected_files (original_path, deleted_path, rejected_at) VALUES (?, ?, ?)",
                    (original_path, deleted_path, _now()),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to record rejection of {original_path}: {e}") from e
        if cur.lastrowid is None:
            raise StorageError("Database INSERT failed to return a row ID.")
        return cur.lastrowid

    def record_rejection(self, original_path: str, deleted_path: str) -> int:
        """
        Appends the move record and flips the file to 'rejected' atomically.
        Called only after the physical move has succeeded.
        """
        now_iso = _now()
        try:
            with self.conn:
                cur = self.conn.execute(
                    "INSERT INTO rejected_files (original_path, deleted_path, rejected_at) VALUES (?, ?, ?)",
                    (original_path, deleted_path, now_iso),
                )
                self.conn.execute(
                    "UPDATE files SET status = ?, reviewed_at = ? WHERE filepath = ?",
                    (FileStatus.REJECTED.value, now_iso, original_path),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to record rejection of {original_path}: {e}") from e
        if cur.lastrowid is None:
            raise StorageError("Database INSERT failed to return a row ID.")
        return cur.lastrowid

    def record_restore(self,
                       original_path: str,
                       restored_path: str,
                       media_type: Optional[MediaType] = None,
                       file_size: Optional[int] = None):
        """
        Flips the original back to 'pending' and, when the file landed under a
        different name, registers that copy as pending too. One transaction.
        """
        now_iso = _now()
        try:
            with self.conn:
                self.conn.execute(
                    "UPDATE files SET status = ?, reviewed_at = ? WHERE filepath = ?",
                    (FileStatus.PENDING.value, now_iso, original_path),
                )
                if restored_path != original_path and media_type is not None:
                    copy = FileRecord(filepath=restored_path, media_type=media_type, file_size=file_size)
                    self.conn.execute(INSERT_FILE_SQL, self._insert_params(copy, now_iso))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to record restore of {original_path}: {e}") from e

    def get_rejected_records(self) -> List[RejectedFileRecord]:
        """Most recent quarantine action first."""
        try:
            cur = self.conn.execute("""
                SELECT id, original_path, deleted_path, rejected_at
                FROM rejected_files
                ORDER BY rejected_at DESC, id DESC
            """)
            return [RejectedFileRecord(*row) for row in cur.fetchall()]
        except sqlite3.Error as e:
            logging.error(f"Failed to list rejected files: {e}")
            return []

    def remove_rejected_record(self, record_id: int):
        try:
            with self.conn:
                self.conn.execute("DELETE FROM rejected_files WHERE id = ?", (record_id,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove rejected record {record_id}: {e}") from e

    # --- Queue state ---

    def save_queue_position(self, index: int):
        try:
            with self.conn:
                self._write_position(index)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save queue position: {e}") from e

    def get_queue_position(self) -> int:
        try:
            cur = self.conn.execute("SELECT current_index FROM queue_state WHERE id = 1")
            row = cur.fetchone()
        except sqlite3.Error as e:
            logging.error(f"Failed to read queue position: {e}")
            return 0
        return int(row[0]) if row else 0

    def save_queue(self, filepaths: List[str]):
        """Replaces the persisted queue order and rewinds the position to 0."""
        try:
            with self.conn:
                self.conn.execute("DELETE FROM queue_entries")
                self.conn.executemany(
                    "INSERT INTO queue_entries (position, filepath) VALUES (?, ?)",
                    list(enumerate(filepaths)),
                )
                self._write_position(0)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save queue: {e}") from e

    def get_saved_queue(self) -> List[str]:
        try:
            cur = self.conn.execute("SELECT filepath FROM queue_entries ORDER BY position")
            return [row[0] for row in cur.fetchall()]
        except sqlite3.Error as e:
            logging.error(f"Failed to read saved queue: {e}")
            return []

    # --- Helpers ---

    def _write_position(self, index: int):
        self.conn.execute("""
            INSERT INTO queue_state (id, current_index, last_updated) VALUES (1, ?, ?)
            ON CONFLICT(id) DO UPDATE SET current_index = excluded.current_index,
                                          last_updated = excluded.last_updated
        """, (int(index), _now()))

    def _insert_params(self, rec: FileRecord, now_iso: str) -> tuple:
        return (
            rec.filepath,
            MediaType(rec.media_type).value,
            FileStatus(rec.status or FileStatus.PENDING).value,
            rec.file_size,
            rec.file_hash,
            now_iso,
        )
