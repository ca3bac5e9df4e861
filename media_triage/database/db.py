"""
Opening the review state file.
"""
import sqlite3
import logging
from pathlib import Path
from typing import Optional, Union

from ..exceptions import StorageError
from .schema import init_schema
from .store import FileRecordStore

# One reviewer per state file; WAL keeps an interrupted session from corrupting it
PRAGMAS = [
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
    "PRAGMA busy_timeout=5000",
]

class StateDB:
    """
    Owns the sqlite3 connection behind a FileRecordStore.
    Use as a context manager; entering yields the store.
    """
    def __init__(self, db_path: Union[Path, str]):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None

    def open(self) -> FileRecordStore:
        if self.conn is None:
            self.conn = self._connect()
        return FileRecordStore(self.conn)

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def _connect(self) -> sqlite3.Connection:
        in_memory = str(self.db_path) == ":memory:"
        if not in_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        logging.info(f"Opening state file: {self.db_path}")

        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open state file {self.db_path}: {e}") from e

        try:
            for pragma in PRAGMAS:
                conn.execute(pragma)
            init_schema(conn)
        except sqlite3.Error as e:
            conn.close()
            raise StorageError(f"Cannot initialize state file {self.db_path}: {e}") from e
        return conn

    def __enter__(self) -> FileRecordStore:
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
