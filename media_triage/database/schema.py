"""
Tables of the review state file.

files            every file ever discovered, keyed by path
rejected_files   audit trail of moves into the quarantine folder
queue_state      single row holding the review position
queue_entries    the shuffled order that position indexes
"""
import sqlite3
import logging

SCHEMA_VERSION = 1

TABLES = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version         INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS files (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        filepath        TEXT UNIQUE NOT NULL,
        media_type      TEXT NOT NULL,
        status          TEXT NOT NULL DEFAULT 'pending',
        reviewed_at     TEXT,
        file_size       INTEGER,
        file_hash       TEXT,                 -- reserved, not consumed
        created_at      TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rejected_files (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        original_path   TEXT NOT NULL,
        deleted_path    TEXT NOT NULL,
        rejected_at     TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS queue_state (
        id              INTEGER PRIMARY KEY CHECK (id = 1),
        current_index   INTEGER NOT NULL DEFAULT 0,
        last_updated    TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS queue_entries (
        position        INTEGER PRIMARY KEY,
        filepath        TEXT NOT NULL
    )
    """,
]

INDICES = [
    "CREATE INDEX IF NOT EXISTS idx_files_status ON files(status)",
    "CREATE INDEX IF NOT EXISTS idx_files_media_type ON files(media_type)",
    "CREATE INDEX IF NOT EXISTS idx_files_created_at ON files(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_rejected_at ON rejected_files(rejected_at)",
]

def init_schema(conn: sqlite3.Connection):
    """Creates missing tables and indices. Runs on every open."""
    with conn:
        for ddl in TABLES + INDICES:
            conn.execute(ddl)

        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        found = row[0] if row else None
        if found is None:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        elif found > SCHEMA_VERSION:
            logging.warning(f"State file schema v{found} is newer than this build (v{SCHEMA_VERSION})")

    logging.debug("State schema ready.")
