import csv
import logging
from pathlib import Path
from typing import List

from .database.store import FileRecordStore
from .scanning.backends import StorageBackend


class RejectedReport:
    """
    Exports the rejected-file audit trail, for users who want a list of
    what went into quarantine (or who clean it out by hand).
    """
    HEADERS = ["Original Path", "Quarantined Path", "Rejected At", "Status"]

    def __init__(self, store: FileRecordStore, backend: StorageBackend):
        self.store = store
        self.backend = backend

    def generate(self, output_csv: Path) -> int:
        """Writes one row per rejected record, newest first. Returns the row count."""
        rows = self.rows()
        logging.info(f"Exporting {len(rows)} rejected records -> {output_csv}")

        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(self.HEADERS)
            writer.writerows(rows)

        return len(rows)

    def rows(self) -> List[List[str]]:
        return [[r.original_path, r.deleted_path, r.rejected_at, self._status(r.original_path, r.deleted_path)]
                for r in self.store.get_rejected_records()]

    def _status(self, original_path: str, deleted_path: str) -> str:
        try:
            if self.backend.exists(deleted_path):
                return "In Quarantine"
            if self.backend.exists(original_path):
                return "Restored"
        except Exception as e:
            logging.debug(f"Cannot check {deleted_path}: {e}")
            return "Unknown"
        return "Deleted"
