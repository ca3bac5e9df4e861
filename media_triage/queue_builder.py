import logging
import random
from typing import List, Optional, Iterable, Set

from .database.store import FileRecordStore
from .config import ScanFilters
from .models import FileRecord, FileStatus, ScanCandidate
from .scanning.filesystem import DirectoryScanner, passes_filters


class QueueBuilder:
    """
    Turns a fresh scan into the session's review queue.
    1. Scan (concurrent per root)
    2. Re-check filters
    3. Drop already-reviewed files
    4. Register new files as pending
    5. Shuffle
    """
    def __init__(self,
                 store: FileRecordStore,
                 scanner: DirectoryScanner,
                 roots: Iterable[str],
                 filters: ScanFilters,
                 skip_dirs: Optional[Set[str]] = None,
                 max_depth: Optional[int] = None,
                 rng: Optional[random.Random] = None):
        self.store = store
        self.scanner = scanner
        self.roots = list(roots)
        self.filters = filters
        self.skip_dirs = skip_dirs or set()
        self.max_depth = max_depth
        self.rng = rng or random.Random()

    def build_queue(self, progress: bool = False) -> List[ScanCandidate]:
        logging.info(f"Scanning {len(self.roots)} path(s)...")
        scanned = self.scanner.scan(self.roots, self.filters,
                                    max_depth=self.max_depth,
                                    skip_dirs=self.skip_dirs,
                                    progress=progress)
        logging.info(f"build_queue: {len(scanned)} files found")

        backend = self.scanner.backend
        filtered = [c for c in scanned
                    if passes_filters(backend.name_of(c.filepath), c.file_size, self.filters)]

        pending = [c for c in filtered if not self.store.is_reviewed(c.filepath)]
        logging.info(f"build_queue: {len(pending)} pending (not yet reviewed)")

        if pending:
            # Idempotent: rows from an interrupted earlier run are left alone
            self.store.add_files(
                FileRecord(filepath=c.filepath, media_type=c.media_type,
                           status=FileStatus.PENDING, file_size=c.file_size)
                for c in pending
            )

        return self.shuffle(pending)

    def shuffle(self, items: List[ScanCandidate]) -> List[ScanCandidate]:
        """Fisher-Yates; review order must not follow directory order."""
        shuffled = list(items)
        for i in range(len(shuffled) - 1, 0, -1):
            j = self.rng.randint(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled

    def get_next_pending_file(self, exclude: Optional[Set[str]] = None) -> Optional[ScanCandidate]:
        """Oldest pending row in the store, for when the in-memory queue runs dry."""
        rec = self.store.get_oldest_pending_file(exclude)
        if rec is None:
            return None
        return ScanCandidate(
            filepath=rec.filepath,
            media_type=rec.media_type,
            file_size=rec.file_size or 0,
            handle=None,
        )
