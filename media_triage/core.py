import logging
import os
import random
from typing import List, Optional, Dict, Any, Set

from .classifier import MediaTypeClassifier
from .config import AppConfig, DEFAULT_DELETED_FOLDER_NAME
from .database.store import FileRecordStore
from .exceptions import StorageError
from .metadata.extract import MetadataExtractor
from .models import (ErrorKind, FileStatus, MoveResult, QueueItem, RejectedFileRecord,
                     ScanCandidate, ScanSummary, Stats)
from .organization.mover import FileMoveEngine
from .queue_builder import QueueBuilder
from .scanning.backends import StorageBackend, LocalFilesystemBackend, ScopedDirectoryBackend
from .scanning.filesystem import DirectoryScanner


class ReviewSession:
    """
    The queue/session API a front end drives.

    Owns the in-memory queue. The queue order itself is persisted through
    the store, so a later session resumes the same order instead of
    re-applying an index to a reshuffled list.
    """
    def __init__(self,
                 store: FileRecordStore,
                 backend: StorageBackend,
                 builder: QueueBuilder,
                 mover: FileMoveEngine):
        self.store = store
        self.backend = backend
        self.builder = builder
        self.mover = mover
        self.metadata = MetadataExtractor(backend)
        self.queue: List[ScanCandidate] = []
        self.index = 0
        self.skipped: Set[str] = set()

    @classmethod
    def from_config(cls,
                    store: FileRecordStore,
                    cfg: AppConfig,
                    backend: Optional[StorageBackend] = None,
                    rng: Optional[random.Random] = None,
                    max_depth: Optional[int] = None) -> "ReviewSession":
        """
        Wires scanner, builder and mover from a config snapshot.
        With a ScopedDirectoryBackend, scan paths and the quarantine folder are
        relative to the granted directory.
        """
        backend = backend or LocalFilesystemBackend()
        if isinstance(backend, ScopedDirectoryBackend):
            roots = cfg.scan_paths or [""]
            # A handle has no notion of absolute paths; keep the quarantine inside the grant
            if cfg.deleted_folder and not os.path.isabs(cfg.deleted_folder):
                quarantine = cfg.deleted_folder
            else:
                quarantine = DEFAULT_DELETED_FOLDER_NAME
        else:
            roots = cfg.scan_paths
            quarantine = cfg.deleted_folder

        scanner = DirectoryScanner(backend, MediaTypeClassifier(cfg.file_types))
        builder = QueueBuilder(store, scanner, roots, cfg.filters,
                               skip_dirs={quarantine} if quarantine else set(),
                               max_depth=max_depth, rng=rng)
        mover = FileMoveEngine(store, backend, quarantine)
        return cls(store, backend, builder, mover)

    # --- Queue ---

    def initialize_scan(self, progress: bool = False) -> ScanSummary:
        """
        Scans, merges with the persisted queue and persists the result.
        Still-pending entries of the saved queue keep their order at the front;
        newly discovered files follow in shuffled order.
        """
        try:
            fresh = self.builder.build_queue(progress=progress)
        except StorageError as e:
            logging.error(f"Scan failed: {e}")
            return ScanSummary(count=0, success=False, error=str(e))

        by_path = {c.filepath: c for c in fresh}
        saved = self.store.get_saved_queue()
        resumed = [by_path.pop(p) for p in saved if p in by_path]
        queue = resumed + [c for c in fresh if c.filepath in by_path]

        try:
            self.store.save_queue([c.filepath for c in queue])
        except StorageError as e:
            logging.error(f"Could not persist queue: {e}")
            return ScanSummary(count=0, success=False, error=str(e))

        self.queue = queue
        self.index = 0
        if resumed:
            logging.info(f"Resumed {len(resumed)} queued files from the previous session")
        logging.info(f"Scan complete. {len(queue)} files to review.")
        return ScanSummary(count=len(queue))

    def resume(self) -> int:
        """
        Rebuilds the in-memory queue from the persisted order and position
        without rescanning. Returns the number of entries left.
        """
        saved = self.store.get_saved_queue()
        position = min(self.store.get_queue_position(), len(saved))
        queue = []
        for filepath in saved[position:]:
            rec = self.store.get_file(filepath)
            if rec is None or rec.status != FileStatus.PENDING:
                continue
            queue.append(ScanCandidate(
                filepath=rec.filepath,
                media_type=rec.media_type,
                file_size=rec.file_size or 0,
                handle=self._handle_for(rec.filepath),
            ))
        self.queue = queue
        self.index = 0
        try:
            self.store.save_queue([c.filepath for c in queue])
        except StorageError as e:
            logging.warning(f"Could not persist resumed queue: {e}")
        return len(queue)

    def get_next_file(self) -> Optional[QueueItem]:
        """
        Current item, without advancing. Vanished files are marked 'missing'
        and skipped; an exhausted queue falls back to the oldest pending row.
        """
        tried_fallback = set()
        while True:
            if self.index >= len(self.queue):
                # Files skipped this session are not served again
                nxt = self.builder.get_next_pending_file(exclude=self.skipped)
                if nxt is None or nxt.filepath in tried_fallback:
                    return None
                tried_fallback.add(nxt.filepath)
                nxt.handle = self._handle_for(nxt.filepath)
                self.queue = [nxt]
                self.index = 0
                try:
                    self.store.save_queue([nxt.filepath])
                except StorageError as e:
                    logging.warning(f"Could not persist fallback queue: {e}")

            item = self.queue[self.index]
            if not self._exists(item):
                logging.info(f"File no longer exists: {item.filepath}")
                try:
                    self.store.update_status(item.filepath, FileStatus.MISSING)
                except StorageError as e:
                    logging.error(f"Could not mark {item.filepath} missing: {e}")
                self._advance()
                continue

            rec = self.store.get_file(item.filepath)
            status = rec.status if rec else FileStatus.PENDING
            if status != FileStatus.PENDING:
                # Decided through another path since the queue was built
                self._advance()
                continue

            return QueueItem(
                filepath=item.filepath,
                media_type=item.media_type,
                file_size=item.file_size,
                status=status,
            )

    def remaining(self) -> int:
        return max(0, len(self.queue) - self.index)

    # --- Decisions ---

    def keep(self, filepath: str) -> MoveResult:
        try:
            self.store.update_status(filepath, FileStatus.KEPT)
        except StorageError as e:
            logging.error(f"Failed to keep {filepath}: {e}")
            return MoveResult.fail(ErrorKind.STORAGE, str(e))
        self._advance_past(filepath)
        return MoveResult.ok(filepath)

    def reject(self, filepath: str) -> MoveResult:
        handle = None
        if self.index < len(self.queue) and self.queue[self.index].filepath == filepath:
            handle = self.queue[self.index].handle
        if handle is None:
            handle = self._handle_for(filepath)

        result = self.mover.reject(filepath, handle)
        if result.success:
            self._advance_past(filepath)
        return result

    def skip(self, filepath: str):
        """
        Moves past the current item without deciding. It stays pending for a
        later session but is not offered again in this one.
        """
        self.skipped.add(filepath)
        self._advance_past(filepath)

    # --- Rejected files ---

    def get_stats(self) -> Stats:
        return self.store.get_stats()

    def get_rejected_files(self) -> List[RejectedFileRecord]:
        return self.store.get_rejected_records()

    def restore(self, original_path: str, deleted_path: str) -> MoveResult:
        return self.mover.restore(original_path, deleted_path)

    def permanently_delete(self, deleted_path: str) -> MoveResult:
        return self.mover.permanently_delete(deleted_path)

    def describe(self, item: QueueItem) -> Dict[str, Any]:
        source = self._handle_for(item.filepath) or item.filepath
        return self.metadata.describe(source, item.media_type, item.file_size)

    # --- Helpers ---

    def _advance_past(self, filepath: str):
        if self.index < len(self.queue) and self.queue[self.index].filepath == filepath:
            self._advance()

    def _advance(self):
        self.index += 1
        try:
            self.store.save_queue_position(self.index)
        except StorageError as e:
            # The decision itself is already stored; only resumption suffers
            logging.warning(f"Could not save queue position: {e}")

    def _exists(self, item: ScanCandidate) -> bool:
        try:
            return self.backend.exists(item.handle if item.handle is not None else item.filepath)
        except Exception as e:
            logging.warning(f"Cannot check {item.filepath}: {e}")
            return False

    def _handle_for(self, filepath: str):
        try:
            return self.backend.handle_for(filepath)
        except Exception as e:
            logging.warning(f"No handle for {filepath}: {e}")
            return None
