import errno
import logging
import os
from datetime import datetime, UTC
from typing import Callable, Optional, Any

from .. import config
from ..database.store import FileRecordStore
from ..exceptions import MediaTriageError, StorageError
from ..models import ErrorKind, MoveResult
from ..scanning.backends import StorageBackend

# Windows sharing / lock violations surface as plain OSError with a winerror
_WIN_LOCKED = {32, 33}

_MESSAGES = {
    ErrorKind.NOT_FOUND: "File or directory not found.",
    ErrorKind.PERMISSION_DENIED: "Permission denied. File may be in use or locked.",
    ErrorKind.BUSY: "File is currently in use by another process.",
    ErrorKind.NO_SPACE: "Insufficient disk space.",
}


def classify_os_error(err: OSError) -> ErrorKind:
    if getattr(err, "winerror", None) in _WIN_LOCKED:
        return ErrorKind.PERMISSION_DENIED
    code = err.errno
    if isinstance(err, FileNotFoundError) or code == errno.ENOENT:
        return ErrorKind.NOT_FOUND
    if isinstance(err, PermissionError) or code in (errno.EACCES, errno.EPERM):
        return ErrorKind.PERMISSION_DENIED
    if code in (errno.EBUSY, getattr(errno, "ETXTBSY", None)):
        return ErrorKind.BUSY
    if code in (errno.ENOSPC, getattr(errno, "EDQUOT", None)):
        return ErrorKind.NO_SPACE
    return ErrorKind.UNKNOWN


def describe_os_error(err: OSError) -> str:
    kind = classify_os_error(err)
    return _MESSAGES.get(kind) or str(err) or "Unknown error"


class FileMoveEngine:
    """
    Reject / restore / permanent delete.

    The store is written only after the file has physically moved, so a
    failed move never leaves a 'rejected' row behind. No operation raises:
    every outcome is a MoveResult.
    """
    def __init__(self,
                 store: FileRecordStore,
                 backend: StorageBackend,
                 quarantine_folder: str,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.backend = backend
        self.quarantine_folder = quarantine_folder
        self.clock = clock or (lambda: datetime.now(UTC))

    def reject(self, filepath: str, handle: Optional[Any] = None) -> MoveResult:
        if not self.quarantine_folder:
            return MoveResult.fail(ErrorKind.VALIDATION, "Deleted folder not configured")

        source = handle if handle is not None else filepath
        try:
            if not self.backend.exists(source):
                return MoveResult.fail(ErrorKind.NOT_FOUND, f"File does not exist: {filepath}")

            self.backend.ensure_folder(self.quarantine_folder)
            name = self.backend.name_of(source)
            target_name = self._free_name(self.quarantine_folder, name, "")
            deleted_path = self.backend.move(source, self.quarantine_folder, target_name)
        except OSError as e:
            logging.error(f"Failed to reject {filepath}: {e}")
            return MoveResult.fail(classify_os_error(e), describe_os_error(e))
        except MediaTriageError as e:
            logging.error(f"Failed to reject {filepath}: {e}")
            return MoveResult.fail(ErrorKind.PERMISSION_DENIED, str(e))

        try:
            self.store.record_rejection(filepath, deleted_path)
        except StorageError as e:
            logging.error(f"Moved {filepath} but could not record it: {e}")
            note = self._undo_move(deleted_path, filepath)
            return MoveResult.fail(ErrorKind.STORAGE, f"{e} ({note})")

        logging.info(f"Rejected {filepath} -> {deleted_path}")
        return MoveResult.ok(deleted_path)

    def restore(self, original_path: str, deleted_path: str) -> MoveResult:
        """
        Moves a quarantined file back. An occupied original location gets a
        '_restored_<timestamp>' name instead of being overwritten.
        """
        try:
            if not self.backend.exists(deleted_path):
                return MoveResult.fail(ErrorKind.NOT_FOUND, f"File not found in deleted folder: {deleted_path}")

            parent = self.backend.parent_of(original_path)
            name = self.backend.name_of(original_path)
            if parent:
                self.backend.ensure_folder(parent)
            target_name = self._free_name(parent, name, "restored_")
            restored_path = self.backend.move(deleted_path, parent, target_name)
        except OSError as e:
            logging.error(f"Failed to restore {deleted_path}: {e}")
            return MoveResult.fail(classify_os_error(e), describe_os_error(e))
        except MediaTriageError as e:
            logging.error(f"Failed to restore {deleted_path}: {e}")
            return MoveResult.fail(ErrorKind.PERMISSION_DENIED, str(e))

        try:
            self._mark_restored(original_path, restored_path)
        except StorageError as e:
            logging.error(f"Restored {deleted_path} but could not record it: {e}")
            note = self._undo_move(restored_path, deleted_path)
            return MoveResult.fail(ErrorKind.STORAGE, f"{e} ({note})")

        logging.info(f"Restored {deleted_path} -> {restored_path}")
        return MoveResult.ok(restored_path)

    def permanently_delete(self, deleted_path: str) -> MoveResult:
        """
        Unlinks a quarantined file. Its rejected record stays as the audit trail.
        Only files inside the quarantine folder can be deleted.
        """
        try:
            if not self.quarantine_folder or not self.backend.is_within(deleted_path, self.quarantine_folder):
                return MoveResult.fail(ErrorKind.VALIDATION, f"Not inside the deleted folder: {deleted_path}")
            if not self.backend.exists(deleted_path):
                return MoveResult.fail(ErrorKind.NOT_FOUND, f"File does not exist: {deleted_path}")
            self.backend.remove(deleted_path)
        except OSError as e:
            logging.error(f"Failed to delete {deleted_path}: {e}")
            return MoveResult.fail(classify_os_error(e), describe_os_error(e))
        except MediaTriageError as e:
            logging.error(f"Failed to delete {deleted_path}: {e}")
            return MoveResult.fail(ErrorKind.PERMISSION_DENIED, str(e))

        logging.info(f"Permanently deleted {deleted_path}")
        return MoveResult.ok(deleted_path)

    def _free_name(self, folder: str, name: str, tag: str) -> str:
        """
        Returns name if it is free in folder, else '<stem>_<tag><timestamp><ext>'.
        A second collision in the same second is not re-disambiguated; the
        move then fails instead of overwriting.
        """
        if not self.backend.exists(self.backend.join(folder, name)):
            return name
        stem, ext = os.path.splitext(name)
        stamp = self.clock().strftime(config.COLLISION_TIMESTAMP_FORMAT)
        return f"{stem}_{tag}{stamp}{ext}"

    def _mark_restored(self, original_path: str, restored_path: str):
        # Landed beside an occupant: the restored copy is tracked as its own pending file
        rec = self.store.get_file(original_path)
        self.store.record_restore(
            original_path,
            restored_path,
            media_type=rec.media_type if rec else None,
            file_size=rec.file_size if rec else None,
        )

    def _undo_move(self, current: str, back_to: str) -> str:
        """Puts a file back after a failed store write. Returns a note for the caller."""
        try:
            self.backend.move(current, self.backend.parent_of(back_to), self.backend.name_of(back_to))
        except (OSError, MediaTriageError) as e:
            logging.critical(f"Could not roll back move; file left at {current}: {e}")
            return f"file left at {current}"
        return f"file moved back to {back_to}"
