from dataclasses import dataclass
from enum import Enum
from typing import Optional, Any


class MediaType(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"
    VIDEO = "video"
    AUDIO = "audio"


class FileStatus(str, Enum):
    PENDING = "pending"
    KEPT = "kept"
    REJECTED = "rejected"
    MISSING = "missing"


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    PERMISSION_DENIED = "PermissionDenied"
    BUSY = "Busy"
    NO_SPACE = "NoSpace"
    VALIDATION = "ValidationError"
    STORAGE = "StorageError"
    UNKNOWN = "Unknown"


@dataclass
class FileRecord:
    """
    Represents a file the engine has ever seen.
    """
    filepath: str
    media_type: MediaType
    status: FileStatus = FileStatus.PENDING
    file_size: Optional[int] = None
    file_hash: Optional[str] = None   # reserved, never consumed

    # Managed by the store
    id: Optional[int] = None
    reviewed_at: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class RejectedFileRecord:
    """One executed move into the quarantine folder."""
    id: int
    original_path: str
    deleted_path: str
    rejected_at: str


@dataclass
class ScanCandidate:
    filepath: str
    media_type: MediaType
    file_size: int
    handle: Optional[Any] = None   # backend capability token, if any


@dataclass
class QueueItem:
    filepath: str
    media_type: MediaType
    file_size: int
    status: FileStatus


@dataclass
class Stats:
    total: int = 0
    pending: int = 0
    kept: int = 0
    rejected: int = 0

    @property
    def reviewed(self) -> int:
        # 'missing' rows count as reviewed here
        return self.total - self.pending


@dataclass
class ScanSummary:
    count: int
    success: bool = True
    error: Optional[str] = None


@dataclass
class MoveResult:
    success: bool
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    path: Optional[str] = None

    @classmethod
    def ok(cls, path: Optional[str] = None) -> "MoveResult":
        return cls(success=True, path=path)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> "MoveResult":
        return cls(success=False, error=kind, message=message)
