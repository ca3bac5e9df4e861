"""
Storage backends.

The queue builder and the move engine only talk to StorageBackend. Two
implementations exist:

  - LocalFilesystemBackend: locations are absolute, normalized paths.
  - ScopedDirectoryBackend: access is limited to one granted directory.
    Locations are POSIX paths relative to that directory and every
    enumerated file carries a FileHandle token, so nothing outside the
    grant can be reached even when a caller hands in '../' paths.
"""
import errno
import os
import posixpath
import shutil
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Set, Union, Any

from ..exceptions import ScopeError


@dataclass
class FileEntry:
    location: str
    name: str
    size: int
    handle: Optional[Any] = None


@dataclass(frozen=True)
class FileHandle:
    """Capability token for one file inside a ScopedDirectoryBackend."""
    scope: str
    relpath: str

    @property
    def name(self) -> str:
        return posixpath.basename(self.relpath)


Source = Union[str, FileHandle]

# Never descended into while scanning
SKIP_DIR_NAMES = {'node_modules', '__pycache__'}


class StorageBackend(ABC):
    @abstractmethod
    def enumerate(self,
                  root: str,
                  max_depth: Optional[int] = None,
                  skip_hidden_dirs: bool = False,
                  skip_dirs: Optional[Set[str]] = None) -> Iterator[FileEntry]:
        """Yields every regular file under root, depth-first."""

    @abstractmethod
    def read_bytes(self, source: Source) -> bytes:
        ...

    @abstractmethod
    def move(self, source: Source, dest_folder: str, new_name: str) -> str:
        """Moves source into dest_folder as new_name and returns the new location.
        Never overwrites: an existing target raises FileExistsError."""

    @abstractmethod
    def remove(self, source: Source):
        ...

    @abstractmethod
    def create_subfolder(self, parent: str, name: str) -> str:
        ...

    @abstractmethod
    def ensure_folder(self, location: str) -> str:
        ...

    @abstractmethod
    def exists(self, source: Source) -> bool:
        ...

    @abstractmethod
    def is_dir(self, location: str) -> bool:
        ...

    @abstractmethod
    def handle_for(self, location: str) -> Optional[Any]:
        ...

    @abstractmethod
    def join(self, folder: str, name: str) -> str:
        ...

    @abstractmethod
    def parent_of(self, location: str) -> str:
        ...

    @abstractmethod
    def name_of(self, source: Source) -> str:
        ...

    @abstractmethod
    def is_within(self, source: Source, folder: str) -> bool:
        """True when source lies strictly below folder."""


def _walk(root: Path,
          max_depth: Optional[int],
          skip_hidden_dirs: bool,
          skip_dirs: Set[Path]) -> Iterator[tuple[Path, int]]:
    """Depth-first walker using os.scandir for speed. Yields (file, size)."""
    stack = [(root, 0)]
    while stack:
        current, depth = stack.pop()
        if current in skip_dirs:
            continue

        try:
            with os.scandir(current) as it:
                entries = list(it)
        except OSError as e:
            logging.warning(f"Cannot list {current}: {e}")
            continue

        # Sort for stable traversal order
        entries.sort(key=lambda e: e.name.lower())

        dirs = []
        for e in entries:
            try:
                if e.is_dir(follow_symlinks=False):
                    if skip_hidden_dirs and e.name.startswith('.'):
                        continue
                    if e.name in SKIP_DIR_NAMES:
                        continue
                    if max_depth is None or depth + 1 <= max_depth:
                        dirs.append(Path(e.path))
                elif e.is_file(follow_symlinks=False):
                    yield Path(e.path), e.stat(follow_symlinks=False).st_size
            except OSError as err:
                logging.warning(f"Skipping {e.path}: {err}")

        # Push dirs to stack (reversed so we process A before Z)
        for d in reversed(dirs):
            stack.append((d, depth + 1))


def _rename_no_clobber(src: Path, target: Path):
    if os.path.lexists(target):
        raise FileExistsError(errno.EEXIST, "Target already exists", str(target))
    try:
        # Atomic on the same volume
        os.rename(src, target)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        shutil.move(str(src), str(target))


class LocalFilesystemBackend(StorageBackend):
    """Direct access through absolute paths."""

    def enumerate(self, root, max_depth=None, skip_hidden_dirs=False, skip_dirs=None):
        root_path = Path(self._normalize(root))
        skip = {Path(self._normalize(s)) for s in (skip_dirs or ())}
        for path, size in _walk(root_path, max_depth, skip_hidden_dirs, skip):
            yield FileEntry(location=str(path), name=path.name, size=size)

    def read_bytes(self, source):
        return Path(self._location(source)).read_bytes()

    def move(self, source, dest_folder, new_name):
        target = Path(self._normalize(dest_folder)) / new_name
        _rename_no_clobber(Path(self._location(source)), target)
        return str(target)

    def remove(self, source):
        os.unlink(self._location(source))

    def create_subfolder(self, parent, name):
        folder = Path(self._normalize(parent)) / name
        folder.mkdir(exist_ok=True)
        return str(folder)

    def ensure_folder(self, location):
        folder = Path(self._normalize(location))
        folder.mkdir(parents=True, exist_ok=True)
        return str(folder)

    def exists(self, source):
        return os.path.exists(self._location(source))

    def is_dir(self, location):
        return os.path.isdir(self._normalize(location))

    def handle_for(self, location):
        return None

    def join(self, folder, name):
        return os.path.join(self._normalize(folder), name)

    def parent_of(self, location):
        return os.path.dirname(self._normalize(location))

    def name_of(self, source):
        return os.path.basename(self._location(source))

    def is_within(self, source, folder):
        location, base = self._location(source), self._normalize(folder)
        try:
            return location != base and os.path.commonpath([location, base]) == base
        except ValueError:
            # Different drives
            return False

    def _location(self, source: Source) -> str:
        if isinstance(source, FileHandle):
            raise ScopeError("Local backend does not accept directory-handle tokens")
        return self._normalize(source)

    @staticmethod
    def _normalize(location: str) -> str:
        return os.path.normpath(os.path.abspath(os.path.expanduser(location)))


class ScopedDirectoryBackend(StorageBackend):
    """
    Access scoped to a single granted directory.
    '' is the granted directory itself.
    """
    def __init__(self, granted_dir: Path):
        self.granted_dir = Path(granted_dir).resolve()
        self.scope = uuid.uuid4().hex

    def enumerate(self, root, max_depth=None, skip_hidden_dirs=False, skip_dirs=None):
        root_path = self._resolve(root)
        skip = {self._resolve(s) for s in (skip_dirs or ())}
        for path, size in _walk(root_path, max_depth, skip_hidden_dirs, skip):
            rel = path.relative_to(self.granted_dir).as_posix()
            yield FileEntry(location=rel, name=path.name, size=size, handle=FileHandle(self.scope, rel))

    def read_bytes(self, source):
        return self._resolve(source).read_bytes()

    def move(self, source, dest_folder, new_name):
        self._check_name(new_name)
        target = self._resolve(dest_folder) / new_name
        _rename_no_clobber(self._resolve(source), target)
        return target.relative_to(self.granted_dir).as_posix()

    def remove(self, source):
        os.unlink(self._resolve(source))

    def create_subfolder(self, parent, name):
        self._check_name(name)
        folder = self._resolve(parent) / name
        folder.mkdir(exist_ok=True)
        return self.join(parent, name)

    def ensure_folder(self, location):
        self._resolve(location).mkdir(parents=True, exist_ok=True)
        return location

    def exists(self, source):
        return self._resolve(source).exists()

    def is_dir(self, location):
        try:
            return self._resolve(location).is_dir()
        except ScopeError as e:
            logging.warning(str(e))
            return False

    def handle_for(self, location):
        self._resolve(location)
        return FileHandle(self.scope, posixpath.normpath(location))

    def join(self, folder, name):
        return posixpath.join(folder, name) if folder else name

    def parent_of(self, location):
        return posixpath.dirname(location)

    def name_of(self, source):
        if isinstance(source, FileHandle):
            return source.name
        return posixpath.basename(source)

    def is_within(self, source, folder):
        path, base = self._resolve(source), self._resolve(folder)
        return base in path.parents

    def _resolve(self, source: Source) -> Path:
        if isinstance(source, FileHandle):
            if source.scope != self.scope:
                raise ScopeError(f"Handle for {source.relpath} was issued by another directory grant")
            relpath = source.relpath
        else:
            relpath = source

        if relpath.startswith('/') or (len(relpath) > 1 and relpath[1] == ':'):
            raise ScopeError(f"Absolute location {relpath!r} is outside the granted directory")

        path = (self.granted_dir / relpath).resolve()
        if path != self.granted_dir and self.granted_dir not in path.parents:
            raise ScopeError(f"Location {relpath!r} escapes the granted directory")
        return path

    @staticmethod
    def _check_name(name: str):
        if not name or '/' in name or '\\' in name or name in ('.', '..'):
            raise ScopeError(f"Invalid entry name {name!r}")
