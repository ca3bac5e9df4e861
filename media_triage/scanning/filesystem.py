import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Set, Iterable

from tqdm import tqdm

from .. import config
from ..classifier import MediaTypeClassifier, extension_of
from ..config import ScanFilters
from ..models import ScanCandidate
from .backends import StorageBackend


def is_system_file(name: str) -> bool:
    lower = name.lower()
    return lower in config.SYSTEM_FILE_NAMES or lower.startswith(config.SYSTEM_FILE_PREFIXES)


def passes_filters(name: str, size: int, filters: ScanFilters) -> bool:
    """Extension, size and visibility rules. Pure, so safe to re-apply."""
    if extension_of(name) not in filters.enabled_extensions:
        return False
    if size < (filters.min_size or 0):
        return False
    if filters.max_size and size > filters.max_size:
        return False
    if filters.exclude_hidden and name.startswith('.'):
        return False
    if filters.exclude_system and is_system_file(name):
        return False
    return True


class DirectoryScanner:
    def __init__(self, backend: StorageBackend, classifier: Optional[MediaTypeClassifier] = None):
        self.backend = backend
        self.classifier = classifier or MediaTypeClassifier()

    def scan(self,
             roots: Iterable[str],
             filters: ScanFilters,
             max_depth: Optional[int] = None,
             skip_dirs: Optional[Set[str]] = None,
             max_workers: int = 4,
             progress: bool = False) -> List[ScanCandidate]:
        """
        Scans every root concurrently and returns the filtered candidates,
        deduplicated by filepath.

        Args:
            max_depth: Directory levels below each root to descend (None = unbounded)
            skip_dirs: Folders never descended into (the quarantine folder, typically)
            progress: Show a per-root progress bar
        """
        live_roots = []
        for root in dict.fromkeys(roots):
            if not self.backend.is_dir(root):
                logging.warning(f"Scan path does not exist: {root}")
                continue
            live_roots.append(root)

        if not live_roots:
            return []

        results: List[ScanCandidate] = []
        workers = max(1, min(max_workers, len(live_roots)))

        # One traversal per root; a failing root never cancels the others
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_root = {
                executor.submit(self._scan_root, root, filters, max_depth, skip_dirs): root
                for root in live_roots
            }
            for future in tqdm(as_completed(future_to_root), total=len(future_to_root),
                               desc="Scanning", unit="root", disable=not progress):
                root = future_to_root[future]
                try:
                    records = future.result()
                except Exception as e:
                    logging.error(f"Failed to scan {root}: {e}")
                    continue
                logging.info(f"Found {len(records)} files in {root}")
                results.extend(records)

        seen = set()
        unique = []
        for cand in results:
            if cand.filepath in seen:
                continue
            seen.add(cand.filepath)
            unique.append(cand)
        return unique

    def _scan_root(self,
                   root: str,
                   filters: ScanFilters,
                   max_depth: Optional[int],
                   skip_dirs: Optional[Set[str]]) -> List[ScanCandidate]:
        records = []
        for entry in self.backend.enumerate(root, max_depth=max_depth,
                                            skip_hidden_dirs=filters.exclude_hidden,
                                            skip_dirs=skip_dirs):
            try:
                if not passes_filters(entry.name, entry.size, filters):
                    continue
                media_type = self.classifier.classify_name(entry.name)
                if media_type is None:
                    continue
                records.append(ScanCandidate(
                    filepath=entry.location,
                    media_type=media_type,
                    file_size=entry.size,
                    handle=entry.handle,
                ))
            except Exception as e:
                logging.error(f"Failed to process {entry.location}: {e}")
        return records
