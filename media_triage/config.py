"""
Configuration constants and the user-editable settings file.
"""
import json
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List, Optional, Dict, Any

from .exceptions import ConfigError

# --- File Type Definitions ---
IMAGE_EXTS = ['.jpg', '.jpeg', '.png', '.gif', '.bmp', '.webp', '.svg', '.ico', '.tiff', '.tif']
DOCUMENT_EXTS = ['.pdf', '.doc', '.docx', '.txt', '.rtf', '.xls', '.xlsx', '.ppt', '.pptx', '.odt', '.ods']
VIDEO_EXTS = ['.mp4', '.avi', '.mov', '.wmv', '.mkv', '.flv', '.webm', '.m4v', '.mpg', '.mpeg']
AUDIO_EXTS = ['.mp3', '.wav', '.flac', '.aac', '.ogg', '.wma', '.m4a', '.opus']

# OS junk that is never worth reviewing
SYSTEM_FILE_NAMES = {'thumbs.db', 'desktop.ini', '.ds_store', 'ehthumbs.db', 'icon\r'}
SYSTEM_FILE_PREFIXES = ('~$', '._')

# --- Storage Layout ---
APP_DATA_DIR = Path.home() / ".media_triage"
CONFIG_FILE = "config.json"
DATABASE_FILE = "state.db"
LOG_FILE = "media_triage.log"

# --- Quarantine ---
DEFAULT_DELETED_FOLDER_NAME = "Media_Cleanup_Deleted"
# Sortable wall-clock suffix used to disambiguate colliding names
COLLISION_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


@dataclass
class FileTypes:
    images: List[str] = field(default_factory=lambda: list(IMAGE_EXTS))
    documents: List[str] = field(default_factory=lambda: list(DOCUMENT_EXTS))
    videos: List[str] = field(default_factory=lambda: list(VIDEO_EXTS))
    audio: List[str] = field(default_factory=lambda: list(AUDIO_EXTS))

    def enabled_extensions(self) -> set[str]:
        return {e.lower() for e in self.images + self.documents + self.videos + self.audio}


@dataclass
class ScanFilters:
    min_size: int = 0
    max_size: Optional[int] = None   # None or 0 means unbounded
    exclude_hidden: bool = True
    exclude_system: bool = True
    enabled_extensions: set[str] = field(default_factory=lambda: FileTypes().enabled_extensions())


@dataclass
class UiOptions:
    show_metadata: bool = True


@dataclass
class AppConfig:
    scan_paths: List[str] = field(default_factory=list)
    deleted_folder: str = ""
    file_types: FileTypes = field(default_factory=FileTypes)
    min_size: int = 0
    max_size: Optional[int] = None
    exclude_hidden: bool = True
    exclude_system: bool = True
    ui: UiOptions = field(default_factory=UiOptions)

    @property
    def filters(self) -> ScanFilters:
        """Snapshot of the scan filters; the scanner never sees later edits."""
        return ScanFilters(
            min_size=self.min_size or 0,
            max_size=self.max_size or None,
            exclude_hidden=self.exclude_hidden,
            exclude_system=self.exclude_system,
            enabled_extensions=self.file_types.enabled_extensions(),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        filters = {k: data.pop(k) for k in ('min_size', 'max_size', 'exclude_hidden', 'exclude_system')}
        data['filters'] = filters
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        defaults = cls()
        filters = data.get('filters') or {}
        types = data.get('file_types') or {}
        ui = data.get('ui') or {}
        return cls(
            scan_paths=list(data.get('scan_paths') or []),
            deleted_folder=data.get('deleted_folder') or defaults.deleted_folder,
            file_types=FileTypes(
                images=list(types.get('images', IMAGE_EXTS)),
                documents=list(types.get('documents', DOCUMENT_EXTS)),
                videos=list(types.get('videos', VIDEO_EXTS)),
                audio=list(types.get('audio', AUDIO_EXTS)),
            ),
            min_size=int(filters.get('min_size') or 0),
            max_size=filters.get('max_size') or None,
            exclude_hidden=bool(filters.get('exclude_hidden', True)),
            exclude_system=bool(filters.get('exclude_system', True)),
            ui=UiOptions(show_metadata=bool(ui.get('show_metadata', True))),
        )


def default_deleted_folder() -> str:
    return str(Path.home() / DEFAULT_DELETED_FOLDER_NAME)


def load_config(path: Path) -> AppConfig:
    """
    Reads the JSON settings file. A missing file yields defaults.
    Missing keys fall back to defaults so older files keep working.
    """
    if not path.exists():
        logging.info(f"No config file at {path}, using defaults.")
        return AppConfig(deleted_folder=default_deleted_folder())

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")

    cfg = AppConfig.from_dict(data)
    if not cfg.deleted_folder:
        cfg.deleted_folder = default_deleted_folder()
    return cfg


def save_config(path: Path, cfg: AppConfig):
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(cfg.to_dict(), f, indent=2)
    except OSError as e:
        raise ConfigError(f"Cannot write config {path}: {e}") from e
