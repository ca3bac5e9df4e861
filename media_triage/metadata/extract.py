import io
import logging
from datetime import datetime
from typing import Optional, Dict, Any

import exifread
from PIL import Image

from ..models import MediaType
from ..scanning.backends import StorageBackend, Source

DATE_TAGS = [
    'EXIF DateTimeOriginal',
    'EXIF DateTimeDigitized',
    'Image DateTime',
]


def format_size(size_bytes: Optional[int]) -> str:
    if size_bytes is None:
        return "?"
    if size_bytes < 1024:
        return f"{size_bytes} B"
    size = size_bytes / 1024
    for unit in ("KB", "MB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


class MetadataExtractor:
    """
    Details shown next to a file while it is being reviewed.

    Reads go through the storage backend so the same code serves both
    absolute paths and directory-handle locations.
      - Images: dimensions via Pillow, capture time and camera via exifread.
      - Everything else: name and size only.
    """
    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def describe(self, source: Source, media_type: MediaType, file_size: Optional[int] = None) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            'name': self.backend.name_of(source),
            'type': MediaType(media_type).value,
            'size': format_size(file_size),
        }
        if media_type == MediaType.IMAGE:
            info.update(self.get_image_metadata(source))
        return info

    def get_image_metadata(self, source: Source) -> Dict[str, Any]:
        try:
            data = self.backend.read_bytes(source)
        except OSError as e:
            logging.warning(f"Cannot read {source}: {e}")
            return {}

        meta: Dict[str, Any] = {}
        try:
            with Image.open(io.BytesIO(data)) as im:
                meta['dimensions'] = f"{im.width}x{im.height}"
                meta['format'] = im.format
        except Exception as e:
            # SVG, truncated or exotic files: Pillow just can't say
            logging.debug(f"Pillow could not open {source}: {e}")

        try:
            # details=False skips thumbnails and maker notes
            tags = exifread.process_file(io.BytesIO(data), details=False)
        except Exception as e:
            logging.debug(f"ExifRead failed for {source}: {e}")
            tags = {}

        dt = self._parse_exif_date(tags)
        if dt:
            meta['captured'] = dt.isoformat(sep=' ')
        if 'Image Model' in tags:
            meta['camera'] = str(tags['Image Model']).strip()
        return meta

    def _parse_exif_date(self, tags) -> Optional[datetime]:
        for tag in DATE_TAGS:
            if tag in tags:
                try:
                    # EXIF format is usually "YYYY:MM:DD HH:MM:SS"
                    dt_str = str(tags[tag]).replace(':', '-', 2)
                    return datetime.strptime(dt_str, "%Y-%m-%d %H:%M:%S")
                except ValueError:
                    continue
        return None
