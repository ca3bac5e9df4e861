from typing import Dict, Optional

from .config import FileTypes
from .models import MediaType


class MediaTypeClassifier:
    """
    Maps a file extension to its media category.
    Lookup is a flat dict built once from the four category lists.
    """
    def __init__(self, file_types: Optional[FileTypes] = None):
        file_types = file_types or FileTypes()
        self.ext_to_type: Dict[str, MediaType] = {}
        for ext in file_types.images: self.ext_to_type[ext.lower()] = MediaType.IMAGE
        for ext in file_types.documents: self.ext_to_type[ext.lower()] = MediaType.DOCUMENT
        for ext in file_types.videos: self.ext_to_type[ext.lower()] = MediaType.VIDEO
        for ext in file_types.audio: self.ext_to_type[ext.lower()] = MediaType.AUDIO

    def classify(self, extension: str) -> Optional[MediaType]:
        """
        Classifies an extension such as '.JPG'.
        Only the part after the last dot counts, so '.tar.gz' is looked up as '.gz'.
        """
        if not extension or '.' not in extension:
            return None
        suffix = extension[extension.rfind('.'):].lower()
        if suffix == '.':
            return None
        return self.ext_to_type.get(suffix)

    def classify_name(self, name: str) -> Optional[MediaType]:
        return self.classify(extension_of(name))


def extension_of(name: str) -> str:
    """Lowercased extension of a file name, '' when it has none."""
    dot = name.rfind('.')
    if dot <= 0:
        # no dot, or a bare dotfile like '.bashrc'
        return ''
    return name[dot:].lower()
