from typing import Optional

from .. import config
from ..models import MediaType


class TypeClassifier:
    """
    Maps folder names and file extensions to media types.
    """
    def __init__(self, keywords=None, ext_to_type=None):
        keywords = keywords if keywords is not None else config.DIRECTORY_KEYWORDS
        ext_to_type = ext_to_type if ext_to_type is not None else config.EXT_TO_TYPE

        # Keep table order so ties between types resolve predictably
        self.keywords = [
            (MediaType(t), tuple(k.lower() for k in words))
            for t, words in keywords.items()
        ]
        self.ext_to_type = {ext.lower(): MediaType(t) for ext, t in ext_to_type.items()}

    def classify_directory(self, name: str) -> Optional[MediaType]:
        """Fuzzy (substring, case-insensitive) match of a folder name."""
        lowered = name.lower()
        for media_type, words in self.keywords:
            if any(word in lowered for word in words):
                return media_type
        return None

    def classify_file(self, ext: str) -> Optional[MediaType]:
        if not ext:
            return None
        ext = ext.lower()
        if not ext.startswith('.'):
            ext = '.' + ext
        return self.ext_to_type.get(ext)

    def classify_entry(self, ext: str, enclosing: Optional[MediaType]) -> Optional[MediaType]:
        """
        Resolves the media type of a file.

        Only files with a known media extension are indexed. The nearest
        classified enclosing folder decides the type; the extension is the
        fallback when no folder above the file carries a type.
        """
        by_ext = self.classify_file(ext)
        if by_ext is None:
            return None
        return enclosing if enclosing is not None else by_ext
