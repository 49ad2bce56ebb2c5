from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class MediaType(str, Enum):
    MOVIE = 'movie'
    MUSIC = 'music'
    BOOK = 'book'
    PHOTO = 'photo'


class ItemStatus(str, Enum):
    ACTIVE = 'active'
    MISSING = 'missing'


class ScanOutcome(str, Enum):
    COMPLETED = 'completed'
    ABORTED = 'aborted'


@dataclass
class MediaItem:
    """
    One cataloged piece of content, keyed by the digest of its bytes.
    """
    content_id: str
    media_type: MediaType
    current_path: Path
    library_root: Path
    status: ItemStatus
    first_seen: datetime
    last_seen: datetime

    # Owned by the caller (ratings, watch state). Never written by a scan.
    user_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LibraryRoot:
    """
    A configured scan root and the subtree adopted for each media type.
    """
    root_path: Path
    subtrees: Dict[MediaType, Optional[Path]] = field(
        default_factory=lambda: {t: None for t in MediaType}
    )

    def assign(self, media_type: MediaType, path: Path) -> bool:
        """Adopts `path` for `media_type` unless a subtree is already assigned."""
        if self.subtrees.get(media_type) is not None:
            return False
        self.subtrees[media_type] = path
        return True

    def classified(self):
        """Yields (media_type, subtree_path) for every assigned type."""
        for media_type in MediaType:
            path = self.subtrees.get(media_type)
            if path is not None:
                yield media_type, path


@dataclass
class ScanRun:
    """
    Execution record of a single scan. Completed runs are kept in the
    catalog history; aborted runs are only logged.
    """
    library_root: Path
    started_at: datetime
    ended_at: Optional[datetime] = None
    items_observed: int = 0
    items_marked_missing: int = 0
    items_created: int = 0
    items_moved: int = 0
    files_hashed: int = 0
    files_skipped: int = 0
    outcome: Optional[ScanOutcome] = None
    error: Optional[Exception] = None

    def summary(self) -> str:
        elapsed = ""
        if self.ended_at:
            elapsed = f" in {(self.ended_at - self.started_at).total_seconds():.1f}s"
        return (
            f"Scan of {self.library_root} {self.outcome.value if self.outcome else 'pending'}{elapsed}: "
            f"{self.items_observed} observed, {self.items_created} new, "
            f"{self.items_moved} moved, {self.items_marked_missing} marked missing, "
            f"{self.files_hashed} hashed, {self.files_skipped} skipped"
        )


@dataclass
class WalkEntry:
    """A single filesystem entry produced by the directory walker."""
    path: Path
    is_dir: bool
    ext: str


@dataclass
class Observation:
    """
    A media file seen during a scan, with its identity resolved.
    """
    path: Path
    media_type: MediaType
    content_id: str
    size_bytes: int
    mtime: float
    from_cache: bool = False
