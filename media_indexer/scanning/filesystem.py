import os
import logging
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Set, Tuple

from ..exceptions import RootPathInaccessible
from ..models import WalkEntry

ErrorHook = Callable[[Path, OSError], None]


def _default_on_error(path: Path, err: OSError):
    logging.warning(f"Cannot read directory {path}: {err}")


class DirectoryWalker:
    """
    Lazy depth-first enumeration of a library subtree.

    Each call to `walk` starts from scratch; nothing about a previous walk is
    remembered. Symbolic links are followed, but a directory is never entered
    twice within one walk, so link loops terminate.
    """
    def __init__(self, on_error: Optional[ErrorHook] = None):
        self.on_error = on_error or _default_on_error

    def ensure_accessible(self, root: Path) -> os.stat_result:
        """Raises RootPathInaccessible unless `root` is a listable directory."""
        try:
            st = os.stat(root)
        except OSError as e:
            raise RootPathInaccessible(root, e.strerror or str(e)) from e
        if not os.path.isdir(root):
            raise RootPathInaccessible(root, "not a directory")
        if not os.access(root, os.R_OK | os.X_OK):
            raise RootPathInaccessible(root, "permission denied")
        return st

    def list_directory(self, root: Path) -> List[WalkEntry]:
        """
        Immediate children of `root`, sorted case-insensitively by name.
        """
        try:
            entries = self._scan(root)
        except OSError as e:
            raise RootPathInaccessible(root, e.strerror or str(e)) from e
        return [self._to_entry(e) for e in entries]

    def walk(self, root: Path) -> Iterator[WalkEntry]:
        """
        Yields every entry below `root` (not `root` itself).

        A directory entry is always yielded before anything inside it.
        Unreadable nested directories are reported through `on_error` and
        skipped; an unreadable `root` raises RootPathInaccessible on the
        first iteration.
        """
        root_stat = self.ensure_accessible(root)
        visited: Set[Tuple[int, int]] = {(root_stat.st_dev, root_stat.st_ino)}

        stack = [Path(root)]
        first = True
        while stack:
            current = stack.pop()
            try:
                entries = self._scan(current)
            except OSError as e:
                if first:
                    raise RootPathInaccessible(current, e.strerror or str(e)) from e
                self.on_error(current, e)
                continue
            first = False

            dirs = []
            for e in entries:
                entry = self._to_entry(e)
                if entry.is_dir:
                    try:
                        st = e.stat()
                    except OSError as err:
                        self.on_error(entry.path, err)
                        continue
                    key = (st.st_dev, st.st_ino)
                    if key in visited:
                        logging.debug(f"Skipping already visited directory {entry.path}")
                        continue
                    visited.add(key)
                    dirs.append(entry.path)
                yield entry

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

    def _scan(self, directory: Path) -> List[os.DirEntry]:
        with os.scandir(directory) as it:
            entries = [e for e in it if not e.name.startswith('.')]
        # Sort for stable traversal order
        entries.sort(key=lambda e: e.name.lower())
        return entries

    def _to_entry(self, e: os.DirEntry) -> WalkEntry:
        try:
            is_dir = e.is_dir()
        except OSError:
            is_dir = False
        path = Path(e.path)
        return WalkEntry(path=path, is_dir=is_dir, ext='' if is_dir else path.suffix.lower())
