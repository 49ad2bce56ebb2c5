import os
import logging
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, UTC
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from tqdm import tqdm

from . import config
from .database.ops import CatalogStore
from .exceptions import (
    CatalogWriteError, FileReadError, HashComputationError, RootPathInaccessible, ScanAlreadyInProgress,
)
from .logsink import LoggerSink, LogSink
from .models import (
    ItemStatus, LibraryRoot, MediaItem, MediaType, Observation, ScanOutcome, ScanRun,
)
from .scanning.classifier import TypeClassifier
from .scanning.filesystem import DirectoryWalker
from .scanning.hasher import FileHasher

Candidate = Tuple[Path, MediaType]


class CatalogReconciler:
    """
    Runs scans of a library root and merges what is on disk into the catalog.

    One scan goes Walking -> Hashing+Upserting -> Finalizing. Only one scan
    may run at a time per reconciler; a concurrent request is rejected with
    ScanAlreadyInProgress rather than queued.
    """
    def __init__(self,
                 store: CatalogStore,
                 log_sink: Optional[LogSink] = None,
                 hasher: Optional[FileHasher] = None,
                 classifier: Optional[TypeClassifier] = None,
                 walker: Optional[DirectoryWalker] = None,
                 max_workers: int = config.DEFAULT_MAX_WORKERS,
                 show_progress: bool = False,
                 commit_every: int = 500,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.sink = log_sink or LoggerSink()
        self.hasher = hasher or FileHasher()
        self.classifier = classifier or TypeClassifier()
        self.walker = walker or DirectoryWalker(on_error=self._on_walk_error)
        self.max_workers = max(1, max_workers)
        self.show_progress = show_progress
        self.commit_every = max(1, commit_every)
        self._now = clock or (lambda: datetime.now(UTC))
        self._scan_lock = threading.Lock()

    @property
    def scanning(self) -> bool:
        return self._scan_lock.locked()

    def scan(self, root_path) -> ScanRun:
        """
        Scans `root_path` once and returns the run record.

        An inaccessible root yields an aborted run (with `error` set) and
        leaves the catalog untouched.

        Raises:
            ScanAlreadyInProgress: another scan holds this reconciler.
        """
        if not self._scan_lock.acquire(blocking=False):
            raise ScanAlreadyInProgress(f"A scan is already running; {root_path} was not scanned")
        try:
            return self._run(Path(os.path.abspath(root_path)))
        finally:
            self._scan_lock.release()

    def _run(self, root: Path) -> ScanRun:
        run = ScanRun(library_root=root, started_at=self._now())

        # --- Step 1: Validate root ---
        try:
            self.walker.ensure_accessible(root)
            top_level = self.walker.list_directory(root)
        except RootPathInaccessible as e:
            self._log(f"Unable to access {root}, library will not be scanned ({e.reason})", logging.ERROR)
            run.outcome = ScanOutcome.ABORTED
            run.error = e
            run.ended_at = self._now()
            return run

        self._log(f"Scanning library {root}...", logging.INFO)

        # --- Step 2: Walking (classify top-level folders) ---
        library = self._classify_root(root, top_level)
        try:
            self.store.save_library_root(library)
        except CatalogWriteError as e:
            self._log(str(e), logging.ERROR)

        # --- Step 3: Hashing + Upserting ---
        candidates: List[Candidate] = []
        failed_subtrees: List[Path] = []
        for media_type, subtree in library.classified():
            try:
                candidates.extend(self._collect_files(subtree, media_type))
            except RootPathInaccessible as e:
                self._log(
                    f"Unable to access {media_type.value} folder {subtree} ({e.reason}); "
                    f"its items keep their current status",
                    logging.ERROR,
                )
                failed_subtrees.append(subtree)

        observed = self._index_files(root, candidates, run)

        # Barrier: every worker is done and upserts are durable before anything is marked missing
        try:
            self.store.commit()
        except CatalogWriteError as e:
            self._log(str(e), logging.ERROR)

        # --- Step 4: Finalizing ---
        run.items_observed = len(observed)
        try:
            run.items_marked_missing = self.store.mark_missing(root, observed, exclude_paths=failed_subtrees)
            self.store.prune_occurrences(root, run.started_at)
            run.outcome = ScanOutcome.COMPLETED
            run.ended_at = self._now()
            self.store.record_scan_run(run)
            self.store.commit()
        except CatalogWriteError as e:
            self._rollback()
            self._log(f"Finalizing scan of {root} failed, no items were marked missing: {e}", logging.ERROR)
            run.items_marked_missing = 0
            run.outcome = ScanOutcome.ABORTED
            run.error = e
            run.ended_at = self._now()
            return run

        self._log(run.summary(), logging.INFO)
        return run

    def _classify_root(self, root: Path, top_level) -> LibraryRoot:
        """Adopts the first matching folder (in listing order) for each media type."""
        library = LibraryRoot(root)
        for entry in top_level:
            if not entry.is_dir:
                self._log(f"Ignoring file at library root: {entry.path}", logging.DEBUG)
                continue

            media_type = self.classifier.classify_directory(entry.path.name)
            if media_type is None:
                self._log(f"Folder {entry.path} matches no media type, not indexed", logging.DEBUG)
            elif library.assign(media_type, entry.path):
                self._log(f"Using {entry.path} as the {media_type.value} folder", logging.INFO)
            else:
                self._log(
                    f"Folder {entry.path} also looks like {media_type.value}, "
                    f"keeping {library.subtrees[media_type]}",
                    logging.DEBUG,
                )

        for media_type in MediaType:
            if library.subtrees[media_type] is None:
                self._log(f"No {media_type.value} folder found under {root}", logging.DEBUG)
        return library

    def _collect_files(self, subtree: Path, media_type: MediaType) -> Iterator[Candidate]:
        """
        Yields (path, media_type) for every indexable file of a subtree.
        Nested folders that classify on their own re-type their contents.
        """
        dir_types: Dict[Path, MediaType] = {subtree: media_type}
        for entry in self.walker.walk(subtree):
            enclosing = dir_types.get(entry.path.parent, media_type)
            if entry.is_dir:
                dir_types[entry.path] = self.classifier.classify_directory(entry.path.name) or enclosing
                continue

            ftype = self.classifier.classify_entry(entry.ext, enclosing)
            if ftype is None:
                self._log(f"Skipping non-media file {entry.path}", logging.DEBUG)
                continue
            yield entry.path, ftype

    def _index_files(self, root: Path, candidates: List[Candidate], run: ScanRun) -> Set[str]:
        occurrences = self.store.load_occurrences(root)
        observed: Set[str] = set()
        observations: List[Observation] = []

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            # map() keeps walk order, so "last path observed wins" is deterministic
            results = pool.map(lambda c: self._observe(c, occurrences), candidates)
            for obs, err, known_id in tqdm(results, total=len(candidates), desc=f"Indexing {root.name}",
                                           disable=not self.show_progress):
                if err is not None:
                    self._log(f"Skipping {err.path}: {err}", logging.WARNING)
                    run.files_skipped += 1
                    if known_id is not None:
                        # Still on disk, only unreadable: its item keeps its status
                        observed.add(known_id)
                        self._keep_occurrence(err.path)
                    continue

                if not obs.from_cache:
                    run.files_hashed += 1
                observations.append(obs)

        final_paths: Dict[str, Path] = {obs.content_id: obs.path for obs in observations}
        pending = 0
        for obs in observations:
            self._upsert(root, obs, final_paths[obs.content_id], run, observed)

            pending += 1
            if pending >= self.commit_every:
                pending = 0
                try:
                    self.store.commit()
                except CatalogWriteError as e:
                    self._log(str(e), logging.ERROR)
        return observed

    def _observe(self, candidate: Candidate, occurrences: Dict[str, Tuple[int, float, str]]
                 ) -> Tuple[Optional[Observation], Optional[FileReadError], Optional[str]]:
        """
        Worker: resolves the content id of one file. Never raises for I/O problems.

        On failure returns the error together with the content id last cached
        for that path, if any, so a file that exists but cannot be read is not
        mistaken for a vanished one.
        """
        path, media_type = candidate
        cached = occurrences.get(str(path))
        known_id = cached[2] if cached else None
        try:
            st = os.stat(path)
        except FileNotFoundError as e:
            return None, FileReadError(path, e.strerror or str(e)), None
        except OSError as e:
            return None, FileReadError(path, e.strerror or str(e)), known_id

        if cached and cached[0] == st.st_size and cached[1] == st.st_mtime:
            return Observation(path, media_type, cached[2], st.st_size, st.st_mtime, from_cache=True), None, None

        try:
            content_id = self.hasher.compute_hash(path)
        except HashComputationError as e:
            return None, e, known_id
        return Observation(path, media_type, content_id, st.st_size, st.st_mtime), None, None

    def _upsert(self, root: Path, obs: Observation, final_path: Path, run: ScanRun, observed: Set[str]):
        """
        Merges one observation. `final_path` is where the content ends up this
        run (the last of its identical copies), so copies never count as moves.
        """
        now = self._now()
        duplicate = obs.content_id in observed
        # Counted even if the write fails, so a transient error never flags the item missing
        observed.add(obs.content_id)

        try:
            if duplicate:
                self._log(f"Same content as {final_path}: {obs.path}", logging.DEBUG)
            else:
                existing = self.store.get(obs.content_id)
                if existing is None:
                    self.store.upsert(MediaItem(
                        content_id=obs.content_id,
                        media_type=obs.media_type,
                        current_path=final_path,
                        library_root=root,
                        status=ItemStatus.ACTIVE,
                        first_seen=now,
                        last_seen=now,
                    ))
                    run.items_created += 1
                    self._log(f"New {obs.media_type.value}: {final_path}", logging.DEBUG)
                else:
                    if existing.current_path != final_path:
                        run.items_moved += 1
                        self._log(f"Moved: {existing.current_path} -> {final_path}", logging.INFO)
                    elif existing.status is ItemStatus.MISSING:
                        self._log(f"Found again: {final_path}", logging.INFO)

                    existing.current_path = final_path
                    existing.library_root = root
                    existing.last_seen = now
                    existing.status = ItemStatus.ACTIVE
                    self.store.upsert(existing)

            self.store.record_occurrence(root, obs, now)
        except (CatalogWriteError, sqlite3.Error) as e:
            self._log(f"Could not save {obs.path}, will retry next scan: {e}", logging.ERROR)

    def _keep_occurrence(self, path: Path):
        try:
            self.store.touch_occurrence(path, self._now())
        except CatalogWriteError as e:
            self._log(str(e), logging.ERROR)

    def _on_walk_error(self, path: Path, err: OSError):
        self._log(f"Cannot read directory {path}: {err}", logging.WARNING)

    def _rollback(self):
        try:
            self.store.rollback()
        except CatalogWriteError as e:
            self._log(str(e), logging.ERROR)

    def _log(self, message: str, level: int):
        try:
            self.sink.log(message, level)
        except Exception:
            pass  # log delivery is best effort
