import json
import os
import sqlite3
import threading
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..exceptions import CatalogWriteError
from ..models import (
    ItemStatus, LibraryRoot, MediaItem, MediaType, Observation, ScanOutcome, ScanRun,
)

ITEM_COLUMNS = (
    "content_id, media_type, current_path, library_root, status, "
    "first_seen_at, last_seen_at, user_metadata"
)


def _iso(dt: datetime) -> str:
    return dt.isoformat()


def _row_to_item(row) -> MediaItem:
    content_id, media_type, current_path, library_root, status, first_seen, last_seen, meta = row
    return MediaItem(
        content_id=content_id,
        media_type=MediaType(media_type),
        current_path=Path(current_path),
        library_root=Path(library_root),
        status=ItemStatus(status),
        first_seen=datetime.fromisoformat(first_seen),
        last_seen=datetime.fromisoformat(last_seen),
        user_metadata=json.loads(meta) if meta else {},
    )


class CatalogReader:
    """
    Read-only view of the catalog, for consumers such as the browse/search
    front end. Nothing here modifies a row.
    """
    def __init__(self, conn: sqlite3.Connection, lock: Optional[threading.RLock] = None):
        self.conn = conn
        self._lock = lock or threading.RLock()

    def get(self, content_id: str) -> Optional[MediaItem]:
        with self._lock:
            cur = self.conn.execute(
                f"SELECT {ITEM_COLUMNS} FROM media_items WHERE content_id = ?", (content_id,)
            )
            row = cur.fetchone()
        return _row_to_item(row) if row else None

    def find_by_path(self, path: Path) -> Optional[MediaItem]:
        """Item last seen at `path`; an active item wins over a missing one."""
        with self._lock:
            cur = self.conn.execute(f"""
                SELECT {ITEM_COLUMNS} FROM media_items
                WHERE current_path = ?
                ORDER BY (status = ?) DESC, last_seen_at DESC
                LIMIT 1
            """, (str(path), ItemStatus.ACTIVE.value))
            row = cur.fetchone()
        return _row_to_item(row) if row else None

    def list_items(self,
                   media_type: Optional[MediaType] = None,
                   status: Optional[ItemStatus] = None,
                   library_root: Optional[Path] = None) -> List[MediaItem]:
        """Items filtered by any combination of type, status and root, ordered by path."""
        clauses = []
        params: List[Any] = []
        if media_type is not None:
            clauses.append("media_type = ?")
            params.append(MediaType(media_type).value)
        if status is not None:
            clauses.append("status = ?")
            params.append(ItemStatus(status).value)
        if library_root is not None:
            clauses.append("library_root = ?")
            params.append(str(library_root))

        sql = f"SELECT {ITEM_COLUMNS} FROM media_items"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY current_path"

        with self._lock:
            rows = self.conn.execute(sql, params).fetchall()
        return [_row_to_item(r) for r in rows]

    def count_by_status(self) -> Dict[str, Dict[str, int]]:
        """Returns {media_type: {status: count}}."""
        with self._lock:
            rows = self.conn.execute("""
                SELECT media_type, status, COUNT(*)
                FROM media_items
                GROUP BY media_type, status
            """).fetchall()
        counts: Dict[str, Dict[str, int]] = {}
        for media_type, status, n in rows:
            counts.setdefault(media_type, {})[status] = n
        return counts

    def get_library_root(self, root_path: Path) -> Optional[LibraryRoot]:
        with self._lock:
            row = self.conn.execute("""
                SELECT movie_path, music_path, book_path, photo_path
                FROM library_roots WHERE root_path = ?
            """, (str(root_path),)).fetchone()
        if not row:
            return None
        root = LibraryRoot(Path(root_path))
        for media_type, value in zip(
            (MediaType.MOVIE, MediaType.MUSIC, MediaType.BOOK, MediaType.PHOTO), row
        ):
            root.subtrees[media_type] = Path(value) if value else None
        return root

    def latest_scan_runs(self, limit: int = 10) -> List[ScanRun]:
        with self._lock:
            rows = self.conn.execute("""
                SELECT library_root, started_at, ended_at, items_observed, items_marked_missing,
                       items_created, items_moved, files_hashed, files_skipped, outcome
                FROM scan_runs
                ORDER BY id DESC
                LIMIT ?
            """, (limit,)).fetchall()
        return [
            ScanRun(
                library_root=Path(r[0]),
                started_at=datetime.fromisoformat(r[1]),
                ended_at=datetime.fromisoformat(r[2]) if r[2] else None,
                items_observed=r[3],
                items_marked_missing=r[4],
                items_created=r[5],
                items_moved=r[6],
                files_hashed=r[7],
                files_skipped=r[8],
                outcome=ScanOutcome(r[9]),
            )
            for r in rows
        ]


class CatalogStore(CatalogReader):
    """
    Durable catalog used by the reconciler.

    Mutation discipline is upsert-by-content_id. Rows are never deleted;
    disappearance is recorded as status='missing'.
    """

    def upsert(self, item: MediaItem):
        """
        Inserts a new item, or refreshes path/root/last_seen/status of an
        existing one. media_type, first_seen and user_metadata of an existing
        row are left as they are.
        """
        try:
            with self._lock:
                self.conn.execute(f"""
                    INSERT INTO media_items ({ITEM_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(content_id) DO UPDATE SET
                        current_path = excluded.current_path,
                        library_root = excluded.library_root,
                        last_seen_at = excluded.last_seen_at,
                        status = excluded.status
                """, (
                    item.content_id, MediaType(item.media_type).value, str(item.current_path),
                    str(item.library_root), ItemStatus(item.status).value,
                    _iso(item.first_seen), _iso(item.last_seen), json.dumps(item.user_metadata),
                ))
        except sqlite3.Error as e:
            raise CatalogWriteError(f"Failed to upsert {item.content_id}: {e}") from e

    def mark_missing(self,
                     library_root: Path,
                     observed_ids: Iterable[str],
                     exclude_paths: Iterable[Path] = ()) -> int:
        """
        Flags every active item of `library_root` whose content_id is not in
        `observed_ids` as missing. Items whose current path is one of
        `exclude_paths` or lies beneath one are left alone.
        Returns the number of items that changed status.
        """
        try:
            with self._lock:
                cur = self.conn.cursor()
                cur.execute("CREATE TEMP TABLE IF NOT EXISTS observed_ids (content_id TEXT PRIMARY KEY)")
                cur.execute("DELETE FROM observed_ids")
                cur.executemany(
                    "INSERT OR IGNORE INTO observed_ids (content_id) VALUES (?)",
                    ((cid,) for cid in observed_ids),
                )

                sql = """
                    UPDATE media_items SET status = ?
                    WHERE library_root = ?
                      AND status = ?
                      AND content_id NOT IN (SELECT content_id FROM observed_ids)
                """
                params: List[Any] = [ItemStatus.MISSING.value, str(library_root), ItemStatus.ACTIVE.value]
                for path in exclude_paths:
                    prefix = os.path.join(str(path), "")
                    sql += " AND NOT (current_path = ? OR substr(current_path, 1, ?) = ?)"
                    params.extend([str(path), len(prefix), prefix])
                cur.execute(sql, params)
                changed = cur.rowcount
                cur.execute("DELETE FROM observed_ids")
                return changed
        except sqlite3.Error as e:
            raise CatalogWriteError(f"Failed to mark missing items under {library_root}: {e}") from e

    def set_user_metadata(self, content_id: str, metadata: Dict[str, Any]) -> bool:
        """Replaces the caller-owned attributes of an item. False if the item is unknown."""
        try:
            with self._lock:
                cur = self.conn.execute(
                    "UPDATE media_items SET user_metadata = ? WHERE content_id = ?",
                    (json.dumps(metadata), content_id),
                )
                self.conn.commit()
                return cur.rowcount > 0
        except sqlite3.Error as e:
            raise CatalogWriteError(f"Failed to update metadata of {content_id}: {e}") from e

    # --- Fingerprint cache ---

    def load_occurrences(self, library_root: Path) -> Dict[str, Tuple[int, float, str]]:
        """Returns {path: (size_bytes, mtime, content_id)} for a library root."""
        with self._lock:
            rows = self.conn.execute("""
                SELECT path, size_bytes, mtime, content_id
                FROM file_occurrences WHERE library_root = ?
            """, (str(library_root),)).fetchall()
        return {path: (size, mtime, cid) for path, size, mtime, cid in rows}

    def record_occurrence(self, library_root: Path, obs: Observation, seen_at: datetime):
        try:
            with self._lock:
                self.conn.execute("""
                    INSERT OR REPLACE INTO file_occurrences
                    (path, library_root, content_id, size_bytes, mtime, seen_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (str(obs.path), str(library_root), obs.content_id, obs.size_bytes, obs.mtime, _iso(seen_at)))
        except sqlite3.Error as e:
            raise CatalogWriteError(f"Failed to record occurrence {obs.path}: {e}") from e

    def touch_occurrence(self, path: Path, seen_at: datetime):
        """Keeps a cache entry alive without changing its fingerprint."""
        try:
            with self._lock:
                self.conn.execute(
                    "UPDATE file_occurrences SET seen_at = ? WHERE path = ?",
                    (_iso(seen_at), str(path)),
                )
        except sqlite3.Error as e:
            raise CatalogWriteError(f"Failed to refresh occurrence {path}: {e}") from e

    def prune_occurrences(self, library_root: Path, seen_before: datetime) -> int:
        """Drops cache entries not refreshed since `seen_before`."""
        try:
            with self._lock:
                cur = self.conn.execute(
                    "DELETE FROM file_occurrences WHERE library_root = ? AND seen_at < ?",
                    (str(library_root), _iso(seen_before)),
                )
                return cur.rowcount
        except sqlite3.Error as e:
            raise CatalogWriteError(f"Failed to prune occurrences under {library_root}: {e}") from e

    # --- Library roots & history ---

    def save_library_root(self, root: LibraryRoot):
        paths = [root.subtrees.get(t) for t in (MediaType.MOVIE, MediaType.MUSIC, MediaType.BOOK, MediaType.PHOTO)]
        try:
            with self._lock:
                self.conn.execute("""
                    INSERT OR REPLACE INTO library_roots
                    (root_path, movie_path, music_path, book_path, photo_path, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    str(root.root_path),
                    *[str(p) if p else None for p in paths],
                    _iso(datetime.now(UTC)),
                ))
        except sqlite3.Error as e:
            raise CatalogWriteError(f"Failed to save library root {root.root_path}: {e}") from e

    def record_scan_run(self, run: ScanRun) -> int:
        try:
            with self._lock:
                cur = self.conn.execute("""
                    INSERT INTO scan_runs (
                        library_root, started_at, ended_at, items_observed, items_marked_missing,
                        items_created, items_moved, files_hashed, files_skipped, outcome
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    str(run.library_root), _iso(run.started_at),
                    _iso(run.ended_at) if run.ended_at else None,
                    run.items_observed, run.items_marked_missing, run.items_created,
                    run.items_moved, run.files_hashed, run.files_skipped,
                    ScanOutcome(run.outcome).value,
                ))
                if cur.lastrowid is None:
                    raise CatalogWriteError("Database INSERT failed to return a row ID.")
                return cur.lastrowid
        except sqlite3.Error as e:
            raise CatalogWriteError(f"Failed to record scan run: {e}") from e

    def commit(self):
        try:
            with self._lock:
                self.conn.commit()
        except sqlite3.Error as e:
            raise CatalogWriteError(f"Commit failed: {e}") from e

    def rollback(self):
        try:
            with self._lock:
                self.conn.rollback()
        except sqlite3.Error as e:
            raise CatalogWriteError(f"Rollback failed: {e}") from e
