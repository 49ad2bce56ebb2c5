"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1


def init_schema(conn: sqlite3.Connection):
    """
    Applies the core schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        # Initialize version if missing
        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Catalog
        # One row per distinct content; rows are never deleted by a scan
        conn.execute("""
        CREATE TABLE IF NOT EXISTS media_items (
            content_id      TEXT PRIMARY KEY,     -- SHA-256 of file bytes
            media_type      TEXT NOT NULL,
            current_path    TEXT NOT NULL,
            library_root    TEXT NOT NULL,
            status          TEXT NOT NULL DEFAULT 'active',
            first_seen_at   TEXT NOT NULL,
            last_seen_at    TEXT NOT NULL,
            user_metadata   TEXT NOT NULL DEFAULT '{}'
        );
        """)

        # 3. Library Roots (subtree assignment per media type)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS library_roots (
            root_path       TEXT PRIMARY KEY,
            movie_path      TEXT,
            music_path      TEXT,
            book_path       TEXT,
            photo_path      TEXT,
            updated_at      TEXT NOT NULL
        );
        """)

        # 4. Fingerprint cache
        # Lets unchanged files (same path, size, mtime) skip re-hashing
        conn.execute("""
        CREATE TABLE IF NOT EXISTS file_occurrences (
            path            TEXT PRIMARY KEY,
            library_root    TEXT NOT NULL,
            content_id      TEXT NOT NULL,
            size_bytes      INTEGER NOT NULL,
            mtime           REAL NOT NULL,
            seen_at         TEXT NOT NULL
        );
        """)

        # 5. Scan history
        conn.execute("""
        CREATE TABLE IF NOT EXISTS scan_runs (
            id                   INTEGER PRIMARY KEY AUTOINCREMENT,
            library_root         TEXT NOT NULL,
            started_at           TEXT NOT NULL,
            ended_at             TEXT,
            items_observed       INTEGER NOT NULL DEFAULT 0,
            items_marked_missing INTEGER NOT NULL DEFAULT 0,
            items_created        INTEGER NOT NULL DEFAULT 0,
            items_moved          INTEGER NOT NULL DEFAULT 0,
            files_hashed         INTEGER NOT NULL DEFAULT 0,
            files_skipped        INTEGER NOT NULL DEFAULT 0,
            outcome              TEXT NOT NULL
        );
        """)

        # 6. Settings (typed key/value)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key     TEXT PRIMARY KEY,
            value   TEXT NOT NULL,
            type    TEXT NOT NULL
        );
        """)

        # 7. Indices for Performance
        conn.execute("CREATE INDEX IF NOT EXISTS idx_items_type ON media_items(media_type);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_items_status ON media_items(status);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_items_root ON media_items(library_root);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_items_path ON media_items(current_path);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_occurrences_root ON file_occurrences(library_root);")

    logging.debug("Database schema initialized.")
