import logging
import sqlite3

import pytest

from media_indexer.core import CatalogReconciler
from media_indexer.database.ops import CatalogStore
from media_indexer.database.schema import init_schema


class RecordingSink:
    """Log sink that keeps every (level, message) it receives."""

    def __init__(self):
        self.records = []

    def log(self, message, level):
        self.records.append((level, message))

    def messages(self, level):
        return [m for lvl, m in self.records if lvl == level]


@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:", check_same_thread=False)
    init_schema(c)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def store(conn):
    """Returns a CatalogStore attached to the in-memory DB."""
    return CatalogStore(conn)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def reconciler(store, sink):
    return CatalogReconciler(store, log_sink=sink, max_workers=2)


@pytest.fixture
def library(tmp_path):
    """A small library: one movie and one song in classified folders."""
    root = tmp_path / "library"
    (root / "Movies").mkdir(parents=True)
    (root / "Music").mkdir()
    (root / "Movies" / "a.mkv").write_bytes(b"movie-a" * 100)
    (root / "Music" / "y.mp3").write_bytes(b"song-y" * 100)
    return root
