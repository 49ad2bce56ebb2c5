import sqlite3

import pytest

import catalog_query as cq
from media_indexer.core import CatalogReconciler
from media_indexer.database.ops import CatalogStore
from media_indexer.database.schema import init_schema


@pytest.fixture
def db_path(tmp_path, library, sink):
    """A catalog on disk holding one scan of the sample library."""
    path = tmp_path / "catalog.db"
    conn = sqlite3.connect(path)
    init_schema(conn)
    store = CatalogStore(conn)
    CatalogReconciler(store, log_sink=sink).scan(library)
    movie = store.find_by_path(library / "Movies" / "a.mkv")
    store.set_user_metadata(movie.content_id, {"rating": 5})
    conn.close()
    return path


def test_connect_db_missing(tmp_path):
    with pytest.raises(SystemExit):
        cq.connect_db(tmp_path / "none.db")


def test_list_filters_by_type(db_path, library, capsys):
    cq.main(["--db", str(db_path), "--list", "--type", "music"])
    out = capsys.readouterr().out

    assert str(library / "Music" / "y.mp3") in out
    assert "a.mkv" not in out


def test_list_reports_no_matches(db_path, capsys):
    cq.main(["--db", str(db_path), "--list", "--status", "missing"])
    assert "No matching items." in capsys.readouterr().out


def test_show_item_by_path(db_path, library, capsys):
    cq.main(["--db", str(db_path), "--path", str(library / "Movies" / "a.mkv")])
    out = capsys.readouterr().out

    assert "media_type:    movie" in out
    assert "rating: 5" in out


def test_show_unknown_item(db_path, capsys):
    cq.main(["--db", str(db_path), "--item", "deadbeef"])
    assert "No item with content_id=deadbeef" in capsys.readouterr().out


def test_summary(db_path, capsys):
    cq.main(["--db", str(db_path), "--summary"])
    out = capsys.readouterr().out

    assert "movie |      1 |       0" in out
    assert "music |      1 |       0" in out
    assert "Recent scans:" in out
    assert "completed" in out
