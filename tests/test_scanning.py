import hashlib
import os

import pytest

from media_indexer.exceptions import HashComputationError, RootPathInaccessible
from media_indexer.models import MediaType
from media_indexer.scanning.classifier import TypeClassifier
from media_indexer.scanning.filesystem import DirectoryWalker
from media_indexer.scanning.hasher import FileHasher


def test_hash_is_sha256_of_bytes(tmp_path):
    p = tmp_path / "sample.bin"
    data = b"hello world" * 1000
    p.write_bytes(data)

    hasher = FileHasher(chunk_size=7)  # force many small reads
    assert hasher.compute_hash(p) == hashlib.sha256(data).hexdigest()


def test_identical_bytes_share_identity(tmp_path):
    a = tmp_path / "one" / "clip.mkv"
    b = tmp_path / "two" / "renamed copy.mp4"
    a.parent.mkdir()
    b.parent.mkdir()
    a.write_bytes(b"same bytes")
    b.write_bytes(b"same bytes")

    hasher = FileHasher()
    assert hasher.compute_hash(a) == hasher.compute_hash(b)
    (tmp_path / "other.mkv").write_bytes(b"other bytes")
    assert hasher.compute_hash(a) != hasher.compute_hash(tmp_path / "other.mkv")


def test_hash_missing_file_raises(tmp_path):
    with pytest.raises(HashComputationError) as exc:
        FileHasher().compute_hash(tmp_path / "gone.mkv")
    assert exc.value.path == tmp_path / "gone.mkv"


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Movies", MediaType.MOVIE),
        ("home VIDEOS", MediaType.MOVIE),
        ("Audio Books", MediaType.MUSIC),  # table order: music is checked before book
        ("Songs", MediaType.MUSIC),
        ("eBooks", MediaType.BOOK),
        ("My Documents", MediaType.BOOK),
        ("Pictures", MediaType.PHOTO),
        ("photography", MediaType.PHOTO),
        ("Downloads", None),
        ("", None),
    ],
)
def test_classify_directory(name, expected):
    assert TypeClassifier().classify_directory(name) == expected


def test_classify_file_by_extension():
    classifier = TypeClassifier()
    assert classifier.classify_file('.MKV') == MediaType.MOVIE
    assert classifier.classify_file('mp3') == MediaType.MUSIC
    assert classifier.classify_file('.epub') == MediaType.BOOK
    assert classifier.classify_file('.jpeg') == MediaType.PHOTO
    assert classifier.classify_file('.nfo') is None
    assert classifier.classify_file('') is None


def test_enclosing_folder_beats_extension():
    classifier = TypeClassifier()
    # A soundtrack inside the movie folder is cataloged as a movie
    assert classifier.classify_entry('.mp3', MediaType.MOVIE) == MediaType.MOVIE
    # No enclosing classification: extension decides
    assert classifier.classify_entry('.mp3', None) == MediaType.MUSIC
    # Unknown extensions are never indexed
    assert classifier.classify_entry('.txt', MediaType.MOVIE) is None


def test_walk_is_depth_first_and_sorted(tmp_path):
    (tmp_path / "b").mkdir()
    (tmp_path / "a").mkdir()
    (tmp_path / "a" / "z.mkv").write_text("z")
    (tmp_path / "b" / "y.mkv").write_text("y")
    (tmp_path / "C.mkv").write_text("c")

    entries = list(DirectoryWalker().walk(tmp_path))
    paths = [e.path for e in entries]

    assert paths == [
        tmp_path / "a",
        tmp_path / "b",
        tmp_path / "C.mkv",
        tmp_path / "a" / "z.mkv",
        tmp_path / "b" / "y.mkv",
    ]
    by_path = {e.path: e for e in entries}
    assert by_path[tmp_path / "a"].is_dir
    assert not by_path[tmp_path / "C.mkv"].is_dir
    assert by_path[tmp_path / "C.mkv"].ext == ".mkv"


def test_walk_skips_hidden_entries(tmp_path):
    (tmp_path / ".cache").mkdir()
    (tmp_path / ".cache" / "x.mkv").write_text("x")
    (tmp_path / "._resource.mkv").write_text("fork")
    (tmp_path / "real.mkv").write_text("real")

    paths = [e.path for e in DirectoryWalker().walk(tmp_path)]
    assert paths == [tmp_path / "real.mkv"]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_walk_does_not_loop_on_symlink_cycles(tmp_path):
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "file.mkv").write_text("data")
    os.symlink(tmp_path, sub / "loop")

    paths = [e.path for e in DirectoryWalker().walk(tmp_path)]

    assert paths.count(sub / "file.mkv") == 1
    assert not any("loop" in p.parts and p.name == "file.mkv" for p in paths)


def test_walk_follows_symlinked_directories(tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "film.mkv").write_text("film")
    root = tmp_path / "root"
    root.mkdir()
    os.symlink(outside, root / "linked")

    paths = [e.path for e in DirectoryWalker().walk(root)]
    assert root / "linked" / "film.mkv" in paths


def test_walk_missing_root_raises(tmp_path):
    walker = DirectoryWalker()
    with pytest.raises(RootPathInaccessible):
        list(walker.walk(tmp_path / "nope"))
    with pytest.raises(RootPathInaccessible):
        walker.list_directory(tmp_path / "nope")


def test_ensure_accessible_rejects_files(tmp_path):
    f = tmp_path / "file.mkv"
    f.write_text("x")
    with pytest.raises(RootPathInaccessible) as exc:
        DirectoryWalker().ensure_accessible(f)
    assert exc.value.reason == "not a directory"


def test_list_directory_is_shallow(tmp_path):
    (tmp_path / "Movies").mkdir()
    (tmp_path / "Movies" / "deep.mkv").write_text("d")
    (tmp_path / "loose.mkv").write_text("l")

    entries = DirectoryWalker().list_directory(tmp_path)
    assert [(e.path.name, e.is_dir) for e in entries] == [("loose.mkv", False), ("Movies", True)]
