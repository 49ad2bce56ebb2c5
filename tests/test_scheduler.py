import logging
import threading
import time

import pytest

from media_indexer.core import CatalogReconciler
from media_indexer.exceptions import ScanAlreadyInProgress
from media_indexer.models import ScanOutcome
from media_indexer.scanning.hasher import FileHasher
from media_indexer.scheduler import ScanScheduler


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class CountingReconciler:
    def __init__(self):
        self.roots = []

    def scan(self, root):
        self.roots.append(root)
        return "run"


def test_tick_without_root_does_not_scan(sink):
    fake = CountingReconciler()
    scheduler = ScanScheduler(fake, lambda: None, 60, log_sink=sink)

    assert scheduler.tick() is None
    assert fake.roots == []
    assert any("No library root" in m for m in sink.messages(logging.WARNING))


def test_tick_runs_one_scan(reconciler, store, sink, library):
    scheduler = ScanScheduler(reconciler, lambda: library, 60, log_sink=sink)

    run = scheduler.tick()

    assert run.outcome is ScanOutcome.COMPLETED
    assert len(store.list_items()) == 2


def test_tick_during_running_scan_is_dropped(store, sink, library):
    started = threading.Event()
    release = threading.Event()

    class BlockingHasher(FileHasher):
        def compute_hash(self, path):
            started.set()
            release.wait(5)
            return super().compute_hash(path)

    reconciler = CatalogReconciler(store, log_sink=sink, hasher=BlockingHasher(), max_workers=1)
    scheduler = ScanScheduler(reconciler, lambda: library, 60, log_sink=sink)

    first = threading.Thread(target=scheduler.tick)
    first.start()
    try:
        assert started.wait(5)
        assert scheduler.tick() is None
    finally:
        release.set()
        first.join(5)

    assert len(store.latest_scan_runs()) == 1
    assert any("dropping this tick" in m for m in sink.messages(logging.INFO))
    assert sink.messages(logging.ERROR) == []


def test_tick_contains_unexpected_failures(sink):
    class ExplodingReconciler:
        def scan(self, root):
            raise RuntimeError("boom")

    scheduler = ScanScheduler(ExplodingReconciler(), lambda: "/library", 60, log_sink=sink)

    assert scheduler.tick() is None
    assert any("boom" in m for m in sink.messages(logging.ERROR))


def test_tick_reports_bad_root_provider(sink):
    def provider():
        raise ValueError("bad setting")

    scheduler = ScanScheduler(CountingReconciler(), provider, 60, log_sink=sink)

    assert scheduler.tick() is None
    assert any("bad setting" in m for m in sink.messages(logging.ERROR))


def test_start_scans_immediately(sink):
    fake = CountingReconciler()
    scheduler = ScanScheduler(fake, lambda: "/library", 3600, log_sink=sink)

    scheduler.start()
    try:
        assert wait_for(lambda: len(fake.roots) == 1)
    finally:
        scheduler.stop(timeout=5)
    assert fake.roots == ["/library"]


def test_rescans_on_interval(sink):
    fake = CountingReconciler()
    scheduler = ScanScheduler(fake, lambda: "/library", 0.02, log_sink=sink)

    scheduler.start()
    try:
        assert wait_for(lambda: len(fake.roots) >= 3)
    finally:
        scheduler.stop(timeout=5)

    count = len(fake.roots)
    time.sleep(0.1)
    assert len(fake.roots) == count


def test_overlapping_ticks_never_run_concurrently(sink):
    active = []
    overlaps = []
    lock = threading.Lock()

    class SlowReconciler:
        def __init__(self):
            self._busy = threading.Lock()
            self.completed = 0

        def scan(self, root):
            if not self._busy.acquire(blocking=False):
                raise ScanAlreadyInProgress("busy")
            try:
                with lock:
                    active.append(root)
                    if len(active) > 1:
                        overlaps.append(list(active))
                time.sleep(0.05)
                with lock:
                    active.remove(root)
                self.completed += 1
            finally:
                self._busy.release()

    slow = SlowReconciler()
    scheduler = ScanScheduler(slow, lambda: "/library", 0.01, log_sink=sink)
    scheduler.start()
    try:
        assert wait_for(lambda: slow.completed >= 2)
    finally:
        scheduler.stop(timeout=5)

    assert overlaps == []
    assert any("dropping this tick" in m for m in sink.messages(logging.INFO))


def test_interval_must_be_positive(reconciler):
    with pytest.raises(ValueError):
        ScanScheduler(reconciler, lambda: None, 0)
