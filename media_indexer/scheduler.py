import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional

from .core import CatalogReconciler
from .exceptions import ScanAlreadyInProgress
from .logsink import LoggerSink, LogSink
from .models import ScanRun


class ScanScheduler:
    """
    Triggers a scan at startup and then every `interval_seconds`.

    Ticks are dispatched on their own thread so the timer keeps its pace
    while a long scan is running; a tick that lands on a running scan is
    dropped and logged.
    """
    def __init__(self,
                 reconciler: CatalogReconciler,
                 root_provider: Callable[[], Optional[Path]],
                 interval_seconds: float,
                 log_sink: Optional[LogSink] = None):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.reconciler = reconciler
        self.root_provider = root_provider
        self.interval_seconds = interval_seconds
        self.sink = log_sink or LoggerSink()

        self._stop = threading.Event()
        self._timer: Optional[threading.Thread] = None
        self._workers: List[threading.Thread] = []
        self._workers_lock = threading.Lock()

    def start(self):
        if self._timer and self._timer.is_alive():
            return
        self._stop.clear()
        self._timer = threading.Thread(target=self._loop, name="ScanTimer", daemon=True)
        self._timer.start()

    def stop(self, timeout: Optional[float] = None):
        """Stops ticking and waits for a running scan to finish."""
        self._stop.set()
        if self._timer:
            self._timer.join(timeout)
        with self._workers_lock:
            workers = list(self._workers)
        for worker in workers:
            worker.join(timeout)

    def run_forever(self):
        """Blocks the calling thread until `stop()` is called."""
        self.start()
        while not self._stop.is_set():
            self._stop.wait(1.0)
        self.stop()

    def tick(self) -> Optional[ScanRun]:
        """Runs one scan synchronously. Returns None when nothing was scanned."""
        try:
            root = self.root_provider()
        except Exception as e:
            self._log(f"Could not resolve the library root: {e}", logging.ERROR)
            return None

        if root is None:
            self._log("No library root is configured, skipping scan", logging.WARNING)
            return None

        try:
            return self.reconciler.scan(root)
        except ScanAlreadyInProgress:
            self._log(f"Scan of {root} still in progress, dropping this tick", logging.INFO)
            return None
        except Exception as e:
            self._log(f"Scan of {root} failed unexpectedly: {e!r}", logging.ERROR)
            logging.exception("Unexpected scan failure")
            return None

    def _loop(self):
        self._dispatch()
        while not self._stop.wait(self.interval_seconds):
            self._dispatch()

    def _dispatch(self):
        worker = threading.Thread(target=self.tick, name="LibraryScan", daemon=True)
        with self._workers_lock:
            self._workers = [w for w in self._workers if w.is_alive()]
            self._workers.append(worker)
        worker.start()

    def _log(self, message: str, level: int):
        try:
            self.sink.log(message, level)
        except Exception:
            pass  # log delivery is best effort
