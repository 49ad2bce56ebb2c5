import argparse
import logging
import signal
import sys
from pathlib import Path

from . import config
from .core import CatalogReconciler
from .database.db import DBManager
from .database.ops import CatalogStore
from .exceptions import ScanAlreadyInProgress, SettingsError
from .logsink import LoggerSink
from .models import ScanOutcome
from .scheduler import ScanScheduler
from .settings import SettingsStore, load_settings


def setup_logging(log_dir: Path, verbose: bool):
    """Sets up logging to both console and a file beside the catalog."""
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / config.LOG_FILE_NAME

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Media Indexer: catalog a movie/music/book/photo library")

    p.add_argument("--db", type=Path, default=Path(config.DEFAULT_DB_NAME),
                   help=f"Path to the SQLite catalog (default: ./{config.DEFAULT_DB_NAME})")
    p.add_argument("--env-file", type=Path, default=None, help="Load settings from this .env file")
    p.add_argument("--workers", type=int, default=None, help="Parallel hashing workers")
    p.add_argument("--progress", action="store_true", help="Show a progress bar while indexing")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan the library once")
    scan.add_argument("root", type=Path, nargs="?", default=None,
                      help=f"Library root (default: ${config.ENV_LIBRARY_ROOT} or the stored setting)")

    serve = sub.add_parser("serve", help="Scan at startup and then on a fixed interval")
    serve.add_argument("--interval", type=float, default=None, help="Minutes between scans")

    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    db_path = args.db.resolve()
    setup_logging(db_path.parent, args.verbose)
    logging.info("=== Media Indexer Started ===")

    db = DBManager(db_path)
    try:
        conn = db.connect()
        settings_store = SettingsStore(conn, db.lock)
        settings_store.ensure_defaults()
        try:
            settings = load_settings(settings_store, env_file=args.env_file)
        except SettingsError as e:
            logging.error(f"Invalid configuration: {e}")
            return 2

        store = CatalogStore(conn, db.lock)
        reconciler = CatalogReconciler(
            store,
            log_sink=LoggerSink(),
            max_workers=args.workers or settings.max_workers,
            show_progress=args.progress,
        )

        if args.command == "scan":
            return _scan_once(reconciler, args.root or settings.library_root)
        return _serve(reconciler, settings_store, args)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        return 1
    finally:
        db.close()


def _scan_once(reconciler: CatalogReconciler, root) -> int:
    if root is None:
        logging.warning(f"No library root configured (set {config.ENV_LIBRARY_ROOT}), nothing to scan.")
        return 1
    try:
        run = reconciler.scan(root)
    except ScanAlreadyInProgress as e:
        logging.info(str(e))
        return 1
    return 0 if run.outcome is ScanOutcome.COMPLETED else 1


def _serve(reconciler: CatalogReconciler, settings_store: SettingsStore, args) -> int:
    settings = load_settings(settings_store)
    interval_minutes = args.interval or settings.rescan_interval_minutes

    def resolve_root():
        return load_settings(settings_store).library_root

    scheduler = ScanScheduler(reconciler, resolve_root, interval_minutes * 60)

    def handle_signal(sig, frame):
        logging.info("Shutdown signal received")
        scheduler.stop(timeout=0)

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    logging.info(f"Rescanning every {interval_minutes:g} minutes")
    scheduler.run_forever()
    logging.info("Scheduler stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
