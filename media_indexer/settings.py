"""
Runtime settings for the indexer.

Values are looked up in the process environment first (optionally seeded
from a .env file), then in the `settings` table of the catalog database,
then fall back to the defaults in `config`.
"""
import os
import json
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

from . import config
from .exceptions import SettingsError

KEY_LIBRARY_ROOT = "LIBRARY_ROOT"
KEY_RESCAN_INTERVAL = "RESCAN_INTERVAL_MINUTES"
KEY_MAX_WORKERS = "MAX_WORKERS"


class SettingType(str, Enum):
    STRING = 'string'
    NUMBER = 'number'
    DATE = 'date'
    STRUCTURED = 'object'


@dataclass(frozen=True)
class SettingValue:
    """A stored setting: the type tag decides how `value` is encoded."""
    type: SettingType
    value: Any

    @classmethod
    def parse(cls, raw: str, type_tag: str) -> "SettingValue":
        try:
            kind = SettingType(type_tag)
        except ValueError:
            raise SettingsError(f"Unknown setting type {type_tag!r}") from None

        try:
            if kind is SettingType.STRING:
                return cls(kind, str(raw))
            elif kind is SettingType.NUMBER:
                return cls(kind, _parse_number(raw))
            elif kind is SettingType.DATE:
                return cls(kind, datetime.fromisoformat(raw))
            elif kind is SettingType.STRUCTURED:
                return cls(kind, json.loads(raw))
        except (TypeError, ValueError) as e:
            raise SettingsError(f"Invalid {kind.value} setting value {raw!r}: {e}") from e
        raise SettingsError(f"Unhandled setting type {kind.value!r}")

    @classmethod
    def of(cls, value: Any) -> "SettingValue":
        """Wraps a Python value, inferring its type tag."""
        if isinstance(value, bool):
            raise SettingsError("Boolean settings must be stored as numbers or structured values")
        if isinstance(value, str):
            return cls(SettingType.STRING, value)
        if isinstance(value, (int, float)):
            return cls(SettingType.NUMBER, value)
        if isinstance(value, datetime):
            return cls(SettingType.DATE, value)
        if isinstance(value, (dict, list)):
            return cls(SettingType.STRUCTURED, value)
        raise SettingsError(f"Unsupported setting value type {type(value).__name__}")

    def serialize(self) -> Tuple[str, str]:
        """Returns (raw value, type tag) for storage."""
        if self.type is SettingType.STRING:
            return str(self.value), self.type.value
        elif self.type is SettingType.NUMBER:
            return repr(self.value), self.type.value
        elif self.type is SettingType.DATE:
            return self.value.isoformat(), self.type.value
        elif self.type is SettingType.STRUCTURED:
            return json.dumps(self.value), self.type.value
        raise SettingsError(f"Unhandled setting type {self.type!r}")


def _parse_number(raw: str):
    text = str(raw).strip()
    try:
        return int(text)
    except ValueError:
        return float(text)


class SettingsStore:
    """Typed key/value settings kept in the catalog database."""

    DEFAULTS = {
        KEY_RESCAN_INTERVAL: SettingValue(SettingType.NUMBER, config.DEFAULT_RESCAN_INTERVAL_MINUTES),
        KEY_MAX_WORKERS: SettingValue(SettingType.NUMBER, config.DEFAULT_MAX_WORKERS),
    }

    def __init__(self, conn: sqlite3.Connection, lock: Optional[threading.RLock] = None):
        self.conn = conn
        self._lock = lock or threading.RLock()

    def ensure_defaults(self):
        """Populates missing default rows (fresh installation)."""
        with self._lock:
            for key, value in self.DEFAULTS.items():
                raw, tag = value.serialize()
                self.conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value, type) VALUES (?, ?, ?)",
                    (key, raw, tag),
                )
            self.conn.commit()

    def get(self, key: str) -> Optional[SettingValue]:
        with self._lock:
            row = self.conn.execute("SELECT value, type FROM settings WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        return SettingValue.parse(row[0], row[1])

    def set(self, key: str, value: SettingValue):
        raw, tag = value.serialize()
        with self._lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO settings (key, value, type) VALUES (?, ?, ?)",
                (key, raw, tag),
            )
            self.conn.commit()

    def all(self) -> Dict[str, SettingValue]:
        with self._lock:
            rows = self.conn.execute("SELECT key, value, type FROM settings ORDER BY key").fetchall()
        return {key: SettingValue.parse(raw, tag) for key, raw, tag in rows}


@dataclass
class IndexerSettings:
    library_root: Optional[Path] = None
    rescan_interval_minutes: float = config.DEFAULT_RESCAN_INTERVAL_MINUTES
    max_workers: int = config.DEFAULT_MAX_WORKERS

    @property
    def rescan_interval_seconds(self) -> float:
        return float(self.rescan_interval_minutes) * 60


def load_settings(store: Optional[SettingsStore] = None,
                  environ: Optional[Mapping[str, str]] = None,
                  env_file: Optional[Path] = None) -> IndexerSettings:
    """
    Resolves the effective settings (environment > settings table > defaults).
    """
    if env_file is not None:
        load_dotenv(env_file, override=False)
    env = os.environ if environ is None else environ

    def lookup(env_key: str, setting_key: str) -> Optional[SettingValue]:
        raw = env.get(env_key)
        if raw is not None and raw.strip():
            return SettingValue(SettingType.STRING, raw.strip())
        if store is not None:
            return store.get(setting_key)
        return None

    settings = IndexerSettings()

    root = lookup(config.ENV_LIBRARY_ROOT, KEY_LIBRARY_ROOT)
    if root is not None and str(root.value).strip():
        settings.library_root = Path(str(root.value)).expanduser()

    interval = lookup(config.ENV_RESCAN_INTERVAL, KEY_RESCAN_INTERVAL)
    if interval is not None:
        minutes = _as_number(interval, KEY_RESCAN_INTERVAL)
        if minutes <= 0:
            raise SettingsError(f"{KEY_RESCAN_INTERVAL} must be positive, got {minutes}")
        settings.rescan_interval_minutes = minutes

    workers = lookup(config.ENV_MAX_WORKERS, KEY_MAX_WORKERS)
    if workers is not None:
        count = int(_as_number(workers, KEY_MAX_WORKERS))
        if count < 1:
            raise SettingsError(f"{KEY_MAX_WORKERS} must be at least 1, got {count}")
        settings.max_workers = count

    return settings


def _as_number(setting: SettingValue, key: str):
    if setting.type is SettingType.NUMBER:
        return setting.value
    elif setting.type is SettingType.STRING:
        try:
            return _parse_number(setting.value)
        except ValueError:
            raise SettingsError(f"{key} must be a number, got {setting.value!r}") from None
    raise SettingsError(f"{key} must be a number, got a {setting.type.value} setting")
