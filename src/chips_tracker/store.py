"""Local persistence: a key-value store plus the cache and settings slots."""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import structlog
from pydantic import ValidationError as PydanticValidationError

from chips_tracker.config import Settings, get_settings
from chips_tracker.models import DataBundle

logger = structlog.get_logger(__name__)

CACHE_KEY = "chips_v2_cache"
SETTINGS_KEY = "chips_v2_settings"


class KeyValueStore(Protocol):
    """What the tracker needs from a persistence layer."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store, for tests and shells that persist elsewhere."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """One file per key under a directory.

    Writes go to a temporary file first and are renamed into place so a
    crash never leaves a half-written slot behind.
    """

    _SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")

    def __init__(self, directory: Path | str | None = None):
        self.directory = Path(directory or get_settings().data_dir)

    def _path(self, key: str) -> Path:
        return self.directory / f"{self._SAFE_KEY.sub('_', key)}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def _load_json(store: KeyValueStore, key: str) -> Any:
    """Decode one slot; unreadable or malformed slots count as absent."""
    try:
        raw = store.get(key)
        if raw is None:
            return None
        return json.loads(raw)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("slot_corrupt", key=key, error=str(e))
        return None


@dataclass(frozen=True)
class CacheSnapshot:
    """The last successfully synced bundle and when it was written."""

    timestamp: int
    data: DataBundle

    @property
    def age_seconds(self) -> float:
        return max(0.0, time.time() - self.timestamp / 1000)


class CacheStore:
    """Single-slot snapshot cache; each save overwrites the previous one."""

    def __init__(self, store: KeyValueStore, key: str = CACHE_KEY):
        self._store = store
        self._key = key

    def save(self, bundle: DataBundle, timestamp: int | None = None) -> CacheSnapshot:
        snapshot = CacheSnapshot(
            timestamp=int(time.time() * 1000) if timestamp is None else timestamp,
            data=bundle,
        )
        payload = {"timestamp": snapshot.timestamp, "data": bundle.to_dict()}
        try:
            self._store.set(self._key, json.dumps(payload, ensure_ascii=False))
        except OSError as e:
            # The in-memory state is still good; the next sync retries the write.
            logger.warning("cache_save_failed", error=str(e))
        return snapshot

    def load(self) -> CacheSnapshot | None:
        payload = _load_json(self._store, self._key)
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            return None
        try:
            timestamp = int(payload.get("timestamp") or 0)
        except (TypeError, ValueError):
            timestamp = 0
        return CacheSnapshot(timestamp=timestamp, data=DataBundle.from_dict(payload["data"]))

    def clear(self) -> None:
        self._store.remove(self._key)


class SettingsStore:
    """The settings slot; stored values are merged over the defaults."""

    def __init__(self, store: KeyValueStore, key: str = SETTINGS_KEY):
        self._store = store
        self._key = key

    def defaults(self) -> Settings:
        return Settings(web_app_url=get_settings().web_app_url)

    def load(self, defaults: Settings | None = None) -> Settings:
        defaults = defaults or self.defaults()
        merged = defaults.to_slot()
        stored = _load_json(self._store, self._key)
        if isinstance(stored, dict):
            merged.update(stored)
        try:
            return Settings.model_validate(merged)
        except PydanticValidationError as e:
            logger.warning("settings_invalid", error=str(e))
            return defaults

    def save(self, settings: Settings) -> None:
        self._store.set(self._key, json.dumps(settings.to_slot()))
