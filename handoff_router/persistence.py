"""JSON file persistence for settings and preferences.

Each store is a single JSON object on disk, loaded lazily on first access
and written back atomically (temp file + rename) on ``save()``.
"""

import asyncio
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .backend import PreferenceBackend, SettingsBackend
from .errors import PersistenceError
from .models import (
    FallbackPreference,
    PreferencesSnapshot,
    ProfilePreference,
    SETTING_KEYS,
    UiSettings,
)

logger = logging.getLogger(__name__)


class JsonStore:
    """Key-value store backed by one JSON object file.

    Missing keys fall back to ``defaults``. A missing file is treated as
    empty; an unreadable or corrupt file raises PersistenceError.
    """

    def __init__(self, path: Path, defaults: Optional[Dict[str, Any]] = None):
        self.path = Path(path).expanduser()
        self.defaults = defaults or {}
        self._data: Optional[Dict[str, Any]] = None

    def load(self) -> None:
        """(Re)read the file from disk."""
        if not self.path.exists():
            logger.debug(f"No store file at {self.path} (first run)")
            self._data = {}
            return

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Invalid JSON in {self.path}: {e}")
        except OSError as e:
            raise PersistenceError(f"Failed to read {self.path}: {e}")

        if not isinstance(data, dict):
            raise PersistenceError(f"{self.path} must contain a JSON object")

        self._data = data
        logger.debug(f"Loaded {len(data)} key(s) from {self.path}")

    def _ensure_loaded(self) -> Dict[str, Any]:
        if self._data is None:
            self.load()
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        data = self._ensure_loaded()
        if key in data:
            return copy.deepcopy(data[key])
        if key in self.defaults:
            return copy.deepcopy(self.defaults[key])
        return default

    def set(self, key: str, value: Any) -> None:
        self._ensure_loaded()[key] = value

    def entries(self) -> Dict[str, Any]:
        """Defaults overlaid with stored values."""
        merged = copy.deepcopy(self.defaults)
        merged.update(copy.deepcopy(self._ensure_loaded()))
        return merged

    def save(self) -> None:
        """Write defaults overlaid with stored values atomically.

        Raises:
            PersistenceError: If the file cannot be written
        """
        data = self.entries()

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=f".{self.path.stem}-",
                suffix=".json",
            )
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}")

        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2, default=str)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_path, self.path)

        except (OSError, TypeError, ValueError) as e:
            if Path(temp_path).exists():
                os.unlink(temp_path)
            raise PersistenceError(f"Failed to write {self.path}: {e}")

        logger.debug(f"Saved {self.path}")


class SettingsStore(SettingsBackend):
    """UI settings persisted in ui-settings.json."""

    FILENAME = "ui-settings.json"

    def __init__(self, config_dir: Path):
        self.store = JsonStore(
            Path(config_dir) / self.FILENAME,
            defaults=UiSettings().model_dump(mode="json"),
        )
        self._lock = asyncio.Lock()

    async def load_ui_settings(self) -> UiSettings:
        async with self._lock:
            self.store.load()
            entries = {
                key: value for key, value in self.store.entries().items()
                if key in SETTING_KEYS
            }

        try:
            return UiSettings(**entries)
        except ValidationError as e:
            raise PersistenceError(f"Invalid settings in {self.store.path}: {e}")

    async def set_setting(self, key: str, value: Any) -> None:
        if key not in SETTING_KEYS:
            raise ValueError(f"Unknown setting: {key}. Must be one of: {', '.join(SETTING_KEYS)}")

        async with self._lock:
            previous = self.store.get(key)
            self.store.set(key, value)
            try:
                self.store.save()
            except PersistenceError:
                self.store.set(key, previous)
                raise
        logger.debug(f"Setting updated: {key}={value!r}")


class PreferenceStore(PreferenceBackend):
    """Fallback-browser preference persisted in preferences.json."""

    FILENAME = "preferences.json"
    KEY = "preferences"

    def __init__(self, config_dir: Path):
        self.store = JsonStore(Path(config_dir) / self.FILENAME)
        self._lock = asyncio.Lock()

    async def fetch_preferences(self) -> PreferencesSnapshot:
        async with self._lock:
            self.store.load()
            data = self.store.get(self.KEY) or {}

        try:
            return PreferencesSnapshot(**data)
        except (TypeError, ValidationError) as e:
            raise PersistenceError(f"Invalid preferences in {self.store.path}: {e}")

    async def update_fallback(
        self,
        browser: Optional[str],
        profile: Optional[ProfilePreference] = None,
    ) -> None:
        fallback = None
        if browser:
            fallback = FallbackPreference(browser=browser, profile=profile)

        snapshot = PreferencesSnapshot(fallback=fallback)
        async with self._lock:
            previous = self.store.get(self.KEY)
            self.store.set(self.KEY, snapshot.model_dump(mode="json"))
            try:
                self.store.save()
            except PersistenceError:
                self.store.set(self.KEY, previous)
                raise

        if fallback:
            logger.info(f"Fallback browser set to {fallback.browser}")
        else:
            logger.info("Fallback browser cleared")
