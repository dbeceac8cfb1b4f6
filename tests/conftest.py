"""Pytest configuration and shared fixtures for handoff_router tests."""

import asyncio
import tempfile
from pathlib import Path
from typing import Dict, Generator, List, Optional
from unittest.mock import MagicMock

import pytest

from handoff_router.backend import PreferenceBackend, SettingsBackend
from handoff_router.models import (
    BrowserCatalogEntry,
    FallbackPreference,
    PreferencesSnapshot,
    ProfileDescriptor,
    ProfilePreference,
    UiSettings,
)
from handoff_router.persistence import PreferenceStore, SettingsStore
from handoff_router.services import InMemoryRoutingBackend, RuleStore, build_catalog


SAMPLE_INVENTORY: Dict[str, List[ProfileDescriptor]] = {
    "Google Chrome": [
        ProfileDescriptor(display_name="Work", directory="Profile 1"),
        ProfileDescriptor(display_name="Personal", directory="Default"),
    ],
    "Firefox": [],
    "Arc": [],
}


@pytest.fixture
def temp_config_dir() -> Generator[Path, None, None]:
    """Temporary directory standing in for ~/.config/handoff-router."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def inventory() -> Dict[str, List[ProfileDescriptor]]:
    return {name: list(profiles) for name, profiles in SAMPLE_INVENTORY.items()}


@pytest.fixture
def catalog(inventory) -> List[BrowserCatalogEntry]:
    """Catalog built from the sample inventory.

    Order: Chrome Work, Chrome Personal (directory "Default", so it takes
    the google-chrome__default id), Firefox, Arc.
    """
    return build_catalog(list(inventory.keys()), inventory)


@pytest.fixture
def rule_store(temp_config_dir: Path) -> RuleStore:
    return RuleStore(temp_config_dir)


@pytest.fixture
def settings_store(temp_config_dir: Path) -> SettingsStore:
    return SettingsStore(temp_config_dir)


@pytest.fixture
def preference_store(temp_config_dir: Path) -> PreferenceStore:
    return PreferenceStore(temp_config_dir)


class GatedPreferences(PreferenceBackend):
    """Preference backend whose fetch waits until the test releases it.

    Lets a test deliver incoming links while the fallback is still unknown.
    """

    def __init__(self):
        self.gate = asyncio.Event()
        self.snapshot = PreferencesSnapshot()
        self.error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.updates: List[tuple] = []

    def release(self, fallback: Optional[FallbackPreference] = None, error: Optional[Exception] = None) -> None:
        self.snapshot = PreferencesSnapshot(fallback=fallback)
        self.error = error
        self.gate.set()

    async def fetch_preferences(self) -> PreferencesSnapshot:
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.snapshot

    async def update_fallback(self, browser: Optional[str], profile: Optional[ProfilePreference] = None) -> None:
        if self.update_error is not None:
            raise self.update_error
        self.updates.append((browser, profile))


class MemorySettings(SettingsBackend):
    """Settings backend keeping values in memory and recording writes."""

    def __init__(self, settings: Optional[UiSettings] = None):
        self.settings = settings or UiSettings()
        self.writes: List[tuple] = []
        self.fail_keys: set = set()
        self.load_error: Optional[Exception] = None

    async def load_ui_settings(self) -> UiSettings:
        if self.load_error is not None:
            raise self.load_error
        return self.settings

    async def set_setting(self, key, value) -> None:
        if key in self.fail_keys:
            raise OSError(f"disk full while writing {key}")
        self.writes.append((key, value))
        self.settings = self.settings.model_copy(update={key: value})


@pytest.fixture
def gated_preferences() -> GatedPreferences:
    return GatedPreferences()


@pytest.fixture
def memory_settings() -> MemorySettings:
    return MemorySettings()


@pytest.fixture
def backend(inventory) -> InMemoryRoutingBackend:
    """Routing backend with the sample inventory and no rules or fallback."""
    return InMemoryRoutingBackend(inventory=inventory)


@pytest.fixture
def focus_window() -> MagicMock:
    return MagicMock(name="focus_window")
