"""Unit tests for JSON-backed settings and preference stores."""

import json

import pytest

from handoff_router.errors import PersistenceError
from handoff_router.models import FallbackPreference, ProfilePreference, UiSettings
from handoff_router.persistence import JsonStore, PreferenceStore, SettingsStore


class TestJsonStore:

    def test_missing_file_uses_defaults(self, temp_config_dir):
        store = JsonStore(temp_config_dir / "state.json", defaults={"a": 1})

        assert store.get("a") == 1
        assert store.get("b", "fallback") == "fallback"
        assert store.entries() == {"a": 1}

    def test_corrupt_file(self, temp_config_dir):
        path = temp_config_dir / "state.json"
        path.write_text("{oops")

        with pytest.raises(PersistenceError, match="Invalid JSON"):
            JsonStore(path).load()

    def test_non_object_file(self, temp_config_dir):
        path = temp_config_dir / "state.json"
        path.write_text("[1, 2]")

        with pytest.raises(PersistenceError, match="JSON object"):
            JsonStore(path).load()

    def test_save_creates_parent_and_leaves_no_temp_files(self, temp_config_dir):
        path = temp_config_dir / "nested" / "state.json"
        store = JsonStore(path)
        store.set("key", ["value"])

        store.save()

        assert json.loads(path.read_text()) == {"key": ["value"]}
        assert [p.name for p in path.parent.iterdir()] == ["state.json"]

    def test_save_writes_defaults_for_unset_keys(self, temp_config_dir):
        path = temp_config_dir / "state.json"
        store = JsonStore(path, defaults={"a": [], "b": []})
        store.set("a", [1])

        store.save()

        assert json.loads(path.read_text()) == {"a": [1], "b": []}

    def test_get_returns_copies(self, temp_config_dir):
        store = JsonStore(temp_config_dir / "state.json")
        store.set("items", [1])

        store.get("items").append(2)

        assert store.get("items") == [1]


class TestSettingsStore:

    @pytest.mark.asyncio
    async def test_defaults_on_first_run(self, settings_store):
        assert await settings_store.load_ui_settings() == UiSettings()

    @pytest.mark.asyncio
    async def test_set_and_reload(self, settings_store, temp_config_dir):
        await settings_store.set_setting("show_icons", True)
        await settings_store.set_setting("last_selected_browser_id", "arc__default")

        settings = await SettingsStore(temp_config_dir).load_ui_settings()

        assert settings.show_icons is True
        assert settings.last_selected_browser_id == "arc__default"
        assert settings.remember_choice is True

    @pytest.mark.asyncio
    async def test_unknown_key_rejected(self, settings_store):
        with pytest.raises(ValueError, match="Unknown setting"):
            await settings_store.set_setting("theme", "dark")

    @pytest.mark.asyncio
    async def test_unrelated_keys_ignored(self, temp_config_dir):
        (temp_config_dir / SettingsStore.FILENAME).write_text(
            json.dumps({"debug_mode": True, "window_width": 800})
        )

        settings = await SettingsStore(temp_config_dir).load_ui_settings()

        assert settings.debug_mode is True

    @pytest.mark.asyncio
    async def test_invalid_value(self, temp_config_dir):
        (temp_config_dir / SettingsStore.FILENAME).write_text(json.dumps({"show_icons": "sometimes"}))

        with pytest.raises(PersistenceError):
            await SettingsStore(temp_config_dir).load_ui_settings()


class TestPreferenceStore:

    @pytest.mark.asyncio
    async def test_no_fallback_initially(self, preference_store):
        snapshot = await preference_store.fetch_preferences()
        assert snapshot.fallback is None

    @pytest.mark.asyncio
    async def test_set_then_clear(self, preference_store, temp_config_dir):
        profile = ProfilePreference(label="Work", directory="Profile 1")
        await preference_store.update_fallback("Google Chrome", profile)

        snapshot = await PreferenceStore(temp_config_dir).fetch_preferences()
        assert snapshot.fallback == FallbackPreference(browser="Google Chrome", profile=profile)

        await preference_store.update_fallback(None)
        snapshot = await PreferenceStore(temp_config_dir).fetch_preferences()
        assert snapshot.fallback is None

    @pytest.mark.asyncio
    async def test_invalid_file(self, temp_config_dir):
        (temp_config_dir / PreferenceStore.FILENAME).write_text(
            json.dumps({"preferences": {"fallback": {"browser": ""}}})
        )

        with pytest.raises(PersistenceError, match="Invalid preferences"):
            await PreferenceStore(temp_config_dir).fetch_preferences()
