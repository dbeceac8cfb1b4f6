"""Unit tests for the in-process routing backend."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from handoff_router.errors import EnumerationError, ResolutionError
from handoff_router.models import (
    BrowserSelection,
    FallbackPreference,
    FileTypeRule,
    IncomingLinkWire,
    LaunchHistoryItem,
    PersistMode,
    PreferencesSnapshot,
    ProfilePreference,
    RoutingStatus,
    RulePolicy,
    RulesSnapshot,
    UrlRule,
)
from handoff_router.services.local_backend import InMemoryRoutingBackend, normalize_url
from handoff_router.services.rule_matcher import RuleMatcher


def record_events(backend):
    events = {"incoming": [], "decisions": [], "statuses": [], "errors": []}
    backend.incoming.subscribe(events["incoming"].append)
    backend.decisions.subscribe(events["decisions"].append)
    backend.statuses.subscribe(events["statuses"].append)
    backend.errors.subscribe(events["errors"].append)
    return events


def preferences_with(fallback=None):
    preferences = MagicMock()
    preferences.fetch_preferences = AsyncMock(return_value=PreferencesSnapshot(fallback=fallback))
    return preferences


def matcher_for(*url_rules, file_type_rules=()):
    return RuleMatcher(RulesSnapshot(url_rules=list(url_rules), file_type_rules=list(file_type_rules)))


class TestNormalizeUrl:

    @pytest.mark.parametrize("raw,expected", [
        ("  github.com/org ", "https://github.com/org"),
        ("http://example.com", "http://example.com"),
        ("HTTPS://Example.com/Path", "HTTPS://Example.com/Path"),
        ("mailto:team@example.com", "mailto:team@example.com"),
        ("localhost:3000/x", "https://localhost:3000/x"),
        ("", ""),
        ("   ", ""),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_url(raw) == expected


class TestRegisterIncoming:

    @pytest.mark.asyncio
    async def test_becomes_active_and_is_announced(self, backend):
        events = record_events(backend)

        link = await backend.register_incoming(IncomingLinkWire(url="example.com/a", source_app="Slack"))

        assert link.id
        assert link.url == "https://example.com/a"
        assert events["incoming"] == [link]
        assert events["decisions"] == []
        snapshot = await backend.fetch_snapshot()
        assert snapshot.active == link

    @pytest.mark.asyncio
    async def test_fallback_auto_resolves(self, inventory):
        launcher = AsyncMock()
        fallback = FallbackPreference(browser="Google Chrome", profile=ProfilePreference(label="Work", directory="Profile 1"))
        backend = InMemoryRoutingBackend(
            preferences=preferences_with(fallback),
            launcher=launcher,
            inventory=inventory,
        )
        events = record_events(backend)

        await backend.register_incoming(IncomingLinkWire(id="L1", url="https://a.test", source_app="Mail"))

        decision = events["decisions"][0]
        assert decision.browser == "Google Chrome"
        assert decision.profile_directory == "Profile 1"
        assert decision.persist == PersistMode.ALWAYS
        assert [e.status for e in events["statuses"]] == [RoutingStatus.LAUNCHING, RoutingStatus.LAUNCHED]
        launcher.assert_awaited_once_with(decision)
        assert (await backend.fetch_snapshot()).active is None

    @pytest.mark.asyncio
    async def test_no_fallback_leaves_link_pending(self, inventory):
        backend = InMemoryRoutingBackend(preferences=preferences_with(None), inventory=inventory)

        await backend.register_incoming(IncomingLinkWire(id="L1", url="https://a.test", source_app="Mail"))

        assert (await backend.fetch_snapshot()).active.id == "L1"

    @pytest.mark.asyncio
    async def test_always_rule_opens_rule_browser(self, inventory):
        launcher = AsyncMock()
        rule = UrlRule(pattern="github.com", browser_id="firefox__default", browser_label="Firefox")
        backend = InMemoryRoutingBackend(
            preferences=preferences_with(FallbackPreference(browser="Arc")),
            launcher=launcher,
            inventory=inventory,
            matcher=matcher_for(rule),
        )

        await backend.register_incoming(IncomingLinkWire(id="L1", url="https://github.com/org", source_app="Slack"))

        assert launcher.await_args.args[0].browser == "Firefox"

    @pytest.mark.asyncio
    async def test_file_type_rule_wins_over_url_rule(self, inventory):
        launcher = AsyncMock()
        backend = InMemoryRoutingBackend(
            launcher=launcher,
            inventory=inventory,
            matcher=matcher_for(
                UrlRule(pattern="github.com", browser_id="firefox__default", browser_label="Firefox"),
                file_type_rules=[FileTypeRule(extension=".pdf", browser_id="arc__default", browser_label="Arc")],
            ),
        )

        await backend.register_incoming(IncomingLinkWire(id="L1", url="https://github.com/a.pdf", source_app="Slack"))

        assert launcher.await_args.args[0].browser == "Arc"

    @pytest.mark.asyncio
    async def test_just_once_rule_only_recommends(self, inventory):
        launcher = AsyncMock()
        rule = UrlRule(
            pattern="github.com",
            browser_id="google-chrome__profile-1",
            browser_label="Google Chrome · Work",
            policy=RulePolicy.JUST_ONCE,
        )
        backend = InMemoryRoutingBackend(
            preferences=preferences_with(FallbackPreference(browser="Arc")),
            launcher=launcher,
            inventory=inventory,
            matcher=matcher_for(rule),
        )

        link = await backend.register_incoming(IncomingLinkWire(id="L1", url="https://github.com", source_app="Slack"))

        assert link.recommended_browser == BrowserSelection(
            name="Google Chrome", profile_label="Work", profile_directory="Profile 1"
        )
        launcher.assert_not_awaited()
        assert (await backend.fetch_snapshot()).active.id == "L1"

    @pytest.mark.asyncio
    async def test_fallback_policy_rule_uses_fallback(self, inventory):
        launcher = AsyncMock()
        rule = UrlRule(pattern="github.com", browser_label="Firefox", policy=RulePolicy.FALLBACK)
        backend = InMemoryRoutingBackend(
            preferences=preferences_with(FallbackPreference(browser="Arc")),
            launcher=launcher,
            inventory=inventory,
            matcher=matcher_for(rule),
        )

        await backend.register_incoming(IncomingLinkWire(id="L1", url="https://github.com", source_app="Slack"))

        assert launcher.await_args.args[0].browser == "Arc"

    @pytest.mark.asyncio
    async def test_unreadable_preferences_leave_link_pending(self, inventory):
        preferences = MagicMock()
        preferences.fetch_preferences = AsyncMock(side_effect=OSError("unreadable"))
        backend = InMemoryRoutingBackend(preferences=preferences, inventory=inventory)

        await backend.register_incoming(IncomingLinkWire(id="L1", url="https://a.test", source_app="Mail"))

        assert (await backend.fetch_snapshot()).active.id == "L1"


class TestResolve:

    @pytest.mark.asyncio
    async def test_resolve_incoming_link(self, backend):
        events = record_events(backend)
        await backend.register_incoming(IncomingLinkWire(id="L1", url="https://a.test", source_app="Mail"))

        await backend.resolve_incoming_link("L1", BrowserSelection(name="Firefox"), PersistMode.JUST_ONCE)

        assert events["decisions"][0].id == "L1"
        assert events["decisions"][0].persist == PersistMode.JUST_ONCE
        snapshot = await backend.fetch_snapshot()
        assert snapshot.active is None
        assert [item.id for item in snapshot.history] == ["L1"]

    @pytest.mark.asyncio
    async def test_decision_carries_link_and_profile(self, backend):
        events = record_events(backend)
        await backend.register_incoming(IncomingLinkWire(
            id="L1", url="a.test/doc", source_app="Mail", contact_name="Dana",
        ))

        await backend.resolve_incoming_link(
            "L1",
            BrowserSelection(name="Google Chrome", profile_label="Work", profile_directory="Profile 1"),
            PersistMode.ALWAYS,
        )

        decision = events["decisions"][0]
        assert decision.url == "https://a.test/doc"
        assert decision.contact_name == "Dana"
        assert decision.profile_directory == "Profile 1"
        assert decision.persist == PersistMode.ALWAYS
        assert decision.decided_at

    @pytest.mark.asyncio
    async def test_unknown_link_id(self, backend):
        with pytest.raises(ResolutionError) as exc_info:
            await backend.resolve_incoming_link("nope", BrowserSelection(name="Arc"), PersistMode.JUST_ONCE)
        assert exc_info.value.link_id == "nope"

    @pytest.mark.asyncio
    async def test_empty_url_rejected(self, backend):
        decision = LaunchHistoryItem(id="L1", url="  ", browser="Arc", source_app="Mail")

        with pytest.raises(ResolutionError, match="valid URL"):
            await backend.resolve(decision)

        assert (await backend.fetch_snapshot()).history == []

    @pytest.mark.asyncio
    async def test_history_deduplicated_and_capped(self, inventory):
        backend = InMemoryRoutingBackend(inventory=inventory, history_limit=2)

        for link_id in ["L1", "L2", "L1", "L3"]:
            await backend.resolve(LaunchHistoryItem(id=link_id, url="https://a.test", browser="Arc", source_app="Mail"))

        history = (await backend.fetch_snapshot()).history
        assert [item.id for item in history] == ["L3", "L1"]

    @pytest.mark.asyncio
    async def test_launch_failure_reported_as_events(self, inventory):
        launcher = AsyncMock(side_effect=RuntimeError("browser missing"))
        backend = InMemoryRoutingBackend(launcher=launcher, inventory=inventory)
        events = record_events(backend)

        await backend.resolve(LaunchHistoryItem(id="L1", url="https://a.test", browser="Arc", source_app="Mail"))

        assert [e.status for e in events["statuses"]] == [RoutingStatus.LAUNCHING, RoutingStatus.FAILED]
        assert events["errors"][0].id == "L1"
        assert "browser missing" in events["errors"][0].message


class TestInventory:

    @pytest.mark.asyncio
    async def test_browsers_and_profiles(self, backend):
        assert await backend.fetch_available_browsers() == ["Google Chrome", "Firefox", "Arc"]
        profiles = await backend.fetch_profiles("Google Chrome")
        assert [p.directory for p in profiles] == ["Profile 1", "Default"]

    @pytest.mark.asyncio
    async def test_unknown_browser(self, backend):
        with pytest.raises(EnumerationError):
            await backend.fetch_profiles("Netscape")
