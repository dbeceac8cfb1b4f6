"""Collaborator contracts consumed by the hand-off coordinator.

These define the narrow request/response and publish/subscribe surfaces of
the routing backend, the preference store, the settings store and rule
persistence. Concrete implementations live in ``handoff_router.persistence``,
``handoff_router.services.rule_store`` and
``handoff_router.services.local_backend``.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, Union

from .models import (
    ActiveLink,
    BrowserSelection,
    ErrorEvent,
    FileTypeRule,
    LaunchHistoryItem,
    PersistMode,
    PreferencesSnapshot,
    ProfileDescriptor,
    ProfilePreference,
    RoutingSnapshot,
    RulesSnapshot,
    StatusEvent,
    UiSettings,
    UrlRule,
)

# Unsubscribe handle returned by every listen_* call
Unsubscribe = Callable[[], None]

# Event callbacks may be plain functions or coroutine functions
IncomingLinkCallback = Callable[[ActiveLink], Union[None, Awaitable[None]]]
DecisionCallback = Callable[[LaunchHistoryItem], Union[None, Awaitable[None]]]
StatusCallback = Callable[[StatusEvent], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[ErrorEvent], Union[None, Awaitable[None]]]


class RoutingBackend(ABC):
    """Link hand-off service: snapshot, resolution, events, browser inventory."""

    @abstractmethod
    async def fetch_snapshot(self) -> RoutingSnapshot:
        """Return the active link (if any) and launch history."""

    @abstractmethod
    async def resolve_incoming_link(
        self,
        link_id: str,
        selection: BrowserSelection,
        persist: PersistMode,
    ) -> None:
        """Open a link with the chosen browser.

        Raises:
            ResolutionError: If the link cannot be resolved or launched
        """

    @abstractmethod
    async def listen_incoming_link(self, callback: IncomingLinkCallback) -> Unsubscribe:
        """Subscribe to newly arriving links."""

    @abstractmethod
    async def listen_launch_decision(self, callback: DecisionCallback) -> Unsubscribe:
        """Subscribe to recorded launch decisions."""

    @abstractmethod
    async def listen_status(self, callback: StatusCallback) -> Unsubscribe:
        """Subscribe to per-link launch status changes."""

    @abstractmethod
    async def listen_error(self, callback: ErrorCallback) -> Unsubscribe:
        """Subscribe to per-link launch errors."""

    @abstractmethod
    async def fetch_available_browsers(self) -> List[str]:
        """Names of installed browsers."""

    @abstractmethod
    async def fetch_profiles(self, browser: str) -> List[ProfileDescriptor]:
        """Profiles of one browser.

        Raises:
            EnumerationError: If this browser's profiles cannot be read
        """


class PreferenceBackend(ABC):
    """Durable fallback-browser preference."""

    @abstractmethod
    async def fetch_preferences(self) -> PreferencesSnapshot:
        ...

    @abstractmethod
    async def update_fallback(
        self,
        browser: Optional[str],
        profile: Optional[ProfilePreference] = None,
    ) -> None:
        """Set the fallback browser, or clear it when browser is None."""


class SettingsBackend(ABC):
    """Durable UI settings."""

    @abstractmethod
    async def load_ui_settings(self) -> UiSettings:
        """Return stored settings merged over the defaults."""

    @abstractmethod
    async def set_setting(self, key: str, value: Any) -> None:
        ...


class RulePersistence(ABC):
    """Durable rule collections, replaced whole on every write."""

    @abstractmethod
    async def load_rules(self) -> RulesSnapshot:
        ...

    @abstractmethod
    async def replace_url_rules(self, rules: List[UrlRule]) -> None:
        ...

    @abstractmethod
    async def replace_file_type_rules(self, rules: List[FileTypeRule]) -> None:
        ...
