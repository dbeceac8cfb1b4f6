"""Hand-off session coordinator.

Reconciles the routing backend's snapshot and pushed events, the fallback
browser preference and the cached UI settings into one ``HandoffState``.

The fallback preference, the snapshot, the settings and the browser catalog
are fetched concurrently when the session starts, in no guaranteed order.
Prompt visibility rules therefore hold whether the preference resolves
before or after the first incoming link:

- an incoming link while the fallback is Absent shows the prompt
- an incoming link while the fallback is Unknown shows the prompt and marks
  focus as pending until the preference resolves
- a Present fallback hides the prompt
- a dismissed prompt stays hidden for that link id only
"""

import asyncio
import copy
import logging
from functools import partial
from typing import Any, Awaitable, Callable, List, Optional, Union

from ..backend import PreferenceBackend, RoutingBackend, SettingsBackend, Unsubscribe
from ..errors import InitializationError, ResolutionError
from ..models import (
    ActiveLink,
    BrowserCatalogEntry,
    ErrorEvent,
    FallbackPreference,
    FallbackState,
    HandoffState,
    LaunchHistoryItem,
    PersistMode,
    ProfileDescriptor,
    ProfilePreference,
    RoutingSnapshot,
    RoutingStatus,
    StatusEvent,
)
from .catalog_builder import collect_catalog

logger = logging.getLogger(__name__)


FocusWindow = Callable[[], Union[None, Awaitable[None]]]

DEFAULT_HISTORY_LIMIT = 50


class HandoffCoordinator:
    """Owns the session state and applies every transition to it.

    Examples:
        >>> coordinator = HandoffCoordinator(backend, preferences, settings)
        >>> coordinator.start()
        >>> await coordinator.settle()
        >>> coordinator.snapshot().ready
        True
        >>> await coordinator.close()
    """

    def __init__(
        self,
        backend: RoutingBackend,
        preferences: PreferenceBackend,
        settings: SettingsBackend,
        focus_window: Optional[FocusWindow] = None,
        request_timeout: Optional[float] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        """Initialize the coordinator.

        Args:
            backend: Routing backend (snapshot, resolution, events, browsers)
            preferences: Fallback preference store
            settings: UI settings store
            focus_window: Called when the main window should be raised
            request_timeout: Seconds before a backend call is abandoned
                (None waits indefinitely)
            history_limit: Maximum history entries kept in state
        """
        self.backend = backend
        self.preferences = preferences
        self.settings = settings
        self.focus_window = focus_window
        self.request_timeout = request_timeout
        self.history_limit = history_limit

        self.state = HandoffState()

        self._unsubscribers: List[Unsubscribe] = []
        self._tasks: List[asyncio.Task] = []
        self._generation = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start (or restart) the session.

        Drops any previous subscriptions and in-flight loads, then fetches
        the snapshot, the fallback preference, the settings and the browser
        catalog as independent tasks. Must be called from a running loop.

        Raises:
            RuntimeError: If the coordinator has been closed
        """
        if self._closed:
            raise RuntimeError("Coordinator is closed")

        self._teardown_subscriptions()
        for task in self._tasks:
            task.cancel()

        self._generation += 1
        generation = self._generation
        self.state.init_error = None
        self.state.ready = False
        logger.info(f"Starting hand-off session (generation {generation})")

        self._tasks = [
            asyncio.create_task(self._bootstrap(generation)),
            asyncio.create_task(self._load_fallback(generation)),
            asyncio.create_task(self._load_settings(generation)),
            asyncio.create_task(self._load_catalog(generation)),
        ]

    async def settle(self) -> None:
        """Wait until every load started by ``start()`` has finished."""
        tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        """Unsubscribe from every event and cancel in-flight loads."""
        if self._closed:
            return

        self._closed = True
        self._teardown_subscriptions()

        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info("Hand-off session closed")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscription_count(self) -> int:
        return len(self._unsubscribers)

    def snapshot(self) -> HandoffState:
        """Deep copy of the current state."""
        return copy.deepcopy(self.state)

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _teardown_subscriptions(self) -> None:
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        for unsubscribe in unsubscribers:
            try:
                unsubscribe()
            except Exception as e:
                logger.warning(f"Error while unsubscribing: {e}")
        if unsubscribers:
            logger.debug(f"Removed {len(unsubscribers)} backend subscription(s)")

    async def _call(self, awaitable: Awaitable[Any]) -> Any:
        if self.request_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.request_timeout)

    async def _request_focus(self) -> None:
        if self.focus_window is None:
            return
        try:
            result = self.focus_window()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.warning(f"Unable to focus main window: {e}")

    # ------------------------------------------------------------------
    # Session bootstrap
    # ------------------------------------------------------------------

    async def _fetch_snapshot(self) -> RoutingSnapshot:
        try:
            return await self._call(self.backend.fetch_snapshot())
        except Exception as e:
            raise InitializationError(f"Failed to connect to routing service: {e}") from e

    async def _bootstrap(self, generation: int) -> None:
        try:
            snapshot = await self._fetch_snapshot()
        except InitializationError as e:
            if not self._is_current(generation):
                return
            self.state.init_error = str(e)
            self.state.ready = True
            logger.error(self.state.init_error)
            return

        if not self._is_current(generation):
            return

        self.state.history = list(snapshot.history)[: self.history_limit]
        focus = self._set_active_link(snapshot.active)
        self.state.ready = True
        logger.info(
            f"Routing snapshot loaded: active={snapshot.active.id if snapshot.active else None} "
            f"history={len(snapshot.history)}"
        )

        listeners = (
            (self.backend.listen_incoming_link, self._on_incoming_link),
            (self.backend.listen_launch_decision, self._on_launch_decision),
            (self.backend.listen_status, self._on_status),
            (self.backend.listen_error, self._on_error),
        )
        try:
            for listen, handler in listeners:
                unsubscribe = await self._call(listen(partial(handler, generation)))
                if not self._is_current(generation):
                    unsubscribe()
                    return
                self._unsubscribers.append(unsubscribe)
        except Exception as e:
            self._teardown_subscriptions()
            if not self._is_current(generation):
                return
            self.state.init_error = f"Failed to connect to routing service: {e}"
            logger.error(self.state.init_error)
            return

        logger.debug(f"Subscribed to {len(self._unsubscribers)} routing event stream(s)")

        if focus:
            await self._request_focus()

    async def _load_fallback(self, generation: int) -> None:
        try:
            snapshot = await self._call(self.preferences.fetch_preferences())
        except Exception as e:
            if self._is_current(generation):
                logger.warning(f"Unable to read fallback preference: {e}")
                self._apply_fallback(FallbackState.unknown())
            return

        if not self._is_current(generation):
            return

        if self._apply_fallback(FallbackState.from_preferences(snapshot)):
            await self._request_focus()

    async def _load_settings(self, generation: int) -> None:
        try:
            settings = await self._call(self.settings.load_ui_settings())
        except Exception as e:
            if self._is_current(generation):
                logger.warning(f"Unable to load UI settings: {e}")
                self.state.settings_ready = True
            return

        if not self._is_current(generation):
            return

        self.state.ui_settings = settings
        self.state.settings_ready = True
        self.state.selected_browser_id = settings.last_selected_browser_id
        await self._validate_last_selected()

    async def _load_catalog(self, generation: int) -> None:
        try:
            names = await self._call(self.backend.fetch_available_browsers())
        except Exception as e:
            if self._is_current(generation):
                logger.warning(f"Unable to list installed browsers: {e}")
            return

        if not self._is_current(generation):
            return

        catalog = await collect_catalog(names, self._fetch_profiles)
        if not self._is_current(generation):
            return

        self.state.catalog = catalog
        self.state.catalog_ready = True
        await self._validate_last_selected()

    async def _fetch_profiles(self, browser: str) -> List[ProfileDescriptor]:
        return await self._call(self.backend.fetch_profiles(browser))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _set_active_link(self, link: Optional[ActiveLink]) -> bool:
        """Replace the active link. Returns True if focus is owed."""
        state = self.state
        state.active_link = link

        if link is None:
            state.prompt_visible = False
            state.pending_focus_on_fallback_known = False
            return False

        focus = self._reconcile_prompt()
        if state.fallback.is_absent:
            focus = True
        return focus

    def _reconcile_prompt(self) -> bool:
        """Show the prompt for an undismissed link while no fallback exists."""
        state = self.state
        link = state.active_link
        if link is None or not state.fallback.is_absent:
            return False
        if state.dismissed_for_link_id == link.id or state.prompt_visible:
            return False
        state.prompt_visible = True
        return True

    def _apply_fallback(self, fallback: FallbackState) -> bool:
        """Record the resolved fallback preference. Returns True if focus is owed."""
        state = self.state
        state.fallback = fallback
        logger.debug(f"Fallback preference is {fallback.kind.value}")

        if fallback.is_present:
            state.prompt_visible = False
            state.dismissed_for_link_id = None
            state.pending_focus_on_fallback_known = False
            return False

        if not fallback.is_absent:
            return False

        focus = False
        if state.pending_focus_on_fallback_known:
            state.prompt_visible = True
            state.pending_focus_on_fallback_known = False
            focus = True
        elif state.active_link is not None:
            focus = True

        return self._reconcile_prompt() or focus

    async def _on_incoming_link(self, generation: int, link: ActiveLink) -> None:
        if not self._is_current(generation):
            return

        logger.info(f"Incoming link id={link.id} from {link.source_app}: {link.url}")
        state = self.state
        focus = False

        if state.fallback.is_absent:
            state.prompt_visible = True
            focus = True
        elif state.fallback.is_unknown:
            state.pending_focus_on_fallback_known = True
            state.prompt_visible = True
            focus = True

        if self._set_active_link(link):
            focus = True
        if focus:
            await self._request_focus()

    async def _on_launch_decision(self, generation: int, decision: LaunchHistoryItem) -> None:
        if not self._is_current(generation):
            return

        logger.debug(f"Launch decision id={decision.id} browser={decision.browser} persist={decision.persist.value}")
        history = [decision] + [item for item in self.state.history if item.id != decision.id]
        self.state.history = history[: self.history_limit]

    async def _on_status(self, generation: int, event: StatusEvent) -> None:
        if not self._is_current(generation):
            return

        logger.debug(f"Status id={event.id}: {event.status.value}")
        self.state.status_by_id[event.id] = event.status
        if event.status != RoutingStatus.FAILED:
            self.state.errors_by_id.pop(event.id, None)

    async def _on_error(self, generation: int, event: ErrorEvent) -> None:
        if not self._is_current(generation):
            return

        logger.warning(f"Routing error id={event.id}: {event.message}")
        self.state.errors_by_id[event.id] = event.message
        self.state.status_by_id[event.id] = RoutingStatus.FAILED

    # ------------------------------------------------------------------
    # Prompt actions
    # ------------------------------------------------------------------

    def dismiss_prompt(self) -> None:
        """Hide the fallback prompt for the current link only."""
        link = self.state.active_link
        self.state.prompt_visible = False
        self.state.dismissed_for_link_id = link.id if link else None

    def open_fallback_settings(self) -> None:
        """Leave the prompt for the fallback settings; same suppression as dismissing."""
        logger.debug("Opening fallback settings from prompt")
        self.dismiss_prompt()

    def clear_active_link(self) -> None:
        self._set_active_link(None)

    # ------------------------------------------------------------------
    # Launches
    # ------------------------------------------------------------------

    async def record_launch(
        self,
        entry: BrowserCatalogEntry,
        persist: PersistMode = PersistMode.JUST_ONCE,
    ) -> None:
        """Open the active link with a catalog entry.

        Args:
            entry: Chosen browser and profile
            persist: Whether the backend should remember the choice

        Raises:
            ResolutionError: If there is no active link
            Exception: Whatever the backend raised; the link's status is
                left as failed
        """
        link = self.state.active_link
        if link is None:
            raise ResolutionError("No active link to open.")

        link_id = link.id
        self.state.status_by_id[link_id] = RoutingStatus.LAUNCHING
        self.state.errors_by_id.pop(link_id, None)
        logger.info(f"Opening link id={link_id} with {entry.label} ({persist.value})")

        try:
            await self._call(self.backend.resolve_incoming_link(link_id, entry.to_selection(), persist))
        except Exception as e:
            self.state.status_by_id[link_id] = RoutingStatus.FAILED
            logger.error(f"Failed to open link id={link_id}: {e}")
            raise

        self.state.selected_browser_id = entry.id
        if self.state.active_link is not None and self.state.active_link.id == link_id:
            self._set_active_link(None)

        if self.state.ui_settings.remember_choice:
            try:
                await self.settings.set_setting("last_selected_browser_id", entry.id)
                self.state.ui_settings = self.state.ui_settings.model_copy(
                    update={"last_selected_browser_id": entry.id}
                )
            except Exception as e:
                logger.warning(f"Unable to remember browser choice {entry.id}: {e}")

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def refresh_catalog(self) -> List[BrowserCatalogEntry]:
        """Rebuild the browser catalog and drop a stale last-selected id."""
        await self._load_catalog(self._generation)
        return list(self.state.catalog)

    async def _validate_last_selected(self) -> None:
        state = self.state
        if not (state.catalog_ready and state.settings_ready):
            return

        ids = {entry.id for entry in state.catalog}
        if state.selected_browser_id is not None and state.selected_browser_id not in ids:
            state.selected_browser_id = None

        stale = state.ui_settings.last_selected_browser_id
        if stale is None or stale in ids:
            return

        logger.info(f"Last selected browser {stale} is no longer installed; clearing it")
        state.ui_settings = state.ui_settings.model_copy(update={"last_selected_browser_id": None})
        try:
            await self.settings.set_setting("last_selected_browser_id", None)
        except Exception as e:
            logger.warning(f"Unable to clear last selected browser: {e}")

    def select_browser(self, browser_id: Optional[str]) -> None:
        """Preselect a catalog entry, or clear the preselection with None.

        Raises:
            ValueError: If the id is not in the catalog
        """
        if browser_id is not None and browser_id not in {entry.id for entry in self.state.catalog}:
            raise ValueError(f"Unknown browser id: {browser_id}")
        self.state.selected_browser_id = browser_id

    # ------------------------------------------------------------------
    # Fallback and settings
    # ------------------------------------------------------------------

    async def set_fallback(
        self,
        browser: Optional[str],
        profile: Optional[ProfilePreference] = None,
    ) -> bool:
        """Set or clear the fallback browser.

        The state changes immediately and is restored if the preference
        cannot be saved.

        Returns:
            True if the preference was saved
        """
        state = self.state
        previous = (
            state.fallback,
            state.prompt_visible,
            state.dismissed_for_link_id,
            state.pending_focus_on_fallback_known,
        )

        if browser:
            fallback = FallbackState.present(FallbackPreference(browser=browser, profile=profile))
        else:
            fallback = FallbackState.absent()
        focus = self._apply_fallback(fallback)

        try:
            await self.preferences.update_fallback(browser or None, profile if browser else None)
        except Exception as e:
            (
                state.fallback,
                state.prompt_visible,
                state.dismissed_for_link_id,
                state.pending_focus_on_fallback_known,
            ) = previous
            state.notice = f"Unable to save fallback browser: {e}"
            logger.error(state.notice)
            return False

        state.notice = None
        logger.info(f"Fallback browser {'set to ' + browser if browser else 'cleared'}")
        if focus:
            await self._request_focus()
        return True

    async def _update_setting(self, key: str, value: Any) -> bool:
        previous = self.state.ui_settings
        self.state.ui_settings = previous.model_copy(update={key: value})

        try:
            await self.settings.set_setting(key, value)
        except Exception as e:
            self.state.ui_settings = previous
            self.state.notice = f"Unable to save setting {key}: {e}"
            logger.error(self.state.notice)
            return False

        self.state.notice = None
        return True

    async def set_remember_choice(self, enabled: bool) -> bool:
        """Toggle remembering the last browser; turning it off forgets the choice."""
        if not await self._update_setting("remember_choice", enabled):
            return False
        if not enabled:
            self.state.selected_browser_id = None
            return await self._update_setting("last_selected_browser_id", None)
        return True

    async def set_show_icons(self, enabled: bool) -> bool:
        return await self._update_setting("show_icons", enabled)

    async def set_debug_mode(self, enabled: bool) -> bool:
        return await self._update_setting("debug_mode", enabled)

    async def complete_onboarding(self) -> bool:
        return await self._update_setting("onboarding_completed", True)
