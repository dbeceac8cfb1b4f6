"""In-process routing backend.

Holds the active link and launch history, publishes incoming / decision /
status / error events, and auto-resolves links through routing rules or the
fallback preference. Opening the browser itself is delegated to an injected
async launcher.
"""

import logging
import re
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Union
from urllib.parse import urlsplit

from ..backend import (
    DecisionCallback,
    ErrorCallback,
    IncomingLinkCallback,
    PreferenceBackend,
    RoutingBackend,
    StatusCallback,
    Unsubscribe,
)
from ..errors import EnumerationError, ResolutionError
from ..models import (
    ActiveLink,
    BrowserCatalogEntry,
    BrowserSelection,
    ErrorEvent,
    FileTypeRule,
    IncomingLinkWire,
    LaunchDecisionWire,
    LaunchHistoryItem,
    PersistMode,
    ProfileDescriptor,
    RoutingSnapshot,
    RoutingStatus,
    RulePolicy,
    StatusEvent,
    UrlRule,
    map_incoming_link,
    map_launch_decision,
    utc_now_iso,
)
from .catalog_builder import build_catalog
from .event_channel import EventChannel
from .rule_matcher import RuleMatcher

logger = logging.getLogger(__name__)


Launcher = Callable[[LaunchHistoryItem], Awaitable[None]]

DEFAULT_HISTORY_LIMIT = 50

# Schemes whose URLs carry no authority part
_OPAQUE_SCHEMES = ("mailto", "tel", "sms", "data", "about")


def normalize_url(value: str) -> str:
    """Trim a URL and add https:// when it has no usable scheme.

    Examples:
        >>> normalize_url("  github.com/org ")
        'https://github.com/org'
        >>> normalize_url("http://example.com")
        'http://example.com'
        >>> normalize_url("mailto:team@example.com")
        'mailto:team@example.com'
    """
    trimmed = (value or "").strip()
    if not trimmed:
        return ""

    parts = urlsplit(trimmed)
    if parts.scheme and parts.netloc and "://" in trimmed:
        return trimmed
    if parts.scheme.lower() in _OPAQUE_SCHEMES:
        return trimmed

    bare = re.sub(r"^https?://", "", trimmed, flags=re.IGNORECASE)
    candidate = f"https://{bare}"
    if urlsplit(candidate).netloc:
        return candidate
    return trimmed


async def _log_launch(decision: LaunchHistoryItem) -> None:
    logger.info(
        f"Launching {decision.url} with {decision.browser}"
        + (f" (profile {decision.profile_directory})" if decision.profile_directory else "")
    )


class InMemoryRoutingBackend(RoutingBackend):
    """Routing backend keeping its state in memory."""

    def __init__(
        self,
        preferences: Optional[PreferenceBackend] = None,
        launcher: Optional[Launcher] = None,
        inventory: Optional[Dict[str, Sequence[ProfileDescriptor]]] = None,
        matcher: Optional[RuleMatcher] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        """Initialize the backend.

        Args:
            preferences: Fallback preference source for automatic resolution
            launcher: Async callable that opens a decision's URL
            inventory: Installed browsers and their profiles
            matcher: Routing rules used for automatic resolution
            history_limit: Maximum number of history entries kept
        """
        self.preferences = preferences
        self.launcher: Launcher = launcher or _log_launch
        self.inventory: Dict[str, Sequence[ProfileDescriptor]] = dict(inventory or {})
        self.matcher = matcher
        self.history_limit = history_limit

        self._active: Optional[ActiveLink] = None
        self._history: List[LaunchHistoryItem] = []

        self.incoming = EventChannel[ActiveLink]("routing://incoming")
        self.decisions = EventChannel[LaunchHistoryItem]("routing://decision")
        self.statuses = EventChannel[StatusEvent]("routing://status")
        self.errors = EventChannel[ErrorEvent]("routing://error")

    # ------------------------------------------------------------------
    # Snapshot and subscriptions
    # ------------------------------------------------------------------

    async def fetch_snapshot(self) -> RoutingSnapshot:
        return RoutingSnapshot(active=self._active, history=list(self._history))

    async def listen_incoming_link(self, callback: IncomingLinkCallback) -> Unsubscribe:
        return self.incoming.subscribe(callback)

    async def listen_launch_decision(self, callback: DecisionCallback) -> Unsubscribe:
        return self.decisions.subscribe(callback)

    async def listen_status(self, callback: StatusCallback) -> Unsubscribe:
        return self.statuses.subscribe(callback)

    async def listen_error(self, callback: ErrorCallback) -> Unsubscribe:
        return self.errors.subscribe(callback)

    # ------------------------------------------------------------------
    # Browser inventory
    # ------------------------------------------------------------------

    async def fetch_available_browsers(self) -> List[str]:
        return list(self.inventory.keys())

    async def fetch_profiles(self, browser: str) -> List[ProfileDescriptor]:
        if browser not in self.inventory:
            raise EnumerationError(f"Unknown browser: {browser}", browser=browser)
        return list(self.inventory[browser])

    def catalog(self) -> List[BrowserCatalogEntry]:
        return build_catalog(list(self.inventory.keys()), self.inventory)

    # ------------------------------------------------------------------
    # Links and decisions
    # ------------------------------------------------------------------

    async def register_incoming(self, wire: IncomingLinkWire) -> ActiveLink:
        """Make a link the active one, announce it, then try to auto-resolve it.

        A link matching an 'Always' file-type or URL rule is opened with that
        rule's browser. A 'Just once' rule only recommends its browser.
        Otherwise the fallback browser, when one is configured, opens the link.
        """
        payload = wire.model_copy(update={
            "id": wire.id or str(uuid.uuid4()),
            "url": normalize_url(wire.url),
        })
        link = map_incoming_link(payload)

        rule = self.matcher.match(link.url) if self.matcher else None
        rule_selection = self._selection_for_rule(rule) if rule else None
        if rule is not None and rule.policy == RulePolicy.JUST_ONCE and rule_selection:
            link = link.model_copy(update={"recommended_browser": rule_selection})

        logger.info(f"Incoming link registered: id={link.id} url={link.url} source_app={link.source_app}")
        self._active = link
        await self.incoming.publish(link)

        selection: Optional[BrowserSelection] = None
        if rule is not None and rule.policy == RulePolicy.ALWAYS and rule_selection:
            selection = rule_selection
        elif (rule is None or rule.policy == RulePolicy.FALLBACK) and self.preferences is not None:
            selection = await self._fallback_selection()

        if selection is not None:
            try:
                await self.resolve(self._decision_for(link, selection, PersistMode.ALWAYS))
            except ResolutionError as e:
                logger.warning(f"Automatic resolution failed for link id={link.id}: {e}")

        return link

    async def resolve_incoming_link(
        self,
        link_id: str,
        selection: BrowserSelection,
        persist: PersistMode,
    ) -> None:
        if self._active is None or self._active.id != link_id:
            raise ResolutionError(f"No pending link with id={link_id}", link_id=link_id)
        await self.resolve(self._decision_for(self._active, selection, persist))

    async def resolve(self, decision: LaunchHistoryItem) -> LaunchHistoryItem:
        """Record a decision, announce it and launch it.

        Launch failures are reported through the error and status channels;
        only an unusable URL is raised.

        Raises:
            ResolutionError: If the decision has no valid URL
        """
        url = normalize_url(decision.url)
        if not url:
            logger.warning(f"Launch decision rejected: empty or invalid URL for id={decision.id}")
            raise ResolutionError("Link does not contain a valid URL to open.", link_id=decision.id)

        decision = decision.model_copy(update={"url": url, "decided_at": utc_now_iso()})

        self._active = None
        self._history = [decision] + [item for item in self._history if item.id != decision.id]
        del self._history[self.history_limit:]

        await self.decisions.publish(decision)
        await self._launch(decision)
        return decision

    async def _launch(self, decision: LaunchHistoryItem) -> None:
        await self.statuses.publish(
            StatusEvent(id=decision.id, browser=decision.browser, status=RoutingStatus.LAUNCHING)
        )
        try:
            await self.launcher(decision)
        except Exception as e:
            message = f"Launch failed for id={decision.id} url={decision.url}: {e}"
            logger.error(message)
            await self.errors.publish(ErrorEvent(id=decision.id, browser=decision.browser, message=message))
            await self.statuses.publish(
                StatusEvent(id=decision.id, browser=decision.browser, status=RoutingStatus.FAILED)
            )
            return

        logger.info(f"Launch succeeded for id={decision.id} url={decision.url}")
        await self.statuses.publish(
            StatusEvent(id=decision.id, browser=decision.browser, status=RoutingStatus.LAUNCHED)
        )

    async def _fallback_selection(self) -> Optional[BrowserSelection]:
        try:
            snapshot = await self.preferences.fetch_preferences()
        except Exception as e:
            logger.warning(f"Unable to read fallback preference: {e}")
            return None

        fallback = snapshot.fallback
        if fallback is None:
            return None

        profile = fallback.profile
        return BrowserSelection(
            name=fallback.browser,
            profile_label=(profile.label or None) if profile else None,
            profile_directory=(profile.directory or None) if profile else None,
        )

    def _selection_for_rule(self, rule: Union[FileTypeRule, UrlRule]) -> Optional[BrowserSelection]:
        if not rule.browser_id:
            return None
        for entry in self.catalog():
            if entry.id == rule.browser_id:
                return entry.to_selection()
        logger.debug(f"Rule {rule.id} targets unknown browser id {rule.browser_id}")
        return None

    @staticmethod
    def _decision_for(
        link: ActiveLink,
        selection: BrowserSelection,
        persist: PersistMode,
    ) -> LaunchHistoryItem:
        return map_launch_decision(LaunchDecisionWire(
            id=link.id,
            url=link.url,
            browser=selection.name,
            profile_label=selection.profile_label,
            profile_directory=selection.profile_directory,
            persist=persist,
            source_app=link.source_app,
            contact_name=link.contact_name,
        ))
