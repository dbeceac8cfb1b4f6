"""
Pydantic models for the hand-off router.

- rules: URL and file-type routing rules
- catalog: browser catalog entries and id derivation
- routing: active link, launch history, status/error events, wire mapping
- settings: UI settings and the tri-state fallback preference
- session: the coordinator's observable state
"""

from .rules import (
    MatchKind,
    RulePolicy,
    RULE_POLICIES,
    LATENCY_OPTIONS,
    DEFAULT_LATENCY,
    UNASSIGNED_BROWSER_LABEL,
    UrlRule,
    FileTypeRule,
    RulesSnapshot,
    new_rule_id,
)
from .catalog import (
    BrowserCatalogEntry,
    BrowserSelection,
    ProfileDescriptor,
    browser_id,
    slugify,
)
from .routing import (
    ActiveLink,
    LaunchHistoryItem,
    PersistMode,
    RoutingStatus,
    RoutingSnapshot,
    StatusEvent,
    ErrorEvent,
    IncomingLinkWire,
    LaunchDecisionWire,
    BrowserDescriptorWire,
    map_incoming_link,
    map_launch_decision,
    utc_now_iso,
)
from .settings import (
    UiSettings,
    SETTING_KEYS,
    FallbackKind,
    FallbackState,
    FallbackPreference,
    ProfilePreference,
    PreferencesSnapshot,
)
from .session import HandoffState

__all__ = [
    "MatchKind",
    "RulePolicy",
    "RULE_POLICIES",
    "LATENCY_OPTIONS",
    "DEFAULT_LATENCY",
    "UNASSIGNED_BROWSER_LABEL",
    "UrlRule",
    "FileTypeRule",
    "RulesSnapshot",
    "new_rule_id",
    "BrowserCatalogEntry",
    "BrowserSelection",
    "ProfileDescriptor",
    "browser_id",
    "slugify",
    "ActiveLink",
    "LaunchHistoryItem",
    "PersistMode",
    "RoutingStatus",
    "RoutingSnapshot",
    "StatusEvent",
    "ErrorEvent",
    "IncomingLinkWire",
    "LaunchDecisionWire",
    "BrowserDescriptorWire",
    "map_incoming_link",
    "map_launch_decision",
    "utc_now_iso",
    "UiSettings",
    "SETTING_KEYS",
    "FallbackKind",
    "FallbackState",
    "FallbackPreference",
    "ProfilePreference",
    "PreferencesSnapshot",
    "HandoffState",
]
