"""Runtime state of a hand-off session.

Mutated only by HandoffCoordinator; callers read deep copies via
``HandoffCoordinator.snapshot()``.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .catalog import BrowserCatalogEntry
from .routing import ActiveLink, LaunchHistoryItem, RoutingStatus
from .settings import FallbackState, UiSettings


@dataclass
class HandoffState:
    """Observable snapshot of the coordinator."""

    # Session bootstrap
    ready: bool = False
    init_error: Optional[str] = None

    # Links and decisions
    active_link: Optional[ActiveLink] = None
    history: List[LaunchHistoryItem] = field(default_factory=list)
    status_by_id: Dict[str, RoutingStatus] = field(default_factory=dict)
    errors_by_id: Dict[str, str] = field(default_factory=dict)

    # Fallback prompt
    fallback: FallbackState = field(default_factory=FallbackState.unknown)
    prompt_visible: bool = False
    dismissed_for_link_id: Optional[str] = None
    pending_focus_on_fallback_known: bool = False

    # Catalog and settings
    catalog: List[BrowserCatalogEntry] = field(default_factory=list)
    catalog_ready: bool = False
    ui_settings: UiSettings = field(default_factory=UiSettings)
    settings_ready: bool = False
    selected_browser_id: Optional[str] = None

    # Transient persistence failure message
    notice: Optional[str] = None

    def recent_history(self, limit: int = 5) -> List[LaunchHistoryItem]:
        return self.history[:limit]
