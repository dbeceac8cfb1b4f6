"""
Hand-off routing models.

Wire records (``*Wire``) mirror the snake_case payloads pushed by the
routing backend; ``map_incoming_link`` and ``map_launch_decision`` turn them
into the models the coordinator works with.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .catalog import BrowserSelection


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class PersistMode(str, Enum):
    """Whether a launch decision applies once or is remembered."""
    JUST_ONCE = "just-once"
    ALWAYS = "always"


class RoutingStatus(str, Enum):
    """Launch progress for one link id."""
    LAUNCHING = "launching"
    LAUNCHED = "launched"
    FAILED = "failed"


class ActiveLink(BaseModel):
    """The link currently awaiting a browser decision."""

    id: str = Field(..., min_length=1)
    url: str
    source_app: str
    source_context: str = ""
    contact_name: str = ""
    preview: str = ""
    recommended_browser: Optional[BrowserSelection] = None
    arrived_at: str = Field(default_factory=utc_now_iso)


class LaunchHistoryItem(BaseModel):
    """A recorded launch decision."""

    id: str = Field(..., min_length=1)
    url: str
    decided_at: str = Field(default_factory=utc_now_iso)
    browser: str
    profile_label: Optional[str] = None
    profile_directory: Optional[str] = None
    persist: PersistMode = PersistMode.JUST_ONCE
    source_app: str
    contact_name: str = ""


class RoutingSnapshot(BaseModel):
    """Backend state at session start."""

    active: Optional[ActiveLink] = None
    history: List[LaunchHistoryItem] = Field(default_factory=list)


class StatusEvent(BaseModel):
    """Status notification pushed for one link."""

    id: str
    browser: str = ""
    status: RoutingStatus


class ErrorEvent(BaseModel):
    """Error notification pushed for one link."""

    id: str
    browser: str = ""
    message: str


# ---------------------------------------------------------------------------
# Wire payloads
# ---------------------------------------------------------------------------

class BrowserDescriptorWire(BaseModel):
    name: str
    profile_label: Optional[str] = None
    profile_directory: Optional[str] = None


class IncomingLinkWire(BaseModel):
    id: str = ""
    url: str
    source_app: str
    source_context: Optional[str] = None
    contact_name: Optional[str] = None
    preview: Optional[str] = None
    recommended_browser: Optional[BrowserDescriptorWire] = None
    arrived_at: Optional[str] = None


class LaunchDecisionWire(BaseModel):
    id: str
    url: str
    browser: str
    profile_label: Optional[str] = None
    profile_directory: Optional[str] = None
    persist: PersistMode = PersistMode.JUST_ONCE
    decided_at: Optional[str] = None
    source_app: str
    contact_name: Optional[str] = None


def map_incoming_link(wire: Optional[IncomingLinkWire]) -> Optional[ActiveLink]:
    """Convert an incoming-link payload, filling optional text with ''."""
    if wire is None:
        return None

    recommended = None
    if wire.recommended_browser is not None:
        recommended = BrowserSelection(
            name=wire.recommended_browser.name,
            profile_label=wire.recommended_browser.profile_label,
            profile_directory=wire.recommended_browser.profile_directory,
        )

    return ActiveLink(
        id=wire.id,
        url=wire.url,
        source_app=wire.source_app,
        source_context=wire.source_context or "",
        contact_name=wire.contact_name or "",
        preview=wire.preview or "",
        recommended_browser=recommended,
        arrived_at=wire.arrived_at or utc_now_iso(),
    )


def map_launch_decision(wire: LaunchDecisionWire) -> LaunchHistoryItem:
    """Convert a launch-decision payload into a history item."""
    return LaunchHistoryItem(
        id=wire.id,
        url=wire.url,
        decided_at=wire.decided_at or utc_now_iso(),
        browser=wire.browser,
        profile_label=wire.profile_label,
        profile_directory=wire.profile_directory,
        persist=wire.persist,
        source_app=wire.source_app,
        contact_name=wire.contact_name or "",
    )
