"""
Settings and fallback-preference models.

The fallback preference is loaded asynchronously, so the coordinator tracks
it as an explicit three-way state instead of a nullable flag.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class UiSettings(BaseModel):
    """Locally cached UI settings (ui-settings.json)."""

    remember_choice: bool = True
    show_icons: bool = False
    debug_mode: bool = False
    last_selected_browser_id: Optional[str] = None
    onboarding_completed: bool = False


SETTING_KEYS = tuple(UiSettings.model_fields.keys())


class ProfilePreference(BaseModel):
    label: Optional[str] = None
    directory: Optional[str] = None


class FallbackPreference(BaseModel):
    """Browser used when no rule matches."""

    browser: str = Field(..., min_length=1)
    profile: Optional[ProfilePreference] = None


class PreferencesSnapshot(BaseModel):
    fallback: Optional[FallbackPreference] = None


class FallbackKind(str, Enum):
    UNKNOWN = "unknown"  # Not fetched yet, or the fetch failed
    ABSENT = "absent"    # Fetched, no fallback configured
    PRESENT = "present"  # Fetched, a fallback browser is configured


class FallbackState(BaseModel):
    """Tri-state fallback preference: Unknown | Absent | Present(browser, profile)."""

    kind: FallbackKind = FallbackKind.UNKNOWN
    preference: Optional[FallbackPreference] = None

    model_config = {"frozen": True}

    @classmethod
    def unknown(cls) -> "FallbackState":
        return cls(kind=FallbackKind.UNKNOWN)

    @classmethod
    def absent(cls) -> "FallbackState":
        return cls(kind=FallbackKind.ABSENT)

    @classmethod
    def present(cls, preference: FallbackPreference) -> "FallbackState":
        return cls(kind=FallbackKind.PRESENT, preference=preference)

    @classmethod
    def from_preferences(cls, snapshot: PreferencesSnapshot) -> "FallbackState":
        if snapshot.fallback is None:
            return cls.absent()
        return cls.present(snapshot.fallback)

    @property
    def is_unknown(self) -> bool:
        return self.kind == FallbackKind.UNKNOWN

    @property
    def is_absent(self) -> bool:
        return self.kind == FallbackKind.ABSENT

    @property
    def is_present(self) -> bool:
        return self.kind == FallbackKind.PRESENT
