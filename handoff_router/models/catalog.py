"""
Browser catalog models.

A catalog entry is one installed browser + profile combination. Entry ids
are derived from the browser name and profile directory so that rebuilding
the catalog always yields the same ids for the same inputs.
"""

import re
from typing import Optional

from pydantic import BaseModel, Field


_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")

DEFAULT_PROFILE_SUFFIX = "default"


def slugify(value: Optional[str]) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim dashes.

    Examples:
        >>> slugify("  Google Chrome ")
        'google-chrome'
        >>> slugify("Profile 1")
        'profile-1'
    """
    normalized = _NON_ALNUM_RUN.sub("-", (value or "").strip().lower())
    return normalized.strip("-")


def browser_id(name: str, directory: Optional[str] = None) -> str:
    """Derive the catalog id for a (name, profile directory) pair.

    Examples:
        >>> browser_id("Google Chrome", "Profile 1")
        'google-chrome__profile-1'
        >>> browser_id("Firefox")
        'firefox__default'
    """
    suffix = slugify(directory) if directory else DEFAULT_PROFILE_SUFFIX
    return f"{slugify(name)}__{suffix}"


class ProfileDescriptor(BaseModel):
    """Profile as reported by the backend's profile enumeration."""

    display_name: str
    directory: str


class BrowserSelection(BaseModel):
    """Browser (and optional profile) a link should be opened with."""

    name: str = Field(..., min_length=1)
    profile_label: Optional[str] = None
    profile_directory: Optional[str] = None


class BrowserCatalogEntry(BaseModel):
    """One selectable browser/profile combination."""

    id: str
    name: str
    profile_label: Optional[str] = None
    profile_directory: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def create(
        cls,
        name: str,
        profile_label: Optional[str] = None,
        profile_directory: Optional[str] = None,
    ) -> "BrowserCatalogEntry":
        return cls(
            id=browser_id(name, profile_directory),
            name=name,
            profile_label=profile_label,
            profile_directory=profile_directory,
        )

    @property
    def label(self) -> str:
        """Display label: 'name' or 'name · profile'."""
        if self.profile_label:
            return f"{self.name} · {self.profile_label}"
        return self.name

    def to_selection(self) -> BrowserSelection:
        return BrowserSelection(
            name=self.name,
            profile_label=self.profile_label,
            profile_directory=self.profile_directory,
        )
