"""Browser catalog construction.

Turns the backend's browser names and per-browser profile lists into a
deduplicated catalog with content-derived ids. Profile enumeration is
isolated per browser: a failure for one name only costs that browser its
profile entries, never the catalog.
"""

import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ..models import BrowserCatalogEntry, ProfileDescriptor, browser_id

logger = logging.getLogger(__name__)


FetchProfiles = Callable[[str], Awaitable[Sequence[ProfileDescriptor]]]


def _add_name(
    catalog: Dict[str, BrowserCatalogEntry],
    name: str,
    profiles: Optional[Iterable[ProfileDescriptor]],
) -> None:
    """Insert one browser's profile entries, then its default entry if absent."""
    for profile in profiles or []:
        entry = BrowserCatalogEntry.create(
            name,
            profile_label=profile.display_name,
            profile_directory=profile.directory,
        )
        catalog[entry.id] = entry

    default_id = browser_id(name, None)
    if default_id not in catalog:
        catalog[default_id] = BrowserCatalogEntry.create(name)


def build_catalog(
    names: Sequence[str],
    profiles_by_name: Mapping[str, Optional[Sequence[ProfileDescriptor]]],
) -> List[BrowserCatalogEntry]:
    """Build the catalog from already-fetched profile lists.

    A name missing from ``profiles_by_name`` (or mapped to None) still gets
    its default entry. Output keeps insertion order: names in input order,
    each name's profiles before its default entry.

    Args:
        names: Browser names in display order
        profiles_by_name: Profiles per browser name

    Returns:
        Catalog entries, one per id
    """
    catalog: Dict[str, BrowserCatalogEntry] = {}
    for name in names:
        _add_name(catalog, name, profiles_by_name.get(name))
    return list(catalog.values())


async def collect_catalog(
    names: Sequence[str],
    fetch_profiles: FetchProfiles,
) -> List[BrowserCatalogEntry]:
    """Fetch profiles for each browser and build the catalog.

    Profiles are fetched sequentially in name order. Any exception raised
    while fetching one browser's profiles is logged and that browser falls
    back to a name-only entry.
    """
    catalog: Dict[str, BrowserCatalogEntry] = {}

    for name in names:
        try:
            profiles = await fetch_profiles(name)
        except Exception as e:
            logger.warning(f"Unable to load profiles for {name}: {e}")
            profiles = None

        _add_name(catalog, name, profiles)

    logger.debug(f"Built browser catalog with {len(catalog)} entries for {len(names)} browser(s)")
    return list(catalog.values())
