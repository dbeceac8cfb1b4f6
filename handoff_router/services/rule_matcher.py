"""Rule evaluation against incoming links.

First enabled matching rule wins, in collection order. Compiled patterns
are built once per matcher; build a new matcher after the rule collections
change.
"""

import logging
from functools import lru_cache
from pathlib import PurePosixPath
from typing import List, Optional, Sequence, Tuple, Union
from urllib.parse import unquote, urlsplit

from ..models import FileTypeRule, RulesSnapshot, UrlRule
from ..pattern import UrlPattern

logger = logging.getLogger(__name__)


def url_extension(url: str) -> str:
    """Lowercase extension (with dot) of the last path segment, '' if none.

    Examples:
        >>> url_extension("https://example.com/files/Report.PDF?dl=1")
        '.pdf'
        >>> url_extension("https://example.com/")
        ''
    """
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    path = urlsplit(candidate).path
    return PurePosixPath(unquote(path)).suffix.lower()


class RuleMatcher:
    """Matches URLs against URL rules and file-type rules.

    Examples:
        >>> matcher = RuleMatcher(snapshot)
        >>> rule = matcher.match_url("https://www.figma.com/file/abc")
        >>> rule.browser_label
        'Arc'
    """

    def __init__(self, rules: RulesSnapshot):
        self.url_rules: List[Tuple[UrlPattern, UrlRule]] = []
        for rule in rules.url_rules:
            if not rule.enabled:
                continue
            try:
                self.url_rules.append((UrlPattern(rule.pattern, rule.match_kind), rule))
            except ValueError as e:
                logger.warning(f"Ignoring rule {rule.id}: {e}")

        self.file_type_rules: Sequence[FileTypeRule] = tuple(rules.file_type_rules)
        self._match_impl = lru_cache(maxsize=1024)(self._match_uncached)

    def _match_uncached(self, url: str) -> Optional[UrlRule]:
        for pattern, rule in self.url_rules:
            if pattern.matches(url):
                return rule
        return None

    def match_url(self, url: str) -> Optional[UrlRule]:
        """First enabled URL rule matching the URL, or None."""
        rule = self._match_impl(url)
        if rule is not None:
            logger.debug(f"URL {url} matched rule {rule.id} ({rule.match_kind.value}: {rule.pattern})")
        return rule

    def match_file(self, url: str) -> Optional[FileTypeRule]:
        """First file-type rule whose extension equals the URL's, or None."""
        extension = url_extension(url)
        if not extension:
            return None
        for rule in self.file_type_rules:
            if rule.extension == extension:
                return rule
        return None

    def match(self, url: str) -> Optional[Union[FileTypeRule, UrlRule]]:
        """File-type rules take precedence over URL rules."""
        return self.match_file(url) or self.match_url(url)

    def clear_cache(self) -> None:
        self._match_impl.cache_clear()
