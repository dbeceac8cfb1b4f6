"""URL pattern matching for routing rules."""

import fnmatch
import re
from dataclasses import dataclass
from typing import Tuple
from urllib.parse import urlsplit

from .models import MatchKind


def _split_url(url: str) -> Tuple[str, str]:
    """Return (host, url-without-scheme) for a URL, tolerating a missing scheme."""
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    parts = urlsplit(candidate)
    host = (parts.hostname or "").lower()
    remainder = candidate.split("://", 1)[1]
    return host, remainder


@dataclass(frozen=True)
class UrlPattern:
    """Pattern-based URL matching rule.

    Attributes:
        pattern: Raw pattern text
        match_kind: How the pattern is interpreted

    Match kinds:
        - host: exact, case-insensitive host comparison; the pattern may
          itself be a URL, only its host is used
        - wildcard: shell-style glob over the URL without its scheme
          (or over the full URL when the pattern has a scheme)
        - regex: ``re.search`` over the full URL

    Examples:
        >>> UrlPattern("github.com", MatchKind.HOST).matches("https://github.com/org/repo")
        True
        >>> UrlPattern("*.figma.com/*", MatchKind.WILDCARD).matches("https://www.figma.com/file/abc")
        True
        >>> UrlPattern(r"^https://docs\\.", MatchKind.REGEX).matches("https://docs.python.org/3/")
        True
    """

    pattern: str
    match_kind: MatchKind = MatchKind.HOST

    def __post_init__(self):
        """Validate pattern syntax."""
        if not self.pattern or not self.pattern.strip():
            raise ValueError("Pattern cannot be empty")

        if self.match_kind == MatchKind.REGEX:
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise ValueError(f"Invalid regex pattern '{self.pattern}': {e}")

    def matches(self, url: str) -> bool:
        """Test if a URL matches this pattern."""
        if not url or not url.strip():
            return False

        if self.match_kind == MatchKind.REGEX:
            return re.search(self.pattern, url.strip()) is not None

        host, remainder = _split_url(url)

        if self.match_kind == MatchKind.WILDCARD:
            raw = self.pattern.strip().lower()
            subject = url.strip().lower() if "://" in raw else remainder.lower()
            return fnmatch.fnmatchcase(subject, raw)

        pattern_host, _ = _split_url(self.pattern)
        return bool(host) and host == pattern_host
