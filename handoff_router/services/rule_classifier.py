"""Rule normalization and classification.

Pure functions that turn raw rule input into canonical rule models:

- match kind inference from an explicit tag or from the pattern's shape
- free-text browser label resolution against the catalog
- tolerant decoding of stored (possibly legacy) rule records
- CSV import/export of URL rules

Nothing in this module performs I/O.
"""

import csv
import io
import logging
import re
from typing import Any, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Union

from ..models import (
    BrowserCatalogEntry,
    DEFAULT_LATENCY,
    FileTypeRule,
    MatchKind,
    RULE_POLICIES,
    RulePolicy,
    UNASSIGNED_BROWSER_LABEL,
    UrlRule,
    new_rule_id,
)

logger = logging.getLogger(__name__)


CSV_HEADER = ("pattern", "browser", "policy", "latency", "enabled", "matchKind")

_MATCH_KIND_SYNONYMS = {
    "host": MatchKind.HOST,
    "domain": MatchKind.HOST,
    "wildcard": MatchKind.WILDCARD,
    "wildcards": MatchKind.WILDCARD,
    "glob": MatchKind.WILDCARD,
    "regex": MatchKind.REGEX,
    "regexp": MatchKind.REGEX,
    "regular expression": MatchKind.REGEX,
    "regular-expression": MatchKind.REGEX,
    "regular expressions": MatchKind.REGEX,
}

_FALSE_STRINGS = {"false", "0", "no", "disabled"}

# \w, \d, \s style escapes only show up in regular expressions
_REGEX_CLASS_ESCAPE = re.compile(r"\\[wds]")


class BrowserResolution(NamedTuple):
    browser_id: Optional[str]
    label: str


def normalise(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def resolve_match_kind(tag: Optional[str]) -> Optional[MatchKind]:
    """Map an explicit match kind tag to a MatchKind, None if unrecognized."""
    return _MATCH_KIND_SYNONYMS.get(normalise(tag))


def infer_match_kind(pattern: str, explicit: Optional[str] = None) -> MatchKind:
    """Classify a pattern as host, wildcard or regex.

    An explicit, recognized tag always wins. Otherwise the pattern's shape
    decides: any '*' makes it a wildcard, a leading '^' or trailing '$'
    makes it a regex, and everything else is treated as a host.

    Args:
        pattern: Raw rule pattern
        explicit: Optional match kind tag (case-insensitive, synonyms allowed)

    Returns:
        Inferred MatchKind

    Examples:
        >>> infer_match_kind("*.figma.com/*")
        <MatchKind.WILDCARD: 'wildcard'>
        >>> infer_match_kind("^github\\.com$")
        <MatchKind.REGEX: 'regex'>
        >>> infer_match_kind("github.com", "Regular Expression")
        <MatchKind.REGEX: 'regex'>
    """
    tagged = resolve_match_kind(explicit)
    if tagged is not None:
        return tagged

    trimmed = (pattern or "").strip()
    if "*" in trimmed:
        return MatchKind.WILDCARD
    if trimmed.startswith("^") or trimmed.endswith("$"):
        return MatchKind.REGEX
    return MatchKind.HOST


def infer_imported_match_kind(pattern: str, explicit: Optional[str] = None) -> MatchKind:
    """Match kind inference used by CSV import.

    Imported rows are more often hand-written regexes, so regex shape
    (anchors or \\w, \\d, \\s escapes) is checked before '*'.
    """
    tagged = resolve_match_kind(explicit)
    if tagged is not None:
        return tagged

    trimmed = (pattern or "").strip()
    if trimmed.startswith("^") or trimmed.endswith("$") or _REGEX_CLASS_ESCAPE.search(trimmed):
        return MatchKind.REGEX
    if "*" in trimmed:
        return MatchKind.WILDCARD
    return MatchKind.HOST


def resolve_browser_selection(
    text: Optional[str],
    catalog: Sequence[BrowserCatalogEntry],
) -> BrowserResolution:
    """Resolve free text typed by the user to a catalog entry.

    Matching is case-insensitive and exact against the display labels
    ("name" or "name · profile"). When nothing matches the trimmed text is
    kept as the label so the rule still shows what the user typed.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return BrowserResolution(None, "")

    needle = trimmed.lower()
    for entry in catalog:
        if entry.label.strip().lower() == needle:
            return BrowserResolution(entry.id, entry.label)

    return BrowserResolution(None, trimmed)


def resolve_policy(value: Any) -> RulePolicy:
    """Case-insensitive policy lookup, defaulting to the first allowed policy."""
    if isinstance(value, RulePolicy):
        return value
    if isinstance(value, str):
        wanted = normalise(value)
        for policy in RULE_POLICIES:
            if policy.value.lower() == wanted:
                return policy
    return RULE_POLICIES[0]


def parse_enabled(value: Any, default: bool = True) -> bool:
    """Decode an 'enabled' flag from bool or loose string values."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if not value.strip():
            return default
        return normalise(value) not in _FALSE_STRINGS
    return default


def _text(raw: Mapping[str, Any], *keys: str) -> Optional[str]:
    """First string value found under any of the keys."""
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str):
            return value
    return None


def migrate_legacy_rule(raw: Union[Mapping[str, Any], UrlRule]) -> UrlRule:
    """Decode a stored URL rule record into a canonical UrlRule.

    Accepts the current record shape as well as older ones:
    - 'domain' only (no 'pattern' / match kind)
    - camelCase keys (matchType, browserId, browserLabel)
    - missing id, policy, latency or enabled

    Migrating an already canonical rule returns an equal rule.

    Raises:
        ValueError: If the record has neither a pattern nor a domain
    """
    if isinstance(raw, UrlRule):
        raw = raw.to_record()

    rule_id = _text(raw, "id")
    if not rule_id or not rule_id.strip():
        rule_id = new_rule_id()

    pattern = (_text(raw, "pattern", "domain") or "").strip()
    if not pattern:
        raise ValueError(f"Rule {rule_id} has no pattern or domain")

    match_kind = infer_match_kind(pattern, _text(raw, "match_kind", "matchKind", "matchType"))

    browser = _text(raw, "browser_id", "browserId")
    browser = browser if browser and browser.strip() else None

    label = _text(raw, "browser_label", "browserLabel")
    if label is None:
        label = browser or UNASSIGNED_BROWSER_LABEL

    latency = _text(raw, "latency", "latency_budget", "latencyBudget")
    if not latency or not latency.strip():
        latency = DEFAULT_LATENCY

    return UrlRule(
        id=rule_id,
        pattern=pattern,
        match_kind=match_kind,
        browser_id=browser,
        browser_label=label,
        policy=resolve_policy(raw.get("policy")),
        latency=latency,
        enabled=parse_enabled(raw.get("enabled")),
    )


def migrate_file_type_rule(raw: Union[Mapping[str, Any], FileTypeRule]) -> FileTypeRule:
    """Decode a stored file-type rule record (snake_case or camelCase keys)."""
    if isinstance(raw, FileTypeRule):
        return raw

    rule_id = _text(raw, "id")
    browser = _text(raw, "browser_id", "browserId")
    browser = browser if browser and browser.strip() else None
    label = _text(raw, "browser_label", "browserLabel")

    return FileTypeRule(
        id=rule_id if rule_id and rule_id.strip() else new_rule_id(),
        extension=_text(raw, "extension") or "",
        browser_id=browser,
        browser_label=label if label is not None else (browser or UNASSIGNED_BROWSER_LABEL),
        policy=resolve_policy(raw.get("policy")),
    )


def _is_header(parts: Sequence[str]) -> bool:
    return len(parts) >= 2 and normalise(parts[0]) == "pattern" and normalise(parts[1]) == "browser"


def parse_csv_rules(text: str, catalog: Sequence[BrowserCatalogEntry]) -> List[UrlRule]:
    """Parse CSV text into new URL rules.

    Each non-empty line is one CSV row of
    ``pattern, browser, policy, latency, enabled, matchKind``; fields holding
    commas are double-quoted. Only pattern and browser are required; rows
    missing either are skipped, as is a header row.

    Raises:
        ValueError: If the text contains no non-empty lines
    """
    lines = [line.strip() for line in text.splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        raise ValueError("No rows found in CSV.")

    parsed: List[UrlRule] = []
    for line_number, line in enumerate(lines, start=1):
        parts = [part.strip() for part in next(csv.reader([line], skipinitialspace=True), [])]
        if _is_header(parts):
            continue

        padded = parts + [""] * (len(CSV_HEADER) - len(parts))
        pattern, browser, policy, latency, enabled, match_kind = padded[:len(CSV_HEADER)]

        if not pattern or not browser:
            logger.debug(f"Skipping CSV row {line_number}: pattern and browser are required")
            continue

        selection = resolve_browser_selection(browser, catalog)
        parsed.append(
            UrlRule(
                pattern=pattern,
                match_kind=infer_imported_match_kind(pattern, match_kind or None),
                browser_id=selection.browser_id,
                browser_label=selection.label,
                policy=resolve_policy(policy or RulePolicy.ALWAYS.value),
                latency=latency or DEFAULT_LATENCY,
                enabled=parse_enabled(enabled),
            )
        )

    logger.info(f"Parsed {len(parsed)} rule(s) from {len(lines)} CSV line(s)")
    return parsed


def export_csv_rules(rules: Iterable[UrlRule]) -> str:
    """Render URL rules as CSV. The header row is always present.

    Fields containing commas or quotes (regex quantifiers such as
    ``{1,3}``) are quoted so the output parses back to the same rules.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for rule in rules:
        writer.writerow([
            rule.pattern,
            rule.browser_label,
            rule.policy.value,
            rule.latency or DEFAULT_LATENCY,
            "true" if rule.enabled else "false",
            rule.match_kind.value,
        ])
    return buffer.getvalue()
