"""Rule editing with optimistic updates.

Every mutation changes the in-memory collections first, then persists the
whole collection through the rule store. If the write fails the previous
collection is restored and ``error`` describes the failure, so the displayed
rules never diverge from what is stored.
"""

import logging
from typing import List, Optional, Sequence

from ..backend import RulePersistence
from ..models import (
    DEFAULT_LATENCY,
    UNASSIGNED_BROWSER_LABEL,
    BrowserCatalogEntry,
    FileTypeRule,
    MatchKind,
    RulePolicy,
    RulesSnapshot,
    UrlRule,
)
from ..pattern import UrlPattern
from .rule_classifier import (
    export_csv_rules,
    infer_match_kind,
    parse_csv_rules,
    resolve_browser_selection,
)

logger = logging.getLogger(__name__)


DEFAULT_BROWSER_LABEL = "Default browser"


class RuleEditor:
    """Holds the displayed rule collections and persists every change.

    Mutating methods return True when the change was saved and False when it
    was rejected or rolled back; ``error`` then holds the message.
    """

    def __init__(
        self,
        store: RulePersistence,
        catalog: Optional[Sequence[BrowserCatalogEntry]] = None,
    ):
        self.store = store
        self.catalog: List[BrowserCatalogEntry] = list(catalog or [])
        self.url_rules: List[UrlRule] = []
        self.file_type_rules: List[FileTypeRule] = []
        self.error: Optional[str] = None
        self.rejected: List[str] = []

    async def load(self) -> RulesSnapshot:
        """Load both collections from the store.

        Raises:
            PersistenceError: If the rules cannot be read
        """
        snapshot = await self.store.load_rules()
        self.url_rules = list(snapshot.url_rules)
        self.file_type_rules = list(snapshot.file_type_rules)
        return snapshot

    def snapshot(self) -> RulesSnapshot:
        return RulesSnapshot(url_rules=list(self.url_rules), file_type_rules=list(self.file_type_rules))

    async def _commit_url_rules(self, rules: List[UrlRule], failure: str) -> bool:
        previous = self.url_rules
        self.url_rules = rules
        try:
            await self.store.replace_url_rules(rules)
        except Exception as e:
            self.url_rules = previous
            self.error = f"{failure}: {e}"
            logger.error(self.error)
            return False
        return True

    async def _commit_file_type_rules(self, rules: List[FileTypeRule], failure: str) -> bool:
        previous = self.file_type_rules
        self.file_type_rules = rules
        try:
            await self.store.replace_file_type_rules(rules)
        except Exception as e:
            self.file_type_rules = previous
            self.error = f"{failure}: {e}"
            logger.error(self.error)
            return False
        return True

    # ------------------------------------------------------------------
    # URL rules
    # ------------------------------------------------------------------

    async def add_url_rule(
        self,
        pattern: str,
        browser: str,
        policy: RulePolicy = RulePolicy.ALWAYS,
        latency: str = DEFAULT_LATENCY,
        enabled: bool = True,
        match_kind: Optional[MatchKind] = None,
    ) -> Optional[UrlRule]:
        """Append a URL rule.

        Args:
            pattern: Host, wildcard or regex pattern
            browser: Catalog label of the target browser, or free text
            policy: Rule policy
            latency: Latency budget label
            enabled: Whether the rule is active
            match_kind: Explicit match kind; inferred from the pattern if None

        Returns:
            The saved rule, or None if it was rejected or could not be saved
        """
        self.error = None
        if not pattern.strip() or not browser.strip():
            self.error = "URL pattern and browser are required to save a rule."
            return None

        selection = resolve_browser_selection(browser, self.catalog)
        try:
            rule = UrlRule(
                pattern=pattern,
                match_kind=match_kind or infer_match_kind(pattern),
                browser_id=selection.browser_id,
                browser_label=selection.label,
                policy=policy,
                latency=latency,
                enabled=enabled,
            )
            UrlPattern(rule.pattern, rule.match_kind)
        except ValueError as e:
            self.error = f"Invalid rule: {e}"
            return None

        if not await self._commit_url_rules(self.url_rules + [rule], "Failed to save rule"):
            return None
        logger.info(f"Added URL rule {rule.id}: {rule.pattern} -> {rule.browser_label}")
        return rule

    async def toggle_url_rule(self, rule_id: str) -> bool:
        self.error = None
        if not any(rule.id == rule_id for rule in self.url_rules):
            self.error = f"Unknown rule id: {rule_id}"
            return False

        rules = [
            rule.model_copy(update={"enabled": not rule.enabled}) if rule.id == rule_id else rule
            for rule in self.url_rules
        ]
        return await self._commit_url_rules(rules, "Failed to update rule")

    async def delete_url_rule(self, rule_id: str) -> bool:
        self.error = None
        rules = [rule for rule in self.url_rules if rule.id != rule_id]
        if len(rules) == len(self.url_rules):
            self.error = f"Unknown rule id: {rule_id}"
            return False
        return await self._commit_url_rules(rules, "Failed to remove rule")

    async def import_csv(self, text: str) -> int:
        """Append rules parsed from CSV text.

        Rows whose pattern does not compile for its match kind are skipped;
        their messages are left in ``rejected``.

        Returns:
            Number of rules added (0 when nothing was imported)
        """
        self.error = None
        self.rejected = []
        try:
            parsed = parse_csv_rules(text, self.catalog)
        except ValueError as e:
            self.error = f"Failed to import CSV: {e}"
            logger.warning(self.error)
            return 0

        accepted: List[UrlRule] = []
        for rule in parsed:
            try:
                UrlPattern(rule.pattern, rule.match_kind)
            except ValueError as e:
                self.rejected.append(f"{rule.pattern}: {e}")
                logger.warning(f"Skipping imported rule {rule.pattern!r}: {e}")
                continue
            accepted.append(rule)

        if not await self._commit_url_rules(self.url_rules + accepted, "Failed to import CSV"):
            return 0
        logger.info(f"Imported {len(accepted)} URL rule(s) from CSV")
        return len(accepted)

    def export_csv(self) -> str:
        return export_csv_rules(self.url_rules)

    # ------------------------------------------------------------------
    # File-type rules
    # ------------------------------------------------------------------

    async def add_file_type_rule(
        self,
        extension: str,
        browser: str,
        policy: RulePolicy = RulePolicy.ALWAYS,
    ) -> Optional[FileTypeRule]:
        self.error = None
        if not extension.strip() or not browser.strip():
            self.error = "File type and browser are required to save a rule."
            return None

        selection = resolve_browser_selection(browser, self.catalog)
        try:
            rule = FileTypeRule(
                extension=extension,
                browser_id=selection.browser_id,
                browser_label=selection.label,
                policy=policy,
            )
        except ValueError as e:
            self.error = f"Invalid file rule: {e}"
            return None

        if not await self._commit_file_type_rules(self.file_type_rules + [rule], "Failed to save file rule"):
            return None
        logger.info(f"Added file-type rule {rule.id}: {rule.extension} -> {rule.browser_label}")
        return rule

    async def delete_file_type_rule(self, rule_id: str) -> bool:
        self.error = None
        rules = [rule for rule in self.file_type_rules if rule.id != rule_id]
        if len(rules) == len(self.file_type_rules):
            self.error = f"Unknown rule id: {rule_id}"
            return False
        return await self._commit_file_type_rules(rules, "Failed to remove file rule")

    def _option_at(self, index: int) -> dict:
        if index >= len(self.catalog):
            return {"browser_id": None, "browser_label": DEFAULT_BROWSER_LABEL}
        entry = self.catalog[index]
        return {"browser_id": entry.id, "browser_label": entry.label}

    async def auto_generate_file_rules(self) -> bool:
        """Replace the file-type rules with a starter set.

        PDFs go to the first catalog entry, Figma files to the second, and
        Markdown defers to the fallback browser.
        """
        self.error = None
        generated = [
            FileTypeRule(extension=".pdf", policy=RulePolicy.ALWAYS, **self._option_at(0)),
            FileTypeRule(extension=".fig", policy=RulePolicy.ALWAYS, **self._option_at(1)),
            FileTypeRule(
                extension=".md",
                browser_id=None,
                browser_label=UNASSIGNED_BROWSER_LABEL,
                policy=RulePolicy.FALLBACK,
            ),
        ]
        return await self._commit_file_type_rules(generated, "Failed to auto-generate rules")
