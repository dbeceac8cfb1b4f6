"""Rule store: URL and file-type rule collections in routing-rules.json.

Collections are always replaced whole (last write wins). Every stored URL
rule passes through ``migrate_legacy_rule`` on load, so records written by
older versions come back in canonical form.
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, List

from pydantic import ValidationError

from ..backend import RulePersistence
from ..models import FileTypeRule, RulesSnapshot, UrlRule
from ..persistence import JsonStore
from .rule_classifier import migrate_file_type_rule, migrate_legacy_rule

logger = logging.getLogger(__name__)


URL_RULES_KEY = "domainRules"
FILE_TYPE_RULES_KEY = "fileTypeRules"


class RuleStore(RulePersistence):
    """Loads and replaces the two rule collections."""

    FILENAME = "routing-rules.json"

    def __init__(self, config_dir: Path):
        self.store = JsonStore(
            Path(config_dir) / self.FILENAME,
            defaults={URL_RULES_KEY: [], FILE_TYPE_RULES_KEY: []},
        )
        self._lock = asyncio.Lock()

    async def load(self) -> RulesSnapshot:
        """Load both collections, migrating URL rules to canonical form.

        Records that cannot be decoded at all (no pattern, bad extension) are
        skipped with a warning rather than failing the whole load.

        Raises:
            PersistenceError: If the rules file cannot be read
        """
        async with self._lock:
            self.store.load()
            raw_url_rules = self.store.get(URL_RULES_KEY) or []
            raw_file_rules = self.store.get(FILE_TYPE_RULES_KEY) or []

        url_rules: List[UrlRule] = []
        for raw in raw_url_rules:
            if not isinstance(raw, dict):
                logger.warning(f"Skipping non-object URL rule record: {raw!r}")
                continue
            try:
                url_rules.append(migrate_legacy_rule(raw))
            except (ValueError, ValidationError) as e:
                logger.warning(f"Skipping invalid URL rule record: {e}")

        file_type_rules: List[FileTypeRule] = []
        for raw in raw_file_rules:
            if not isinstance(raw, dict):
                logger.warning(f"Skipping non-object file-type rule record: {raw!r}")
                continue
            try:
                file_type_rules.append(migrate_file_type_rule(raw))
            except (ValueError, ValidationError) as e:
                logger.warning(f"Skipping invalid file-type rule record: {e}")

        logger.info(
            f"Loaded {len(url_rules)} URL rule(s) and {len(file_type_rules)} "
            f"file-type rule(s) from {self.store.path}"
        )
        return RulesSnapshot(url_rules=url_rules, file_type_rules=file_type_rules)

    async def load_rules(self) -> RulesSnapshot:
        return await self.load()

    async def replace_url_rules(self, rules: Iterable[UrlRule]) -> None:
        """Persist the full URL rule collection.

        Raises:
            PersistenceError: If the write fails; the stored file is unchanged
        """
        records = [rule.to_record() for rule in rules]
        await self._replace(URL_RULES_KEY, records)
        logger.debug(f"Persisted {len(records)} URL rule(s)")

    async def replace_file_type_rules(self, rules: Iterable[FileTypeRule]) -> None:
        """Persist the full file-type rule collection."""
        records = [rule.model_dump(mode="json") for rule in rules]
        await self._replace(FILE_TYPE_RULES_KEY, records)
        logger.debug(f"Persisted {len(records)} file-type rule(s)")

    async def _replace(self, key: str, records: list) -> None:
        async with self._lock:
            previous = self.store.get(key)
            self.store.set(key, records)
            try:
                self.store.save()
            except Exception:
                self.store.set(key, previous)
                raise
