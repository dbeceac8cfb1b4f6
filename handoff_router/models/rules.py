"""
Routing rule models.

Provides Pydantic models for:
- URL rules (pattern + match kind + target browser + policy)
- File-type rules (extension + target browser + policy)
- The rules snapshot persisted in routing-rules.json
"""

import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class MatchKind(str, Enum):
    """How a URL rule pattern is compared against a link."""
    HOST = "host"          # Exact host, e.g. github.com
    WILDCARD = "wildcard"  # '*' globs over host and path, e.g. *.figma.com/*
    REGEX = "regex"        # Regular expression over the whole URL


class RulePolicy(str, Enum):
    """Per-rule persistence mode."""
    ALWAYS = "Always"
    JUST_ONCE = "Just once"
    FALLBACK = "Fallback"


RULE_POLICIES: List[RulePolicy] = [RulePolicy.ALWAYS, RulePolicy.JUST_ONCE, RulePolicy.FALLBACK]
LATENCY_OPTIONS: List[str] = ["< 100 ms", "Stable", "Auto"]
DEFAULT_LATENCY = "Auto"
UNASSIGNED_BROWSER_LABEL = "Prompt me"


def new_rule_id() -> str:
    """Generate a fresh opaque rule id."""
    return uuid.uuid4().hex


class UrlRule(BaseModel):
    """URL routing rule in canonical form."""

    id: str = Field(default_factory=new_rule_id, min_length=1)
    pattern: str = Field(..., min_length=1, description="Host, wildcard or regex pattern")
    match_kind: MatchKind = Field(default=MatchKind.HOST)
    browser_id: Optional[str] = Field(
        default=None,
        description="Catalog id of the target browser, None when the label matched nothing"
    )
    browser_label: str = Field(..., description="Resolved catalog label or the raw text typed")
    policy: RulePolicy = Field(default=RulePolicy.ALWAYS)
    latency: str = Field(default=DEFAULT_LATENCY, description="Latency budget label")
    enabled: bool = Field(default=True)

    model_config = {"frozen": True}

    @field_validator("pattern", mode="before")
    @classmethod
    def strip_pattern(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip()
        return v

    def to_record(self) -> dict:
        """Serialize for storage, mirroring the pattern into the legacy 'domain' field."""
        record = self.model_dump(mode="json")
        record["domain"] = self.pattern
        return record


class FileTypeRule(BaseModel):
    """File-type routing rule; matches on exact extension equality."""

    id: str = Field(default_factory=new_rule_id, min_length=1)
    extension: str = Field(..., min_length=2, description="Leading dot, lowercase (e.g. '.pdf')")
    browser_id: Optional[str] = None
    browser_label: str
    policy: RulePolicy = Field(default=RulePolicy.ALWAYS)

    model_config = {"frozen": True}

    @field_validator("extension", mode="before")
    @classmethod
    def normalize_extension(cls, v: str) -> str:
        """Lowercase and ensure a single leading dot."""
        if not isinstance(v, str):
            raise ValueError("extension must be a string")
        trimmed = v.strip().lower()
        if not trimmed:
            raise ValueError("extension cannot be empty")
        return trimmed if trimmed.startswith(".") else f".{trimmed}"


class RulesSnapshot(BaseModel):
    """Both rule collections as loaded from the rule store."""

    url_rules: List[UrlRule] = Field(default_factory=list)
    file_type_rules: List[FileTypeRule] = Field(default_factory=list)
