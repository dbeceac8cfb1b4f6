"""Hand-off router services."""

from .catalog_builder import build_catalog, collect_catalog
from .coordinator import HandoffCoordinator
from .event_channel import EventChannel
from .local_backend import InMemoryRoutingBackend, normalize_url
from .rule_editor import RuleEditor
from .rule_matcher import RuleMatcher
from .rule_store import RuleStore

__all__ = [
    "build_catalog",
    "collect_catalog",
    "HandoffCoordinator",
    "EventChannel",
    "InMemoryRoutingBackend",
    "normalize_url",
    "RuleEditor",
    "RuleMatcher",
    "RuleStore",
]
