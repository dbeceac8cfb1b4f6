"""CLI command handlers for handoff-router.

Manages routing rules, tests URLs against them and inspects settings.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .. import __version__
from ..config import ConfigError, RouterConfig, load_config
from ..errors import HandoffError
from ..models import (
    LATENCY_OPTIONS,
    RULE_POLICIES,
    FileTypeRule,
    IncomingLinkWire,
    MatchKind,
    ProfilePreference,
    RulePolicy,
    UrlRule,
)
from ..persistence import PreferenceStore, SettingsStore
from ..services import (
    HandoffCoordinator,
    InMemoryRoutingBackend,
    RuleEditor,
    RuleMatcher,
    RuleStore,
    build_catalog,
)
from .formatters import (
    console,
    error_console,
    format_catalog,
    format_file_type_rules,
    format_history,
    format_settings,
    format_url_rules,
)
from .logging_config import log_timing, setup_logging

logger = logging.getLogger(__name__)


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    error_console.print(f"[red]✗[/red] {message}")


def print_info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {message}")


def _catalog(config: RouterConfig):
    return build_catalog(list(config.browsers.keys()), config.browsers)


async def _load_editor(config: RouterConfig) -> RuleEditor:
    editor = RuleEditor(RuleStore(config.config_dir), _catalog(config))
    with log_timing("Load rules", logger):
        await editor.load()
    return editor


def _find_rule_id(rules: Sequence, prefix: str) -> Optional[str]:
    """Resolve a full rule id or a unique id prefix."""
    matches = [rule.id for rule in rules if rule.id == prefix]
    if not matches:
        matches = [rule.id for rule in rules if rule.id.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        print_error(f"Rule id prefix '{prefix}' is ambiguous ({len(matches)} matches)")
    else:
        print_error(f"No rule with id '{prefix}'")
    return None


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise ValueError(f"Expected true or false, got '{value}'")


# ============================================================================
# Rules
# ============================================================================


async def cmd_rules_list(args: argparse.Namespace, config: RouterConfig) -> int:
    editor = await _load_editor(config)

    if not editor.url_rules and not editor.file_type_rules:
        print_info("No rules defined")
        print_info("Add one with: handoff-router rules add <pattern> <browser>")
        return 0

    if editor.url_rules:
        console.print(format_url_rules(editor.url_rules))
    if editor.file_type_rules:
        console.print(format_file_type_rules(editor.file_type_rules))
    return 0


async def cmd_rules_add(args: argparse.Namespace, config: RouterConfig) -> int:
    editor = await _load_editor(config)
    rule = await editor.add_url_rule(
        args.pattern,
        args.browser,
        policy=RulePolicy(args.policy),
        latency=args.latency,
        enabled=not args.disabled,
        match_kind=MatchKind(args.match_kind) if args.match_kind else None,
    )
    if rule is None:
        print_error(editor.error or "Rule was not saved")
        return 1

    print_success(f"Added {rule.match_kind.value} rule {rule.pattern} → {rule.browser_label} ({rule.id[:8]})")
    if rule.browser_id is None:
        print_info(f"'{rule.browser_label}' is not a known browser; the rule will prompt until it matches one")
    return 0


async def cmd_rules_toggle(args: argparse.Namespace, config: RouterConfig) -> int:
    editor = await _load_editor(config)
    rule_id = _find_rule_id(editor.url_rules, args.rule_id)
    if rule_id is None:
        return 1

    if not await editor.toggle_url_rule(rule_id):
        print_error(editor.error or "Rule was not updated")
        return 1

    rule = next(rule for rule in editor.url_rules if rule.id == rule_id)
    print_success(f"Rule {rule.pattern} {'enabled' if rule.enabled else 'disabled'}")
    return 0


async def cmd_rules_delete(args: argparse.Namespace, config: RouterConfig) -> int:
    editor = await _load_editor(config)

    if args.file_type:
        rule_id = _find_rule_id(editor.file_type_rules, args.rule_id)
        if rule_id is None:
            return 1
        ok = await editor.delete_file_type_rule(rule_id)
    else:
        rule_id = _find_rule_id(editor.url_rules, args.rule_id)
        if rule_id is None:
            return 1
        ok = await editor.delete_url_rule(rule_id)

    if not ok:
        print_error(editor.error or "Rule was not removed")
        return 1
    print_success(f"Removed rule {rule_id[:8]}")
    return 0


async def cmd_rules_import(args: argparse.Namespace, config: RouterConfig) -> int:
    path = Path(args.file)
    try:
        text = path.read_text()
    except OSError as e:
        print_error(f"Unable to read {path}: {e}")
        return 1

    editor = await _load_editor(config)
    added = await editor.import_csv(text)
    if editor.error:
        print_error(editor.error)
        return 1

    for message in editor.rejected:
        print_error(f"Skipped invalid rule {message}")
    print_success(f"Imported {added} rule(s) from {path}")
    return 0


async def cmd_rules_export(args: argparse.Namespace, config: RouterConfig) -> int:
    editor = await _load_editor(config)
    text = editor.export_csv()

    if not args.file:
        sys.stdout.write(text)
        return 0

    path = Path(args.file)
    try:
        path.write_text(text)
    except OSError as e:
        print_error(f"Unable to write {path}: {e}")
        return 1
    print_success(f"Exported {len(editor.url_rules)} rule(s) to {path}")
    return 0


async def cmd_rules_add_file(args: argparse.Namespace, config: RouterConfig) -> int:
    editor = await _load_editor(config)
    rule = await editor.add_file_type_rule(args.extension, args.browser, policy=RulePolicy(args.policy))
    if rule is None:
        print_error(editor.error or "Rule was not saved")
        return 1
    print_success(f"Added file-type rule {rule.extension} → {rule.browser_label} ({rule.id[:8]})")
    return 0


async def cmd_rules_auto_files(args: argparse.Namespace, config: RouterConfig) -> int:
    editor = await _load_editor(config)
    if not await editor.auto_generate_file_rules():
        print_error(editor.error or "Rules were not generated")
        return 1
    console.print(format_file_type_rules(editor.file_type_rules))
    return 0


# ============================================================================
# Matching and routing
# ============================================================================


async def cmd_match(args: argparse.Namespace, config: RouterConfig) -> int:
    """Show which rule a URL would match. Exit code 1 when none does."""
    snapshot = await RuleStore(config.config_dir).load()
    rule = RuleMatcher(snapshot).match(args.url)

    if rule is None:
        print_info(f"No rule matches {args.url}")
        return 1

    if isinstance(rule, FileTypeRule):
        console.print(f"[bold]{args.url}[/bold] matches file-type rule [green]{rule.extension}[/green]")
    elif isinstance(rule, UrlRule):
        console.print(
            f"[bold]{args.url}[/bold] matches {rule.match_kind.value} rule [green]{rule.pattern}[/green]"
        )
    console.print(f"  Browser: {rule.browser_label}")
    console.print(f"  Policy:  {rule.policy.value}")
    return 0


async def cmd_route(args: argparse.Namespace, config: RouterConfig) -> int:
    """Hand a link to the router and report the decision it reaches."""
    snapshot = await RuleStore(config.config_dir).load()
    preferences = PreferenceStore(config.config_dir)
    backend = InMemoryRoutingBackend(
        preferences=preferences,
        inventory=config.browsers,
        matcher=RuleMatcher(snapshot),
        history_limit=config.history_limit,
    )
    coordinator = HandoffCoordinator(
        backend,
        preferences,
        SettingsStore(config.config_dir),
        history_limit=config.history_limit,
    )

    coordinator.start()
    try:
        await coordinator.settle()
        if coordinator.state.init_error:
            print_error(coordinator.state.init_error)
            return 1

        link = await backend.register_incoming(IncomingLinkWire(url=args.url, source_app=args.source_app))
        state = coordinator.snapshot()
    finally:
        await coordinator.close()

    if link.id in state.errors_by_id:
        print_error(state.errors_by_id[link.id])
        return 1

    if any(item.id == link.id for item in state.history):
        console.print(format_history(state.recent_history()))
        return 0

    print_info(f"No automatic decision for {link.url}; the browser prompt would be shown")
    if link.recommended_browser is not None:
        recommended = link.recommended_browser
        label = recommended.name
        if recommended.profile_label:
            label = f"{label} · {recommended.profile_label}"
        print_info(f"Recommended browser: {label}")
    return 0


async def cmd_browsers(args: argparse.Namespace, config: RouterConfig) -> int:
    catalog = _catalog(config)
    if not catalog:
        print_info(f"No browsers configured in {config.config_file}")
        return 0

    settings = await SettingsStore(config.config_dir).load_ui_settings()
    console.print(format_catalog(catalog, settings.last_selected_browser_id))
    return 0


# ============================================================================
# Settings
# ============================================================================


async def cmd_settings_show(args: argparse.Namespace, config: RouterConfig) -> int:
    settings = await SettingsStore(config.config_dir).load_ui_settings()
    preferences = await PreferenceStore(config.config_dir).fetch_preferences()

    fallback = None
    if preferences.fallback is not None:
        fallback = preferences.fallback.browser
        profile = preferences.fallback.profile
        if profile is not None and (profile.label or profile.directory):
            fallback = f"{fallback} · {profile.label or profile.directory}"

    console.print(format_settings(settings, fallback))
    return 0


async def cmd_settings_set(args: argparse.Namespace, config: RouterConfig) -> int:
    try:
        value = _parse_bool(args.value)
    except ValueError as e:
        print_error(str(e))
        return 1

    key = args.key.replace("-", "_")
    await SettingsStore(config.config_dir).set_setting(key, value)
    print_success(f"{key} = {value}")
    return 0


async def cmd_settings_fallback(args: argparse.Namespace, config: RouterConfig) -> int:
    store = PreferenceStore(config.config_dir)

    if not args.browser:
        await store.update_fallback(None)
        print_success("Fallback browser cleared")
        return 0

    profile = None
    if args.profile_label or args.profile_directory:
        profile = ProfilePreference(label=args.profile_label, directory=args.profile_directory)
    await store.update_fallback(args.browser, profile)
    print_success(f"Fallback browser set to {args.browser}")
    return 0


# ============================================================================
# Entry point
# ============================================================================


BOOL_SETTINGS = ("remember-choice", "show-icons", "debug-mode", "onboarding-completed")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="handoff-router",
        description="Route links handed off from other applications to a chosen browser profile",
    )

    parser.add_argument("--version", action="version", version=f"handoff-router {__version__}")
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging (INFO level)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (DEBUG level, includes verbose)"
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        help="Configuration directory (default: $HANDOFF_ROUTER_CONFIG_DIR or ~/.config/handoff-router)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # handoff-router rules ...
    parser_rules = subparsers.add_parser("rules", help="Manage routing rules")
    rules_subparsers = parser_rules.add_subparsers(dest="rules_command", help="Rule commands")

    parser_rules_list = rules_subparsers.add_parser("list", help="List URL and file-type rules")
    parser_rules_list.set_defaults(handler=cmd_rules_list)

    parser_rules_add = rules_subparsers.add_parser(
        "add",
        help="Add a URL rule",
        description="Add a URL rule. The match kind is inferred from the pattern unless given."
    )
    parser_rules_add.add_argument("pattern", help="Host (github.com), wildcard (*.figma.com/*) or regex (^https://docs\\.)")
    parser_rules_add.add_argument("browser", help="Browser label, e.g. 'Google Chrome · Work'")
    parser_rules_add.add_argument(
        "--policy",
        choices=[policy.value for policy in RULE_POLICIES],
        default=RulePolicy.ALWAYS.value,
        help="Rule policy (default: Always)"
    )
    parser_rules_add.add_argument(
        "--latency",
        choices=LATENCY_OPTIONS,
        default="Auto",
        help="Latency budget (default: Auto)"
    )
    parser_rules_add.add_argument(
        "--match-kind",
        choices=[kind.value for kind in MatchKind],
        help="Override the inferred match kind"
    )
    parser_rules_add.add_argument("--disabled", action="store_true", help="Add the rule disabled")
    parser_rules_add.set_defaults(handler=cmd_rules_add)

    parser_rules_toggle = rules_subparsers.add_parser("toggle", help="Enable or disable a URL rule")
    parser_rules_toggle.add_argument("rule_id", help="Rule id or unique id prefix")
    parser_rules_toggle.set_defaults(handler=cmd_rules_toggle)

    parser_rules_delete = rules_subparsers.add_parser("delete", help="Delete a rule")
    parser_rules_delete.add_argument("rule_id", help="Rule id or unique id prefix")
    parser_rules_delete.add_argument("--file-type", action="store_true", help="Delete a file-type rule")
    parser_rules_delete.set_defaults(handler=cmd_rules_delete)

    parser_rules_import = rules_subparsers.add_parser("import", help="Append URL rules from a CSV file")
    parser_rules_import.add_argument("file", help="CSV file (pattern,browser,policy,latency,enabled,matchKind)")
    parser_rules_import.set_defaults(handler=cmd_rules_import)

    parser_rules_export = rules_subparsers.add_parser("export", help="Export URL rules as CSV")
    parser_rules_export.add_argument("file", nargs="?", help="Output file (default: stdout)")
    parser_rules_export.set_defaults(handler=cmd_rules_export)

    parser_rules_add_file = rules_subparsers.add_parser("add-file", help="Add a file-type rule")
    parser_rules_add_file.add_argument("extension", help="File extension, e.g. .pdf")
    parser_rules_add_file.add_argument("browser", help="Browser label")
    parser_rules_add_file.add_argument(
        "--policy",
        choices=[policy.value for policy in RULE_POLICIES],
        default=RulePolicy.ALWAYS.value,
    )
    parser_rules_add_file.set_defaults(handler=cmd_rules_add_file)

    parser_rules_auto = rules_subparsers.add_parser(
        "auto-files",
        help="Replace file-type rules with a starter set (.pdf, .fig, .md)"
    )
    parser_rules_auto.set_defaults(handler=cmd_rules_auto_files)

    # handoff-router match <url>
    parser_match = subparsers.add_parser("match", help="Show the rule a URL matches")
    parser_match.add_argument("url")
    parser_match.set_defaults(handler=cmd_match)

    # handoff-router route <url>
    parser_route = subparsers.add_parser("route", help="Route a link as if it was handed off")
    parser_route.add_argument("url")
    parser_route.add_argument("--source-app", default="cli", help="Application the link came from")
    parser_route.set_defaults(handler=cmd_route)

    # handoff-router browsers
    parser_browsers = subparsers.add_parser("browsers", help="List configured browsers and profiles")
    parser_browsers.set_defaults(handler=cmd_browsers)

    # handoff-router settings ...
    parser_settings = subparsers.add_parser("settings", help="Show or change settings")
    settings_subparsers = parser_settings.add_subparsers(dest="settings_command", help="Settings commands")

    parser_settings_show = settings_subparsers.add_parser("show", help="Show settings")
    parser_settings_show.set_defaults(handler=cmd_settings_show)

    parser_settings_set = settings_subparsers.add_parser("set", help="Change a boolean setting")
    parser_settings_set.add_argument("key", choices=BOOL_SETTINGS)
    parser_settings_set.add_argument("value", help="true or false")
    parser_settings_set.set_defaults(handler=cmd_settings_set)

    parser_settings_fallback = settings_subparsers.add_parser(
        "fallback",
        help="Set the fallback browser, or clear it when no browser is given"
    )
    parser_settings_fallback.add_argument("browser", nargs="?")
    parser_settings_fallback.add_argument("--profile-label")
    parser_settings_fallback.add_argument("--profile-directory")
    parser_settings_fallback.set_defaults(handler=cmd_settings_fallback)

    return parser


def cli_main(argv: Optional[List[str]] = None) -> int:
    """Run the CLI.

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config_dir)
    except ConfigError as e:
        setup_logging(verbose=args.verbose, debug=args.debug)
        print_error(str(e))
        return 1

    setup_logging(verbose=args.verbose, debug=args.debug, level=config.log_level)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 0

    try:
        return asyncio.run(handler(args, config))
    except HandoffError as e:
        print_error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(cli_main())
