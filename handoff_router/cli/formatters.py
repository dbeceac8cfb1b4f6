"""Rich formatters for handoff-router CLI output."""

from typing import List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from ..models import BrowserCatalogEntry, FileTypeRule, LaunchHistoryItem, UiSettings, UrlRule


# Global console instances
console = Console()
error_console = Console(stderr=True)


def format_url_rules(rules: Sequence[UrlRule]) -> Table:
    """Format URL rules as a Rich table, in evaluation order."""
    table = Table(title="URL Rules", show_header=True, header_style="bold cyan")

    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Pattern", style="bold green")
    table.add_column("Match", style="magenta")
    table.add_column("Browser", style="blue")
    table.add_column("Policy", style="yellow")
    table.add_column("Latency")
    table.add_column("Enabled", justify="center")

    for index, rule in enumerate(rules, start=1):
        enabled = "[green]✓[/green]" if rule.enabled else "[red]✗[/red]"
        browser = rule.browser_label if rule.browser_id else f"[dim]{rule.browser_label}[/dim]"
        table.add_row(
            str(index),
            rule.id[:8],
            rule.pattern,
            rule.match_kind.value,
            browser,
            rule.policy.value,
            rule.latency,
            enabled,
        )

    return table


def format_file_type_rules(rules: Sequence[FileTypeRule]) -> Table:
    table = Table(title="File-Type Rules", show_header=True, header_style="bold cyan")

    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Extension", style="bold green")
    table.add_column("Browser", style="blue")
    table.add_column("Policy", style="yellow")

    for rule in rules:
        table.add_row(rule.id[:8], rule.extension, rule.browser_label, rule.policy.value)

    return table


def format_catalog(catalog: Sequence[BrowserCatalogEntry], selected_id: Optional[str] = None) -> Table:
    table = Table(title="Browsers", show_header=True, header_style="bold cyan")

    table.add_column("", width=2)
    table.add_column("ID", style="dim")
    table.add_column("Browser", style="bold")
    table.add_column("Profile", style="blue")

    for entry in catalog:
        marker = "[green]●[/green]" if entry.id == selected_id else ""
        table.add_row(marker, entry.id, entry.name, entry.profile_label or "[dim]default[/dim]")

    return table


def format_settings(settings: UiSettings, fallback: Optional[str]) -> Table:
    """Format UI settings and the fallback browser as a two-column table."""
    table = Table(title="Settings", show_header=False)

    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("Fallback browser", fallback or "[dim]not set[/dim]")
    for key, value in settings.model_dump().items():
        table.add_row(key.replace("_", " ").capitalize(), "[dim]none[/dim]" if value is None else str(value))

    return table


def format_history(history: List[LaunchHistoryItem]) -> Table:
    table = Table(title="Launch History", show_header=True, header_style="bold cyan")

    table.add_column("Decided", style="dim")
    table.add_column("URL", style="bold")
    table.add_column("Browser", style="blue")
    table.add_column("Persist", style="yellow")

    for item in history:
        browser = f"{item.browser} · {item.profile_label}" if item.profile_label else item.browser
        table.add_row(item.decided_at, item.url, browser, item.persist.value)

    return table
