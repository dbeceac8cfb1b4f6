"""Command-line interface for handoff-router."""

from .commands import build_parser, cli_main

__all__ = ["build_parser", "cli_main"]
