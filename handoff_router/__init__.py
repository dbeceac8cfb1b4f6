"""Handoff Router

Routes links handed off from other applications to a chosen browser and
browser profile.

This package provides:
- URL and file-type routing rules with legacy migration and CSV import/export
- A deduplicated browser/profile catalog with stable ids
- The hand-off session coordinator that reconciles backend events, the
  fallback-browser preference and cached UI settings
"""

__version__ = "0.4.0"
__license__ = "MIT"

__all__ = ["__version__", "__license__"]
