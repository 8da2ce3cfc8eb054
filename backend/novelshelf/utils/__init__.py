"""Utility modules for the novelshelf backend."""

from .text import normalize_for_display, safe_truncate

__all__ = ["normalize_for_display", "safe_truncate"]
