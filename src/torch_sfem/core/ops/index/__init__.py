"""Row deduplication and lookup for integer vertex tables."""

from . import row

__all__ = ["row"]
