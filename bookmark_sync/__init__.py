"""Bookmark synchronization and paginated persistence engine."""

__version__ = "0.1.0"
