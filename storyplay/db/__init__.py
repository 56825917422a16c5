"""
Database package for storyplay.

This package provides SQLite-based persistence for stories and playing sessions.
"""

from .manager import DatabaseManager

__all__ = ["DatabaseManager"]
