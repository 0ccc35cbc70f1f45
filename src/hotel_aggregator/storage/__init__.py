"""Durable state."""

from .sqlite_store import SqliteStore

__all__ = ["SqliteStore"]
