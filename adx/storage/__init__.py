"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- The exchange event log
- Exchange metadata
"""

from adx.storage.sqlite_adapter import SQLiteAdapter
from adx.storage.event_store import EventStore

__all__ = ["SQLiteAdapter", "EventStore"]
