"""Storage backends for console records and site settings."""

from .base import EntityStore, Record, SettingsStore
from .cache import CachedEntityStore
from .memory import InMemoryEntityStore
from .sql import SQLEntityStore

__all__ = [
    "EntityStore",
    "SettingsStore",
    "Record",
    "CachedEntityStore",
    "InMemoryEntityStore",
    "SQLEntityStore",
]
