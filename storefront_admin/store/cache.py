"""
Read-through cache for entity listings.

List results are cached per table and filter set and dropped for the whole
table as soon as any mutation on that table succeeds.
"""

import copy
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .base import EntityStore, Record

logger = logging.getLogger(__name__)

InvalidationListener = Callable[[str], None]


class CachedEntityStore(EntityStore):
    """Wrap an ``EntityStore`` with a per-table list cache."""

    def __init__(
        self,
        store: EntityStore,
        cache_ttl: Optional[int] = None,
        enable_cache: bool = True,
    ):
        """
        Initialize the cache.

        Args:
            store: Backend that serves cache misses and all writes
            cache_ttl: Optional time-to-live in seconds; entries live until
                invalidated when None
            enable_cache: Disable to pass every read through
        """
        self.store = store
        self.cache_ttl = cache_ttl
        self.enable_cache = enable_cache
        self._cache: Dict[Tuple[str, Tuple[Tuple[str, Any], ...]], Dict[str, Any]] = {}
        self._cache_lock = threading.Lock()
        self._listeners: List[InvalidationListener] = []

    def __getattr__(self, name: str) -> Any:
        # Backend extras such as get_setting / register_action
        return getattr(self.store, name)

    def _get_cache_key(
        self, table: str, filters: Optional[Mapping[str, Any]]
    ) -> Tuple[str, Tuple[Tuple[str, Any], ...]]:
        return table, tuple(sorted((filters or {}).items()))

    def _get_from_cache(self, key: Tuple[str, Any]) -> Optional[List[Record]]:
        if not self.enable_cache:
            return None

        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if entry["expires_at"] is not None and datetime.utcnow() >= entry["expires_at"]:
                del self._cache[key]
                return None
            return copy.deepcopy(entry["value"])

    def _set_cache(self, key: Tuple[str, Any], value: List[Record]) -> None:
        if not self.enable_cache:
            return

        expires_at = (
            datetime.utcnow() + timedelta(seconds=self.cache_ttl)
            if self.cache_ttl
            else None
        )
        with self._cache_lock:
            self._cache[key] = {"value": copy.deepcopy(value), "expires_at": expires_at}

    def add_listener(self, listener: InvalidationListener) -> None:
        """Call ``listener(table)`` after every invalidation."""
        self._listeners.append(listener)

    def invalidate(self, table: Optional[str] = None) -> None:
        """Drop cached listings of ``table``, or of every table when None."""
        with self._cache_lock:
            if table is None:
                self._cache.clear()
            else:
                for key in [k for k in self._cache if k[0] == table]:
                    del self._cache[key]

        logger.debug("Invalidated list cache for %s", table or "all tables")
        for listener in self._listeners:
            listener(table or "*")

    async def list(
        self, table: str, filters: Optional[Mapping[str, Any]] = None
    ) -> List[Record]:
        key = self._get_cache_key(table, filters)
        cached = self._get_from_cache(key)
        if cached is not None:
            return cached

        records = await self.store.list(table, filters)
        self._set_cache(key, records)
        return records

    async def get(
        self, table: str, entity_id: str, id_field: str = "id"
    ) -> Optional[Record]:
        return await self.store.get(table, entity_id, id_field)

    async def insert(self, table: str, fields: Mapping[str, Any]) -> Record:
        record = await self.store.insert(table, fields)
        self.invalidate(table)
        return record

    async def update(
        self,
        table: str,
        entity_id: str,
        fields: Mapping[str, Any],
        id_field: str = "id",
        expected: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        updated = await self.store.update(table, entity_id, fields, id_field, expected)
        if updated:
            self.invalidate(table)
        return updated

    async def remove(self, table: str, entity_id: str, id_field: str = "id") -> bool:
        removed = await self.store.remove(table, entity_id, id_field)
        if removed:
            self.invalidate(table)
        return removed

    async def remove_where(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        older_than: Optional[Tuple[str, datetime]] = None,
    ) -> int:
        count = await self.store.remove_where(table, filters, older_than)
        if count:
            self.invalidate(table)
        return count

    async def invoke_action(self, name: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        result = await self.store.invoke_action(name, payload)
        # Actions may touch any table
        if not result.get("error"):
            self.invalidate()
        return result
