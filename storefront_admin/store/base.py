"""
Storage contracts for the admin console.

The lifecycle layer talks to persistence only through these interfaces:
a record store with filtered reads and field updates, a key-value settings
store, and named backend actions for work that needs elevated privileges.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

Record = Dict[str, Any]


class EntityStore(ABC):
    """Abstract base class for entity storage backends."""

    @abstractmethod
    async def list(
        self, table: str, filters: Optional[Mapping[str, Any]] = None
    ) -> List[Record]:
        """
        List records matching equality filters.

        Args:
            table: Table to read
            filters: Column/value pairs, e.g. ``{"is_deleted": True}``

        Returns:
            Matching records in insertion order
        """
        pass

    @abstractmethod
    async def get(
        self, table: str, entity_id: str, id_field: str = "id"
    ) -> Optional[Record]:
        """
        Get one record by id.

        Returns:
            The record or None if not found
        """
        pass

    @abstractmethod
    async def insert(self, table: str, fields: Mapping[str, Any]) -> Record:
        """
        Insert a record.

        Returns:
            The stored record including generated columns

        Raises:
            StoreError: If the insert fails
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        entity_id: str,
        fields: Mapping[str, Any],
        id_field: str = "id",
        expected: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Partially update one record.

        Args:
            table: Table to write
            entity_id: Id of the record
            fields: Columns to set
            id_field: Column identifying the record
            expected: Optional column values the record must still hold;
                the update is skipped when they don't match

        Returns:
            True if a record was updated

        Raises:
            StoreError: If the update fails
        """
        pass

    @abstractmethod
    async def remove(self, table: str, entity_id: str, id_field: str = "id") -> bool:
        """
        Permanently remove one record.

        Returns:
            True if a record was removed

        Raises:
            StoreError: If the removal fails
        """
        pass

    @abstractmethod
    async def remove_where(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        older_than: Optional[Tuple[str, datetime]] = None,
    ) -> int:
        """
        Permanently remove every record matching the filters.

        Args:
            table: Table to write
            filters: Column/value equality filters
            older_than: Optional ``(column, cutoff)``; only rows whose column
                is earlier than the cutoff are removed

        Returns:
            Number of records removed
        """
        pass

    @abstractmethod
    async def invoke_action(self, name: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Invoke a named backend action.

        Returns:
            The action's reply. Failures are reported as
            ``{"error": message, "details": [...]}``.
        """
        pass


class SettingsStore(ABC):
    """Abstract key-value store for site settings."""

    @abstractmethod
    async def get_setting(self, key: str) -> Any:
        """Return the stored value or None when the key is absent."""
        pass

    @abstractmethod
    async def set_setting(self, key: str, value: Any) -> None:
        """Create or replace a setting."""
        pass
