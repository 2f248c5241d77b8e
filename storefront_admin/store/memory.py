"""In-memory entity and settings store."""

import copy
import inspect
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union

from ..lifecycle.exceptions import StoreError
from ..lifecycle.retention import parse_timestamp
from .base import EntityStore, Record, SettingsStore

logger = logging.getLogger(__name__)

ActionResult = Dict[str, Any]
ActionHandler = Callable[
    ["InMemoryEntityStore", Mapping[str, Any]],
    Union[ActionResult, Awaitable[ActionResult]],
]


def _matches(record: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    return all(record.get(column) == value for column, value in (filters or {}).items())


async def delete_user_action(
    store: "InMemoryEntityStore", payload: Mapping[str, Any]
) -> ActionResult:
    """Remove a user account together with its profile and role rows."""
    user_id = payload.get("user_id")
    if not user_id:
        return {"error": "user_id is required"}

    removed_profiles = await store.remove_where("profiles", {"user_id": user_id})
    removed_roles = await store.remove_where("user_roles", {"user_id": user_id})
    if not removed_profiles and not removed_roles:
        return {"error": f"User {user_id} not found"}

    return {"success": True, "user_id": user_id}


class InMemoryEntityStore(EntityStore, SettingsStore):
    """
    Dict-backed store.

    Records are copied on the way in and out, so callers never share state
    with the store. Useful for tests and demos.
    """

    def __init__(self, tables: Optional[Mapping[str, List[Record]]] = None):
        self._tables: Dict[str, List[Record]] = {
            name: [dict(r) for r in rows] for name, rows in (tables or {}).items()
        }
        self._settings: Dict[str, Any] = {}
        self._actions: Dict[str, ActionHandler] = {"delete-user": delete_user_action}

    def register_action(self, name: str, handler: ActionHandler) -> None:
        """Register a backend action handler called with ``(store, payload)``."""
        self._actions[name] = handler

    def _rows(self, table: str) -> List[Record]:
        return self._tables.setdefault(table, [])

    def _find(self, table: str, entity_id: str, id_field: str) -> Optional[Record]:
        for row in self._rows(table):
            if row.get(id_field) == entity_id:
                return row
        return None

    async def list(
        self, table: str, filters: Optional[Mapping[str, Any]] = None
    ) -> List[Record]:
        return [copy.deepcopy(r) for r in self._rows(table) if _matches(r, filters)]

    async def get(
        self, table: str, entity_id: str, id_field: str = "id"
    ) -> Optional[Record]:
        row = self._find(table, entity_id, id_field)
        return copy.deepcopy(row) if row is not None else None

    async def insert(self, table: str, fields: Mapping[str, Any]) -> Record:
        row = dict(fields)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc))
        row.setdefault("is_deleted", False)
        row.setdefault("deleted_at", None)

        if self._find(table, row["id"], "id") is not None:
            raise StoreError(
                f"duplicate key value violates unique constraint on {table}.id",
                entity_id=row["id"],
            )

        self._rows(table).append(row)
        return copy.deepcopy(row)

    async def update(
        self,
        table: str,
        entity_id: str,
        fields: Mapping[str, Any],
        id_field: str = "id",
        expected: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        row = self._find(table, entity_id, id_field)
        if row is None or not _matches(row, expected):
            return False
        row.update(copy.deepcopy(dict(fields)))
        return True

    async def remove(self, table: str, entity_id: str, id_field: str = "id") -> bool:
        rows = self._rows(table)
        for index, row in enumerate(rows):
            if row.get(id_field) == entity_id:
                del rows[index]
                return True
        return False

    async def remove_where(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        older_than: Optional[Tuple[str, datetime]] = None,
    ) -> int:
        def doomed(row: Record) -> bool:
            if not _matches(row, filters):
                return False
            if older_than is None:
                return True
            column, cutoff = older_than
            value = parse_timestamp(row.get(column))
            return value is not None and value < parse_timestamp(cutoff)  # type: ignore[operator]

        rows = self._rows(table)
        kept = [r for r in rows if not doomed(r)]
        removed = len(rows) - len(kept)
        self._tables[table] = kept
        return removed

    async def invoke_action(self, name: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        handler = self._actions.get(name)
        if handler is None:
            return {"error": f"Unknown action {name}"}

        result = handler(self, payload)
        if inspect.isawaitable(result):
            result = await result
        return result  # type: ignore[return-value]

    async def get_setting(self, key: str) -> Any:
        return copy.deepcopy(self._settings.get(key))

    async def set_setting(self, key: str, value: Any) -> None:
        self._settings[key] = copy.deepcopy(value)
