"""
Activity logging for the admin console.

Every console mutation leaves an entry in the ``activity_logs`` table
recording who did what to which record. Activity logs are themselves
trashable records.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .access_control import Actor

if TYPE_CHECKING:
    from .store.base import EntityStore

logger = logging.getLogger(__name__)

ACTIVITY_TABLE = "activity_logs"


class ActivityEntry(BaseModel):
    """One activity log row."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., description="ID of the acting user")
    user_name: str = Field("Unknown", description="Display name at time of action")
    user_role: str = Field("user", description="Effective role at time of action")
    action: str = Field(..., description="Action name, e.g. product_trash")
    entity_type: str = Field(..., description="Entity kind affected")
    entity_id: str = Field("", description="ID of the affected record")
    details: str = Field("", description="Human readable summary")


class ActivityLogger:
    """
    Writes activity entries through an ``EntityStore``.

    Logging is best effort: a failed write is reported through the
    module logger and never fails the operation being logged.

    Example:
        >>> activity = ActivityLogger(store)
        >>> await activity.log(actor, "product_trash", "product", pid,
        ...                    "Product moved to trash")
    """

    def __init__(self, store: "EntityStore", enabled: bool = True):
        self.store = store
        self.enabled = enabled

    def build_entry(
        self,
        actor: Actor,
        action: str,
        entity_type: str,
        entity_id: str = "",
        details: str = "",
    ) -> ActivityEntry:
        return ActivityEntry(
            user_id=actor.id,
            user_name=actor.name or "Unknown",
            user_role=actor.role or "user",
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )

    async def log(
        self,
        actor: Actor,
        action: str,
        entity_type: str,
        entity_id: str = "",
        details: str = "",
    ) -> Optional[Dict[str, Any]]:
        """
        Record one activity entry.

        Args:
            actor: Who performed the action
            action: Action name
            entity_type: Entity kind affected
            entity_id: Affected record id
            details: Human readable summary

        Returns:
            The stored row, or None when logging is disabled or failed
        """
        entry = self.build_entry(actor, action, entity_type, entity_id, details)
        logger.info(
            "%s by %s (%s) on %s %s", action, actor.id, actor.role, entity_type, entity_id
        )

        if not self.enabled:
            return None

        try:
            return await self.store.insert(ACTIVITY_TABLE, entry.model_dump())
        except Exception as e:
            logger.error(f"Failed to write activity log for {action}: {e}")
            return None
