"""Exceptions for trash lifecycle operations."""

from typing import Any, Dict, List, Optional

from ..access_control import PermissionDeniedError


class LifecycleError(Exception):
    """Base exception for trash lifecycle operations."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(message)


class RecordValidationError(LifecycleError, ValueError):
    """Raised when input is rejected before any store call."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message, entity_id=entity_id)


class RecordNotFoundError(LifecycleError):
    """Raised when the store has no record with the given id."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        super().__init__(f"{entity_type} {entity_id} not found", entity_id=entity_id)


class NotTrashedError(LifecycleError):
    """Raised when permanently deleting a record that is not in the trash."""

    def __init__(self, entity_id: str):
        super().__init__(
            f"Entity {entity_id} is not in the trash and cannot be permanently deleted",
            entity_id=entity_id,
        )


class ProtectedRecordError(LifecycleError):
    """Raised when an operation targets a record that policy protects."""

    def __init__(self, entity_id: str, reason: str):
        self.reason = reason
        super().__init__(f"Entity {entity_id} is protected: {reason}", entity_id=entity_id)


class StoreError(LifecycleError):
    """Raised when the entity store reports a failure."""

    def __init__(
        self,
        message: str,
        entity_id: Optional[str] = None,
        details: Optional[List[Any]] = None,
    ):
        self.details = list(details or [])
        super().__init__(message, entity_id=entity_id)

    @classmethod
    def from_action_result(
        cls, action: str, result: Dict[str, Any], entity_id: Optional[str] = None
    ) -> "StoreError":
        """Build an error from a backend action's ``{"error", "details"}`` reply."""
        message = result.get("error") or f"Backend action {action} failed"
        return cls(str(message), entity_id=entity_id, details=result.get("details"))


__all__ = [
    "LifecycleError",
    "RecordValidationError",
    "RecordNotFoundError",
    "NotTrashedError",
    "ProtectedRecordError",
    "PermissionDeniedError",
    "StoreError",
]
