"""
Storefront Admin - trash lifecycle and permission tooling for a storefront console.

This package implements the recoverable deletion workflow behind the
storefront admin console: records move to a trash, stay restorable for a
retention window, and are only then removed for good. Every operation is
guarded by a role based permission gate.

Key Features
------------
* **Trash Classifier**: Split records into active and trashed views
* **Retention Calculator**: Days left before a trashed record may be purged
* **Lifecycle Operations**: Soft delete, restore, permanent delete and bulk variants
* **Permission Gate**: Role to tab and action lookups
* **Activity Log**: Who did what to which record

Quick Start
-----------
>>> from storefront_admin import Actor, LifecycleService
>>> from storefront_admin.store import InMemoryEntityStore
>>>
>>> store = InMemoryEntityStore()
>>> service = LifecycleService(store)
>>> admin = Actor(id="u1", name="Ada", role="admin")
>>>
>>> await service.soft_delete("product", product_id, admin)
>>> await service.list_trashed("product")
"""

__version__ = "1.0.0"

from .access_control import Actor, PermissionGate, PermissionTable, Role, has_permission
from .activity import ActivityLogger
from .config import AdminConfig, get_config
from .lifecycle import (
    BulkResult,
    EntityKind,
    LifecycleService,
    TrashableMixin,
    days_remaining,
    partition,
)

__all__ = [
    # Lifecycle
    "LifecycleService",
    "EntityKind",
    "BulkResult",
    "TrashableMixin",
    "partition",
    "days_remaining",
    # Access Control
    "Actor",
    "Role",
    "PermissionGate",
    "PermissionTable",
    "has_permission",
    # Activity
    "ActivityLogger",
    # Configuration
    "AdminConfig",
    "get_config",
]
