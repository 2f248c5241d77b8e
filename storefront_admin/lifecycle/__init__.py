"""
Trash Lifecycle Module - recoverable deletion for storefront records.

Provides the trash classifier, retention arithmetic, SQLAlchemy mixins and
the lifecycle service that moves products, blog posts, employees, pages and
activity logs between active, trashed and gone.
"""

from .exceptions import (
    LifecycleError,
    NotTrashedError,
    PermissionDeniedError,
    ProtectedRecordError,
    RecordNotFoundError,
    RecordValidationError,
    StoreError,
)
from .models import (
    DESCRIPTORS,
    BulkFailure,
    BulkResult,
    EntityDescriptor,
    EntityKind,
    LifecycleOutcome,
    RetentionPolicy,
    TrashState,
    get_descriptor,
)
from .retention import (
    coerce_retention_days,
    days_remaining,
    expires_at,
    is_purge_eligible,
    parse_timestamp,
)
from .classifier import Partition, is_trashed, newest_deleted_first, partition, state_of
from .mixins import TrashableMixin
from .services import SYSTEM_ACTOR, LifecycleService

__all__ = [
    # Classifier
    "is_trashed",
    "state_of",
    "partition",
    "newest_deleted_first",
    "Partition",
    # Retention
    "days_remaining",
    "expires_at",
    "is_purge_eligible",
    "parse_timestamp",
    "coerce_retention_days",
    # Mixins
    "TrashableMixin",
    # Services
    "LifecycleService",
    "SYSTEM_ACTOR",
    # Models
    "DESCRIPTORS",
    "EntityKind",
    "EntityDescriptor",
    "TrashState",
    "LifecycleOutcome",
    "BulkFailure",
    "BulkResult",
    "RetentionPolicy",
    "get_descriptor",
    # Exceptions
    "LifecycleError",
    "RecordValidationError",
    "RecordNotFoundError",
    "NotTrashedError",
    "ProtectedRecordError",
    "PermissionDeniedError",
    "StoreError",
]
