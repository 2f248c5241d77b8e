"""
Data models for the trash lifecycle.

Describes the trashable entity kinds, the outcome of single and bulk
operations, and per-kind retention policies.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..config import DEFAULT_RETENTION_DAYS
from . import retention

Record = Dict[str, Any]


class EntityKind(str, Enum):
    """Entity kinds that share the trash lifecycle."""

    PRODUCT = "product"
    BLOG_POST = "blog_post"
    EMPLOYEE = "employee"
    PAGE = "page"
    ACTIVITY_LOG = "activity_log"


class TrashState(str, Enum):
    """Lifecycle states of a record."""

    ACTIVE = "active"
    TRASHED = "trashed"
    GONE = "gone"


class EntityDescriptor(BaseModel):
    """How one entity kind is stored and guarded."""

    model_config = ConfigDict(frozen=True)

    kind: EntityKind
    table: str = Field(..., description="Store table holding the records")
    id_field: str = Field("id", description="Column identifying a record")
    tab: str = Field(..., description="Console tab hosting the kind")
    delete_permission: str = Field(
        ..., description="Key required to trash, restore or purge"
    )
    edit_permission: Optional[str] = Field(
        None, description="Key required for bulk status changes"
    )
    status_field: Optional[str] = Field(
        None, description="Column changed by bulk status updates"
    )
    status_values: FrozenSet[str] = Field(
        default_factory=frozenset, description="Accepted status values"
    )
    blocks_on_trash: bool = Field(
        False, description="Trashing also blocks the account's login"
    )
    purge_action: Optional[str] = Field(
        None, description="Backend action that permanently deletes a record"
    )
    homepage_protected: bool = Field(
        False, description="The homepage and system pages cannot be deleted"
    )
    add_permission: Optional[str] = Field(
        None, description="Key required to create records"
    )
    required_fields: FrozenSet[str] = Field(
        default_factory=frozenset, description="Fields a new record must carry"
    )
    log_prefix: str = Field(..., description="Prefix of activity log action names")

    @property
    def supports_status_change(self) -> bool:
        return self.status_field is not None

    def trash_fields(self, now: datetime) -> Record:
        """Fields written when a record moves to the trash."""
        fields: Record = {"is_deleted": True, "deleted_at": now}
        if self.blocks_on_trash:
            fields["is_blocked"] = True
        return fields

    def restore_fields(self) -> Record:
        """Fields written when a record leaves the trash."""
        fields: Record = {"is_deleted": False, "deleted_at": None}
        if self.blocks_on_trash:
            fields["is_blocked"] = False
        return fields

    def status_fields(self, status: str) -> Record:
        """Fields written by a status change."""
        if self.status_field is None:
            raise ValueError(f"{self.kind.value} has no status to change")
        fields: Record = {self.status_field: status}
        if self.kind == EntityKind.BLOG_POST:
            fields["is_published"] = status == "published"
        return fields


# Built-in storefront pages, protected whatever their page_type.
SYSTEM_PAGE_SLUGS: FrozenSet[str] = frozenset(
    {"products", "blog", "single-product", "single-post", "order-tracking"}
)

DESCRIPTORS: Dict[EntityKind, EntityDescriptor] = {
    EntityKind.PRODUCT: EntityDescriptor(
        kind=EntityKind.PRODUCT,
        table="products",
        tab="products",
        delete_permission="product_delete",
        edit_permission="product_edit",
        status_field="stock_status",
        status_values=frozenset({"in_stock", "low_stock", "out_of_stock"}),
        add_permission="product_add",
        required_fields=frozenset({"title"}),
        log_prefix="product",
    ),
    EntityKind.BLOG_POST: EntityDescriptor(
        kind=EntityKind.BLOG_POST,
        table="blog_posts",
        tab="blog",
        delete_permission="blog_delete",
        edit_permission="blog_add",
        status_field="status",
        status_values=frozenset({"draft", "published", "unpublished"}),
        add_permission="blog_add",
        required_fields=frozenset({"title"}),
        log_prefix="blog",
    ),
    EntityKind.EMPLOYEE: EntityDescriptor(
        kind=EntityKind.EMPLOYEE,
        table="profiles",
        id_field="user_id",
        tab="employees",
        delete_permission="employees",
        edit_permission="employees",
        blocks_on_trash=True,
        purge_action="delete-user",
        add_permission="employees",
        required_fields=frozenset({"user_id"}),
        log_prefix="employee",
    ),
    EntityKind.PAGE: EntityDescriptor(
        kind=EntityKind.PAGE,
        table="pages",
        tab="pages",
        delete_permission="page_delete",
        edit_permission="page_edit",
        homepage_protected=True,
        add_permission="page_add",
        required_fields=frozenset({"title", "slug"}),
        log_prefix="page",
    ),
    EntityKind.ACTIVITY_LOG: EntityDescriptor(
        kind=EntityKind.ACTIVITY_LOG,
        table="activity_logs",
        tab="logs",
        delete_permission="logs",
        add_permission="logs",
        required_fields=frozenset({"user_id", "action"}),
        log_prefix="log",
    ),
}


def get_descriptor(kind: Union[EntityKind, str]) -> EntityDescriptor:
    """Look up the descriptor of an entity kind by enum or name."""
    try:
        return DESCRIPTORS[EntityKind(kind)]
    except ValueError:
        valid = ", ".join(k.value for k in EntityKind)
        raise ValueError(
            f"Unknown entity kind {kind!r}; expected one of: {valid}"
        ) from None


class LifecycleOutcome(BaseModel):
    """Result of a single lifecycle operation."""

    model_config = ConfigDict(use_enum_values=True)

    kind: EntityKind
    entity_id: str
    previous_state: TrashState
    state: TrashState
    changed: bool = Field(True, description="False when the call was a no-op")
    deleted_at: Optional[datetime] = None


class BulkFailure(BaseModel):
    """One id a bulk operation could not process."""

    entity_id: str
    error: str


class BulkResult(BaseModel):
    """Aggregate report of a bulk operation."""

    model_config = ConfigDict(use_enum_values=True)

    operation: str
    kind: EntityKind
    succeeded: List[str] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def partial(self) -> bool:
        """True when some, but not all, ids failed."""
        return bool(self.succeeded) and bool(self.failed)

    def add_success(self, entity_id: str) -> None:
        self.succeeded.append(entity_id)

    def add_failure(self, entity_id: str, error: Union[str, Exception]) -> None:
        self.failed.append(BulkFailure(entity_id=entity_id, error=str(error)))


class RetentionPolicy(BaseModel):
    """Retention window for one entity kind."""

    model_config = ConfigDict(use_enum_values=True)

    kind: EntityKind
    retention_days: int = Field(
        DEFAULT_RETENTION_DAYS, description="Days to keep trashed records", ge=1
    )

    def days_remaining(
        self, deleted_at: retention.Timestamp, now: Optional[datetime] = None
    ) -> int:
        return retention.days_remaining(deleted_at, self.retention_days, now)

    def expires_at(self, deleted_at: retention.Timestamp) -> datetime:
        return retention.expires_at(deleted_at, self.retention_days)

    def can_purge(
        self, deleted_at: Optional[retention.Timestamp], now: Optional[datetime] = None
    ) -> bool:
        """
        Check if a trashed record can be permanently purged.

        Args:
            deleted_at: When the record was trashed
            now: Reference time

        Returns:
            True once the retention window is used up
        """
        return retention.is_purge_eligible(deleted_at, self.retention_days, now)
