"""
Service layer for trash lifecycle operations.

Provides soft delete, restore, permanent delete and their bulk variants for
every trashable entity kind, guarded by the permission gate and the record
protection rules, plus retention reporting and the retention sweep.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from ..access_control import Actor, PermissionGate, Role
from ..activity import ActivityLogger
from ..config import AdminConfig, get_config
from ..store.base import EntityStore, Record, SettingsStore
from .classifier import Partition, is_trashed, newest_deleted_first, partition, state_of
from .exceptions import (
    LifecycleError,
    NotTrashedError,
    ProtectedRecordError,
    RecordNotFoundError,
    RecordValidationError,
    StoreError,
)
from .models import (
    SYSTEM_PAGE_SLUGS,
    BulkResult,
    EntityDescriptor,
    EntityKind,
    LifecycleOutcome,
    RetentionPolicy,
    TrashState,
    get_descriptor,
)
from .retention import coerce_retention_days, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

KindLike = Union[EntityKind, str]

SYSTEM_ACTOR = Actor(id="system", name="Retention sweep", role=Role.ADMIN.value)


class LifecycleService:
    """
    Service for moving records through the trash.

    States are Active → Trashed → Gone, with Trashed → Active on restore.
    Every operation checks the permission gate first, then record
    protection, and only then touches the store. Nothing is retried.
    """

    def __init__(
        self,
        store: EntityStore,
        gate: Optional[PermissionGate] = None,
        settings: Optional[SettingsStore] = None,
        activity: Optional[ActivityLogger] = None,
        config: Optional[AdminConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the lifecycle service.

        Args:
            store: Entity store holding the records
            gate: Permission gate; the default role table when omitted
            settings: Site settings store; the entity store is used when it
                also serves settings
            activity: Activity log writer; one over ``store`` when omitted
            config: Console configuration; the global one when omitted
            clock: Returns the current UTC time
        """
        self.store = store
        self.gate = gate or PermissionGate()
        if settings is None and hasattr(store, "get_setting"):
            settings = store  # type: ignore[assignment]
        self.settings = settings
        self.activity = activity or ActivityLogger(store)
        self.config = config or get_config()
        self.clock = clock or utcnow

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def _setting(self, key: str) -> Any:
        if self.settings is None:
            return None
        return await self.settings.get_setting(key)

    async def retention_days(self, kind: KindLike) -> int:
        """Retention window of ``kind``; activity logs read it from site settings."""
        descriptor = get_descriptor(kind)
        default = self.config.default_retention_days
        if descriptor.kind != EntityKind.ACTIVITY_LOG:
            return default
        value = await self._setting(self.config.log_retention_setting_key)
        return coerce_retention_days(value, default)

    async def retention_policy(self, kind: KindLike) -> RetentionPolicy:
        descriptor = get_descriptor(kind)
        return RetentionPolicy(
            kind=descriptor.kind, retention_days=await self.retention_days(kind)
        )

    async def homepage_slug(self) -> str:
        value = await self._setting(self.config.homepage_setting_key)
        if isinstance(value, str) and value.strip():
            return value.strip().strip("/")
        return self.config.default_homepage_slug

    async def set_log_retention(self, days: int, actor: Actor) -> int:
        """
        Store a new activity log retention window and drop older entries.

        Args:
            days: Window in days, at least 1
            actor: Who changes the setting

        Returns:
            Number of activity log entries removed

        Raises:
            RecordValidationError: ``days`` is not a whole number of at least 1
            PermissionDeniedError: Actor may not manage logs
        """
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise RecordValidationError("Enter a valid number of days (minimum 1)")

        descriptor = get_descriptor(EntityKind.ACTIVITY_LOG)
        self.gate.require(actor, descriptor.delete_permission)

        if self.settings is None:
            raise StoreError("No settings store configured")

        await self.settings.set_setting(self.config.log_retention_setting_key, days)
        cutoff = self.clock() - timedelta(days=days)
        removed = await self._call(
            None,
            self.store.remove_where(descriptor.table, older_than=("created_at", cutoff)),
        )

        logger.info(
            "Log retention set to %d days by %s; %d old entries removed",
            days,
            actor.id,
            removed,
        )
        return int(removed)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_records(
        self,
        kind: KindLike,
        actor: Optional[Actor] = None,
        trashed: Optional[bool] = None,
    ) -> List[Record]:
        """
        List records of ``kind``.

        Args:
            kind: Entity kind
            actor: When given, must be allowed to open the kind's tab
            trashed: True for the trash, False for active records, None for all
        """
        descriptor = get_descriptor(kind)
        if actor is not None:
            self.gate.require(actor, descriptor.tab)

        filters = None if trashed is None else {"is_deleted": trashed}
        return await self._call(None, self.store.list(descriptor.table, filters))

    async def partition(self, kind: KindLike, actor: Optional[Actor] = None) -> Partition:
        """Read every record of ``kind`` and split it into active and trashed."""
        return partition(await self.list_records(kind, actor))

    async def list_trashed(
        self,
        kind: KindLike,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Trashed records, newest deletion first, each with ``days_remaining``.
        """
        policy = await self.retention_policy(kind)
        current = now or self.clock()
        records = newest_deleted_first(await self.list_records(kind, actor, trashed=True))

        view = []
        for record in records:
            item = dict(record)
            deleted_at = record.get("deleted_at")
            item["days_remaining"] = (
                policy.days_remaining(deleted_at, current)
                if deleted_at is not None
                else policy.retention_days
            )
            view.append(item)
        return view

    async def days_remaining(
        self, kind: KindLike, record: Mapping[str, Any], now: Optional[datetime] = None
    ) -> Optional[int]:
        """Days left before ``record`` may be purged; None for active records."""
        if not is_trashed(record) or record.get("deleted_at") is None:
            return None
        policy = await self.retention_policy(kind)
        return policy.days_remaining(record["deleted_at"], now or self.clock())

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _call(self, entity_id: Optional[str], awaitable: Awaitable[Any]) -> Any:
        """Await a store call, reporting any backend failure as ``StoreError``."""
        try:
            return await awaitable
        except LifecycleError:
            raise
        except Exception as e:
            logger.error(f"Store call failed for {entity_id or 'collection'}: {e}")
            raise StoreError(str(e), entity_id=entity_id) from e

    async def _load(self, descriptor: EntityDescriptor, entity_id: str) -> Record:
        record = await self._call(
            entity_id,
            self.store.get(descriptor.table, entity_id, descriptor.id_field),
        )
        if record is None:
            raise RecordNotFoundError(descriptor.kind.value, entity_id)
        return record

    async def _check_protected(
        self, descriptor: EntityDescriptor, record: Mapping[str, Any], actor: Actor
    ) -> None:
        """Reject deletion of records the console must keep."""
        entity_id = str(record.get(descriptor.id_field))

        if descriptor.homepage_protected:
            if record.get("slug") == await self.homepage_slug():
                logger.warning("Refused to delete homepage %s", entity_id)
                raise ProtectedRecordError(
                    entity_id,
                    "Cannot delete the homepage. Set another page as homepage first.",
                )
            if (
                record.get("page_type") == "system"
                or record.get("slug") in SYSTEM_PAGE_SLUGS
            ):
                logger.warning("Refused to delete system page %s", entity_id)
                raise ProtectedRecordError(
                    entity_id, "This is a default page and cannot be deleted."
                )

        if descriptor.kind == EntityKind.EMPLOYEE and entity_id == actor.id:
            logger.warning("Refused self deletion by %s", actor.id)
            raise ProtectedRecordError(entity_id, "Cannot delete your own account")

    async def _log(
        self,
        actor: Actor,
        descriptor: EntityDescriptor,
        verb: str,
        entity_id: str,
        details: str,
    ) -> None:
        # Activity logs don't log their own housekeeping
        if descriptor.kind == EntityKind.ACTIVITY_LOG:
            return
        await self.activity.log(
            actor,
            f"{descriptor.log_prefix}_{verb}",
            descriptor.kind.value,
            entity_id,
            details,
        )

    # ------------------------------------------------------------------
    # Single record transitions (no permission check, no activity log)
    # ------------------------------------------------------------------

    async def _trash_one(
        self, descriptor: EntityDescriptor, entity_id: str, actor: Actor
    ) -> LifecycleOutcome:
        record = await self._load(descriptor, entity_id)
        await self._check_protected(descriptor, record, actor)

        if is_trashed(record):
            return LifecycleOutcome(
                kind=descriptor.kind,
                entity_id=entity_id,
                previous_state=TrashState.TRASHED,
                state=TrashState.TRASHED,
                changed=False,
                deleted_at=parse_timestamp(record.get("deleted_at")),
            )

        now = self.clock()
        updated = await self._call(
            entity_id,
            self.store.update(
                descriptor.table,
                entity_id,
                descriptor.trash_fields(now),
                id_field=descriptor.id_field,
                expected={"is_deleted": False},
            ),
        )
        if not updated:
            return await self._settle(descriptor, entity_id, TrashState.TRASHED)

        return LifecycleOutcome(
            kind=descriptor.kind,
            entity_id=entity_id,
            previous_state=TrashState.ACTIVE,
            state=TrashState.TRASHED,
            deleted_at=now,
        )

    async def _restore_one(
        self, descriptor: EntityDescriptor, entity_id: str
    ) -> LifecycleOutcome:
        record = await self._load(descriptor, entity_id)

        if not is_trashed(record):
            return LifecycleOutcome(
                kind=descriptor.kind,
                entity_id=entity_id,
                previous_state=TrashState.ACTIVE,
                state=TrashState.ACTIVE,
                changed=False,
            )

        updated = await self._call(
            entity_id,
            self.store.update(
                descriptor.table,
                entity_id,
                descriptor.restore_fields(),
                id_field=descriptor.id_field,
                expected={"is_deleted": True},
            ),
        )
        if not updated:
            return await self._settle(descriptor, entity_id, TrashState.ACTIVE)

        return LifecycleOutcome(
            kind=descriptor.kind,
            entity_id=entity_id,
            previous_state=TrashState.TRASHED,
            state=TrashState.ACTIVE,
        )

    async def _purge_one(
        self, descriptor: EntityDescriptor, entity_id: str, actor: Actor
    ) -> LifecycleOutcome:
        record = await self._load(descriptor, entity_id)
        await self._check_protected(descriptor, record, actor)

        if not is_trashed(record):
            raise NotTrashedError(entity_id)

        if descriptor.purge_action:
            result = await self._call(
                entity_id,
                self.store.invoke_action(
                    descriptor.purge_action, {descriptor.id_field: entity_id}
                ),
            )
            if not result or result.get("error"):
                raise StoreError.from_action_result(
                    descriptor.purge_action, result or {}, entity_id=entity_id
                )
        else:
            removed = await self._call(
                entity_id,
                self.store.remove(descriptor.table, entity_id, descriptor.id_field),
            )
            if not removed:
                raise RecordNotFoundError(descriptor.kind.value, entity_id)

        return LifecycleOutcome(
            kind=descriptor.kind,
            entity_id=entity_id,
            previous_state=TrashState.TRASHED,
            state=TrashState.GONE,
        )

    async def _settle(
        self, descriptor: EntityDescriptor, entity_id: str, target: TrashState
    ) -> LifecycleOutcome:
        """Resolve a conditional update that matched no row."""
        record = await self._call(
            entity_id,
            self.store.get(descriptor.table, entity_id, descriptor.id_field),
        )
        if record is None:
            raise RecordNotFoundError(descriptor.kind.value, entity_id)

        state = state_of(record)
        if state != target:
            raise StoreError(
                f"Update of {descriptor.kind.value} {entity_id} was not applied",
                entity_id=entity_id,
            )

        # Another writer made the same transition first
        return LifecycleOutcome(
            kind=descriptor.kind,
            entity_id=entity_id,
            previous_state=state,
            state=state,
            changed=False,
            deleted_at=parse_timestamp(record.get("deleted_at")),
        )

    # ------------------------------------------------------------------
    # Public single record operations
    # ------------------------------------------------------------------

    async def create(
        self, kind: KindLike, fields: Mapping[str, Any], actor: Actor
    ) -> Record:
        """
        Create an active record.

        Raises:
            RecordValidationError: A required field is missing or blank
            PermissionDeniedError: Actor may not add records of this kind
        """
        descriptor = get_descriptor(kind)
        missing = sorted(
            name
            for name in descriptor.required_fields
            if fields.get(name) is None or str(fields.get(name)).strip() == ""
        )
        if missing:
            raise RecordValidationError(
                f"Missing required field(s) for {descriptor.kind.value}: "
                f"{', '.join(missing)}"
            )
        if descriptor.add_permission:
            self.gate.require(actor, descriptor.add_permission)

        values = dict(fields)
        values["is_deleted"] = False
        values["deleted_at"] = None

        record = await self._call(None, self.store.insert(descriptor.table, values))
        await self._log(
            actor,
            descriptor,
            "create",
            str(record.get(descriptor.id_field, "")),
            f"Created {descriptor.kind.value}",
        )
        return record

    async def soft_delete(
        self, kind: KindLike, entity_id: str, actor: Actor
    ) -> LifecycleOutcome:
        """
        Move a record to the trash.

        Trashing an employee also blocks their login. Calling this on a
        record already in the trash changes nothing.

        Args:
            kind: Entity kind
            entity_id: Record id
            actor: Who performs the deletion

        Returns:
            Outcome of the transition

        Raises:
            PermissionDeniedError: Actor lacks the delete permission
            ProtectedRecordError: Record is the homepage, a system page or
                the actor's own account
            RecordNotFoundError: No such record
            StoreError: The store rejected the update
        """
        descriptor = get_descriptor(kind)
        self.gate.require(actor, descriptor.delete_permission)

        outcome = await self._trash_one(descriptor, entity_id, actor)
        if outcome.changed:
            await self._log(
                actor,
                descriptor,
                "trash",
                entity_id,
                f"{descriptor.kind.value} moved to trash",
            )
        return outcome

    async def restore(
        self, kind: KindLike, entity_id: str, actor: Actor
    ) -> LifecycleOutcome:
        """
        Take a record out of the trash.

        Restoring an employee also unblocks their login. Calling this on an
        active record changes nothing.
        """
        descriptor = get_descriptor(kind)
        self.gate.require(actor, descriptor.delete_permission)

        outcome = await self._restore_one(descriptor, entity_id)
        if outcome.changed:
            await self._log(
                actor,
                descriptor,
                "restore",
                entity_id,
                f"{descriptor.kind.value} restored from trash",
            )
        return outcome

    async def permanent_delete(
        self, kind: KindLike, entity_id: str, actor: Actor
    ) -> LifecycleOutcome:
        """
        Irrecoverably remove a trashed record.

        Employees are removed through the ``delete-user`` backend action,
        which also cleans up the account's related rows.

        Raises:
            PermissionDeniedError: Actor lacks the delete permission
            ProtectedRecordError: Record is protected
            NotTrashedError: Record is still active
            StoreError: The store or backend action failed; nothing is retried
        """
        descriptor = get_descriptor(kind)
        self.gate.require(actor, descriptor.delete_permission)

        outcome = await self._purge_one(descriptor, entity_id, actor)
        await self._log(
            actor,
            descriptor,
            "delete",
            entity_id,
            f"{descriptor.kind.value} permanently deleted",
        )
        return outcome

    async def change_status(
        self, kind: KindLike, entity_id: str, status: str, actor: Actor
    ) -> LifecycleOutcome:
        """Set the status column of one record (products and blog posts)."""
        descriptor = self._status_descriptor(kind, status)
        self.gate.require(actor, descriptor.edit_permission or descriptor.tab)

        outcome = await self._status_one(descriptor, entity_id, status)
        await self._log(
            actor,
            descriptor,
            "status_change",
            entity_id,
            f"{descriptor.kind.value} status changed to {status}",
        )
        return outcome

    def _status_descriptor(self, kind: KindLike, status: str) -> EntityDescriptor:
        descriptor = get_descriptor(kind)
        if not descriptor.supports_status_change:
            raise RecordValidationError(
                f"{descriptor.kind.value} records have no status to change"
            )
        if status not in descriptor.status_values:
            raise RecordValidationError(
                f"Invalid {descriptor.kind.value} status {status!r}; expected one of: "
                f"{', '.join(sorted(descriptor.status_values))}"
            )
        return descriptor

    async def _status_one(
        self, descriptor: EntityDescriptor, entity_id: str, status: str
    ) -> LifecycleOutcome:
        updated = await self._call(
            entity_id,
            self.store.update(
                descriptor.table,
                entity_id,
                descriptor.status_fields(status),
                id_field=descriptor.id_field,
            ),
        )
        if not updated:
            raise RecordNotFoundError(descriptor.kind.value, entity_id)

        return LifecycleOutcome(
            kind=descriptor.kind,
            entity_id=entity_id,
            previous_state=TrashState.ACTIVE,
            state=TrashState.ACTIVE,
        )

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def _bulk(
        self,
        operation: str,
        descriptor: EntityDescriptor,
        entity_ids: Iterable[str],
        step: Callable[[str], Awaitable[LifecycleOutcome]],
    ) -> BulkResult:
        """
        Apply ``step`` to each id in turn.

        A failing id is recorded and logged; the remaining ids are still
        processed.
        """
        result = BulkResult(operation=operation, kind=descriptor.kind)

        for entity_id in dict.fromkeys(entity_ids):
            try:
                await step(entity_id)
            except LifecycleError as e:
                logger.warning(
                    "%s failed for %s %s: %s",
                    operation,
                    descriptor.kind.value,
                    entity_id,
                    e,
                )
                result.add_failure(entity_id, e)
            else:
                result.add_success(entity_id)

        if result.failed:
            logger.error(
                "%s on %s: %d succeeded, %d failed (%s)",
                operation,
                descriptor.kind.value,
                result.success_count,
                result.failure_count,
                ", ".join(f.entity_id for f in result.failed),
            )
        else:
            logger.info(
                "%s on %s: %d succeeded",
                operation,
                descriptor.kind.value,
                result.success_count,
            )
        return result

    async def _log_bulk(
        self, actor: Actor, descriptor: EntityDescriptor, verb: str, result: BulkResult
    ) -> None:
        if result.succeeded:
            await self._log(
                actor,
                descriptor,
                f"bulk_{verb}",
                "",
                f"{result.success_count} {descriptor.kind.value}(s): {verb}",
            )

    async def bulk_soft_delete(
        self, kind: KindLike, entity_ids: Iterable[str], actor: Actor
    ) -> BulkResult:
        """Move every listed record to the trash."""
        descriptor = get_descriptor(kind)
        self.gate.require(actor, descriptor.delete_permission)

        result = await self._bulk(
            "bulk_soft_delete",
            descriptor,
            entity_ids,
            lambda entity_id: self._trash_one(descriptor, entity_id, actor),
        )
        await self._log_bulk(actor, descriptor, "trash", result)
        return result

    async def bulk_restore(
        self, kind: KindLike, entity_ids: Iterable[str], actor: Actor
    ) -> BulkResult:
        """Take every listed record out of the trash."""
        descriptor = get_descriptor(kind)
        self.gate.require(actor, descriptor.delete_permission)

        result = await self._bulk(
            "bulk_restore",
            descriptor,
            entity_ids,
            lambda entity_id: self._restore_one(descriptor, entity_id),
        )
        await self._log_bulk(actor, descriptor, "restore", result)
        return result

    async def bulk_permanent_delete(
        self, kind: KindLike, entity_ids: Iterable[str], actor: Actor
    ) -> BulkResult:
        """Permanently remove every listed trashed record."""
        descriptor = get_descriptor(kind)
        self.gate.require(actor, descriptor.delete_permission)

        result = await self._bulk(
            "bulk_permanent_delete",
            descriptor,
            entity_ids,
            lambda entity_id: self._purge_one(descriptor, entity_id, actor),
        )
        await self._log_bulk(actor, descriptor, "delete", result)
        return result

    async def bulk_status_change(
        self, kind: KindLike, entity_ids: Iterable[str], status: str, actor: Actor
    ) -> BulkResult:
        """
        Set the status of every listed record.

        Only products (stock status) and blog posts (publication status)
        have a status. The status value is validated before any store call.
        """
        descriptor = self._status_descriptor(kind, status)
        self.gate.require(actor, descriptor.edit_permission or descriptor.tab)

        result = await self._bulk(
            "bulk_status_change",
            descriptor,
            entity_ids,
            lambda entity_id: self._status_one(descriptor, entity_id, status),
        )
        await self._log_bulk(actor, descriptor, "status", result)
        return result

    # ------------------------------------------------------------------
    # Trash housekeeping
    # ------------------------------------------------------------------

    async def empty_trash(self, kind: KindLike, actor: Actor) -> BulkResult:
        """Permanently remove every trashed record of ``kind``."""
        descriptor = get_descriptor(kind)
        self.gate.require(actor, descriptor.delete_permission)

        trashed = await self.list_records(kind, trashed=True)
        result = await self._bulk(
            "empty_trash",
            descriptor,
            [str(r[descriptor.id_field]) for r in trashed],
            lambda entity_id: self._purge_one(descriptor, entity_id, actor),
        )
        await self._log_bulk(actor, descriptor, "delete", result)
        return result

    async def purge_expired(
        self,
        kind: KindLike,
        actor: Actor = SYSTEM_ACTOR,
        now: Optional[datetime] = None,
    ) -> BulkResult:
        """
        Retention sweep: permanently remove trashed records with no days left.

        Listing never purges; run this from a scheduler or the CLI.
        """
        descriptor = get_descriptor(kind)
        self.gate.require(actor, descriptor.delete_permission)

        policy = await self.retention_policy(kind)
        current = now or self.clock()
        trashed = await self.list_records(kind, trashed=True)
        expired = [
            str(r[descriptor.id_field])
            for r in trashed
            if policy.can_purge(r.get("deleted_at"), current)
        ]

        result = await self._bulk(
            "purge_expired",
            descriptor,
            expired,
            lambda entity_id: self._purge_one(descriptor, entity_id, actor),
        )
        await self._log_bulk(actor, descriptor, "purge", result)
        return result

    async def clear_logs(self, actor: Actor) -> int:
        """Permanently remove every activity log entry, trashed or not."""
        descriptor = get_descriptor(EntityKind.ACTIVITY_LOG)
        self.gate.require(actor, descriptor.delete_permission)

        removed = await self._call(None, self.store.remove_where(descriptor.table))
        logger.info("Activity logs cleared by %s: %d removed", actor.id, removed)
        return int(removed)
