"""Partition entity collections into active and trashed records."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping

from .models import TrashState
from .retention import parse_timestamp

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def is_trashed(record: Mapping[str, Any]) -> bool:
    """True when the record's deletion flag is set."""
    return bool(record.get("is_deleted", False))


def state_of(record: Mapping[str, Any]) -> TrashState:
    return TrashState.TRASHED if is_trashed(record) else TrashState.ACTIVE


@dataclass
class Partition:
    """Active and trashed subsets of one collection, input order preserved."""

    active: List[Mapping[str, Any]] = field(default_factory=list)
    trashed: List[Mapping[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.active) + len(self.trashed)

    @property
    def active_count(self) -> int:
        return len(self.active)

    @property
    def trash_count(self) -> int:
        return len(self.trashed)


def partition(records: Iterable[Mapping[str, Any]]) -> Partition:
    """
    Split ``records`` on their deletion flag.

    Every record lands in exactly one subset; ordering within each subset
    follows the input.
    """
    result = Partition()
    for record in records:
        if is_trashed(record):
            result.trashed.append(record)
        else:
            result.active.append(record)
    return result


def newest_deleted_first(records: Iterable[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    """Sort trashed records by ``deleted_at`` descending; missing timestamps last."""
    return sorted(
        records,
        key=lambda r: parse_timestamp(r.get("deleted_at")) or _EPOCH,
        reverse=True,
    )
