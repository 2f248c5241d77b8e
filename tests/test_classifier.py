"""Tests for the trash classifier."""

from datetime import datetime, timedelta, timezone

from storefront_admin.lifecycle import (
    TrashState,
    is_trashed,
    newest_deleted_first,
    partition,
    state_of,
)

NOW = datetime(2026, 3, 15, tzinfo=timezone.utc)


def make_records():
    return [
        {"id": "a", "is_deleted": False, "deleted_at": None},
        {"id": "b", "is_deleted": True, "deleted_at": NOW - timedelta(days=3)},
        {"id": "c", "is_deleted": False, "deleted_at": None},
        {"id": "d", "is_deleted": True, "deleted_at": NOW - timedelta(days=1)},
        {"id": "e"},
    ]


class TestPartition:
    """Test splitting collections on the deletion flag."""

    def test_disjoint_and_exhaustive(self):
        records = make_records()
        result = partition(records)

        active_ids = {r["id"] for r in result.active}
        trashed_ids = {r["id"] for r in result.trashed}

        assert active_ids.isdisjoint(trashed_ids)
        assert active_ids | trashed_ids == {r["id"] for r in records}
        assert result.total == len(records)

    def test_preserves_input_order(self):
        result = partition(make_records())

        assert [r["id"] for r in result.active] == ["a", "c", "e"]
        assert [r["id"] for r in result.trashed] == ["b", "d"]

    def test_counts(self):
        result = partition(make_records())

        assert result.active_count == 3
        assert result.trash_count == 2

    def test_empty_collection(self):
        result = partition([])

        assert result.active == []
        assert result.trashed == []
        assert result.total == 0

    def test_missing_flag_is_active(self):
        assert not is_trashed({"id": "x"})
        assert state_of({"id": "x"}) == TrashState.ACTIVE
        assert state_of({"id": "x", "is_deleted": True}) == TrashState.TRASHED


class TestOrdering:
    """Test trash view ordering."""

    def test_newest_deleted_first(self):
        trashed = partition(make_records()).trashed

        assert [r["id"] for r in newest_deleted_first(trashed)] == ["d", "b"]

    def test_string_timestamps_and_missing_last(self):
        records = [
            {"id": "old", "deleted_at": "2026-01-01T00:00:00Z"},
            {"id": "none", "deleted_at": None},
            {"id": "new", "deleted_at": "2026-02-01T00:00:00+00:00"},
        ]

        assert [r["id"] for r in newest_deleted_first(records)] == ["new", "old", "none"]
