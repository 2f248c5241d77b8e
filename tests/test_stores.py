"""Tests for the in-memory and SQL entity stores."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import Column, Integer, String, create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker

from storefront_admin.access_control import Actor
from storefront_admin.lifecycle import (
    EntityKind,
    LifecycleService,
    StoreError,
    TrashableMixin,
)
from storefront_admin.store import InMemoryEntityStore, SQLEntityStore

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
ADMIN = Actor(id="admin-1", name="Ada Admin", role="admin")


@pytest.fixture
def memory_store():
    return InMemoryEntityStore()


@pytest.fixture
def sql_store():
    store = SQLEntityStore("sqlite:///:memory:")
    asyncio.run(store.initialize())
    return store


class TestInMemoryEntityStore:
    """Test the dict-backed store."""

    @pytest.mark.asyncio
    async def test_insert_defaults(self, memory_store):
        record = await memory_store.insert("products", {"title": "Cap"})

        assert record["id"]
        assert record["is_deleted"] is False
        assert record["deleted_at"] is None
        assert record["created_at"] is not None

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, memory_store):
        await memory_store.insert("products", {"id": "p1", "title": "Cap"})

        with pytest.raises(StoreError):
            await memory_store.insert("products", {"id": "p1", "title": "Hat"})

    @pytest.mark.asyncio
    async def test_records_are_copies(self, memory_store):
        await memory_store.insert("products", {"id": "p1", "title": "Cap"})

        record = await memory_store.get("products", "p1")
        record["title"] = "Changed"

        assert (await memory_store.get("products", "p1"))["title"] == "Cap"

    @pytest.mark.asyncio
    async def test_list_filters(self, memory_store):
        await memory_store.insert("products", {"id": "p1", "title": "A"})
        await memory_store.insert("products", {"id": "p2", "title": "B", "is_deleted": True,
                                               "deleted_at": NOW})

        trashed = await memory_store.list("products", {"is_deleted": True})

        assert [r["id"] for r in trashed] == ["p2"]

    @pytest.mark.asyncio
    async def test_conditional_update(self, memory_store):
        await memory_store.insert("products", {"id": "p1", "title": "A"})

        assert not await memory_store.update(
            "products", "p1", {"title": "B"}, expected={"is_deleted": True}
        )
        assert await memory_store.update(
            "products", "p1", {"title": "B"}, expected={"is_deleted": False}
        )
        assert (await memory_store.get("products", "p1"))["title"] == "B"

    @pytest.mark.asyncio
    async def test_remove_where_older_than(self, memory_store):
        await memory_store.insert("activity_logs", {"id": "a", "created_at": NOW - timedelta(days=9)})
        await memory_store.insert("activity_logs", {"id": "b", "created_at": "2026-03-14T00:00:00Z"})

        removed = await memory_store.remove_where(
            "activity_logs", older_than=("created_at", NOW - timedelta(days=5))
        )

        assert removed == 1
        assert [r["id"] for r in await memory_store.list("activity_logs")] == ["b"]

    @pytest.mark.asyncio
    async def test_unknown_action(self, memory_store):
        result = await memory_store.invoke_action("reindex", {})

        assert "error" in result

    @pytest.mark.asyncio
    async def test_delete_user_requires_id(self, memory_store):
        result = await memory_store.invoke_action("delete-user", {})

        assert result["error"] == "user_id is required"

    @pytest.mark.asyncio
    async def test_async_action_handler(self, memory_store):
        async def handler(store, payload):
            return {"success": True, "echo": payload["value"]}

        memory_store.register_action("echo", handler)

        assert await memory_store.invoke_action("echo", {"value": 3}) == {
            "success": True,
            "echo": 3,
        }

    @pytest.mark.asyncio
    async def test_settings(self, memory_store):
        assert await memory_store.get_setting("homepage_slug") is None

        await memory_store.set_setting("homepage_slug", "landing")

        assert await memory_store.get_setting("homepage_slug") == "landing"


@pytest.mark.sql
class TestSQLEntityStore:
    """Test the SQLAlchemy store against in-memory SQLite."""

    @pytest.mark.asyncio
    async def test_uninitialized_store(self):
        store = SQLEntityStore("sqlite:///:memory:")

        with pytest.raises(RuntimeError, match="not initialized"):
            await store.list("products")

    @pytest.mark.asyncio
    async def test_insert_and_get(self, sql_store):
        record = await sql_store.insert("products", {"title": "Cap", "regular_price": 12.5})

        fetched = await sql_store.get("products", record["id"])
        assert fetched["title"] == "Cap"
        assert fetched["is_deleted"] is False
        assert fetched["deleted_at"] is None

    @pytest.mark.asyncio
    async def test_unknown_table(self, sql_store):
        with pytest.raises(StoreError, match="Unknown table"):
            await sql_store.list("widgets")

    @pytest.mark.asyncio
    async def test_unknown_column(self, sql_store):
        with pytest.raises(StoreError, match="Unknown column"):
            await sql_store.list("products", {"colour": "red"})

    @pytest.mark.asyncio
    async def test_deletion_consistency_constraint(self, sql_store):
        with pytest.raises(StoreError):
            await sql_store.insert("products", {"title": "Cap", "is_deleted": True})

    @pytest.mark.asyncio
    async def test_conditional_update(self, sql_store):
        record = await sql_store.insert("products", {"title": "Cap"})

        assert not await sql_store.update(
            "products", record["id"], {"title": "Hat"}, expected={"is_deleted": True}
        )
        assert await sql_store.update(
            "products", record["id"], {"title": "Hat"}, expected={"is_deleted": False}
        )

    @pytest.mark.asyncio
    async def test_trashed_listing_newest_first(self, sql_store):
        await sql_store.insert(
            "products",
            {"id": "old", "title": "Old", "is_deleted": True,
             "deleted_at": NOW - timedelta(days=3)},
        )
        await sql_store.insert(
            "products",
            {"id": "new", "title": "New", "is_deleted": True,
             "deleted_at": NOW - timedelta(days=1)},
        )
        await sql_store.insert("products", {"id": "live", "title": "Live"})

        trashed = await sql_store.list("products", {"is_deleted": True})
        active = await sql_store.list("products", {"is_deleted": False})

        assert [r["id"] for r in trashed] == ["new", "old"]
        assert [r["id"] for r in active] == ["live"]
        assert set(trashed[0]) >= {"id", "title", "is_deleted", "deleted_at"}

    @pytest.mark.asyncio
    async def test_trashed_listing_with_extra_filter(self, sql_store):
        await sql_store.insert(
            "pages",
            {"id": "a", "title": "A", "slug": "about", "is_deleted": True,
             "deleted_at": NOW},
        )
        await sql_store.insert(
            "pages",
            {"id": "b", "title": "B", "slug": "faq", "is_deleted": True,
             "deleted_at": NOW},
        )

        trashed = await sql_store.list("pages", {"is_deleted": True, "slug": "faq"})

        assert [r["id"] for r in trashed] == ["b"]

    @pytest.mark.asyncio
    async def test_role_permissions_unique_per_role(self, sql_store):
        await sql_store.insert(
            "role_permissions",
            {"role": "sales_manager", "permission": "product_view", "enabled": True},
        )

        with pytest.raises(StoreError):
            await sql_store.insert(
                "role_permissions",
                {"role": "sales_manager", "permission": "product_view", "enabled": False},
            )

    @pytest.mark.asyncio
    async def test_settings_round_trip(self, sql_store):
        await sql_store.set_setting("log_retention_days", 14)
        await sql_store.set_setting("log_retention_days", 21)

        assert await sql_store.get_setting("log_retention_days") == 21
        assert await sql_store.get_setting("missing") is None

    @pytest.mark.asyncio
    async def test_delete_user_action(self, sql_store):
        await sql_store.insert("profiles", {"user_id": "emp-1", "full_name": "Eve"})
        await sql_store.insert("user_roles", {"user_id": "emp-1", "role": "sales_manager"})

        result = await sql_store.invoke_action("delete-user", {"user_id": "emp-1"})

        assert result["success"] is True
        assert await sql_store.list("profiles") == []
        assert await sql_store.list("user_roles") == []

    @pytest.mark.asyncio
    async def test_delete_user_action_unknown_user(self, sql_store):
        result = await sql_store.invoke_action("delete-user", {"user_id": "ghost"})

        assert "error" in result

    @pytest.mark.asyncio
    async def test_lifecycle_against_sql(self, sql_store):
        service = LifecycleService(sql_store, clock=lambda: NOW)
        created = await service.create("product", {"title": "Cap"}, ADMIN)

        await service.soft_delete(EntityKind.PRODUCT, created["id"], ADMIN)
        trashed = await service.list_trashed(EntityKind.PRODUCT, now=NOW + timedelta(days=4))

        assert [r["id"] for r in trashed] == [created["id"]]
        assert trashed[0]["days_remaining"] == 26

        await service.permanent_delete(EntityKind.PRODUCT, created["id"], ADMIN)
        assert await sql_store.get("products", created["id"]) is None

        actions = [r["action"] for r in await sql_store.list("activity_logs")]
        assert actions == ["product_create", "product_trash", "product_delete"]

    @pytest.mark.asyncio
    async def test_employee_lifecycle_against_sql(self, sql_store):
        service = LifecycleService(sql_store, clock=lambda: NOW)
        await sql_store.insert("profiles", {"user_id": "emp-1", "full_name": "Eve"})
        await sql_store.insert("user_roles", {"user_id": "emp-1", "role": "sales_manager"})

        await service.soft_delete(EntityKind.EMPLOYEE, "emp-1", ADMIN)
        profile = await sql_store.get("profiles", "emp-1", id_field="user_id")
        assert profile["is_blocked"] is True

        await service.permanent_delete(EntityKind.EMPLOYEE, "emp-1", ADMIN)
        assert await sql_store.get("profiles", "emp-1", id_field="user_id") is None
        assert await sql_store.list("user_roles") == []

    @pytest.mark.asyncio
    async def test_set_log_retention_against_sql(self, sql_store):
        service = LifecycleService(sql_store, clock=lambda: NOW)
        await sql_store.insert(
            "activity_logs",
            {"user_id": "u", "action": "x", "created_at": NOW - timedelta(days=40)},
        )
        await sql_store.insert(
            "activity_logs",
            {"user_id": "u", "action": "y", "created_at": NOW - timedelta(days=1)},
        )

        removed = await service.set_log_retention(30, ADMIN)

        assert removed == 1
        assert await service.retention_days(EntityKind.ACTIVITY_LOG) == 30
        assert [r["action"] for r in await sql_store.list("activity_logs")] == ["y"]


Base = declarative_base()


class Coupon(TrashableMixin, Base):
    """Model using the trash mixin outside the bundled tables."""

    __tablename__ = "coupons"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True)
    code = Column(String(20))


class TestTrashableMixin:
    """Test the SQLAlchemy mixin on a standalone model."""

    @pytest.fixture
    def session(self):
        engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(engine)
        session = sessionmaker(bind=engine)()
        yield session
        session.close()

    def test_select_helpers(self, session):
        session.add_all(
            [
                Coupon(code="A"),
                Coupon(code="B", is_deleted=True, deleted_at=NOW - timedelta(days=2)),
                Coupon(code="C", is_deleted=True, deleted_at=NOW - timedelta(days=1)),
            ]
        )
        session.commit()

        active = session.scalars(Coupon.select_active()).all()
        trashed = session.scalars(Coupon.select_trashed()).all()

        assert [c.code for c in active] == ["A"]
        assert [c.code for c in trashed] == ["C", "B"]

    def test_constraint_enforced(self, session):
        session.add(Coupon(code="BAD", is_deleted=True))

        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()
