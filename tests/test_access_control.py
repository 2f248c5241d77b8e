"""Tests for the role permission table and gate."""

import pytest

from storefront_admin.access_control import (
    ACTION_GROUPS,
    ADMIN_ONLY_TABS,
    ALL_ACTIONS,
    ALL_TABS,
    Actor,
    PermissionDeniedError,
    PermissionGate,
    PermissionTable,
    Role,
    has_permission,
    load_permission_table,
    resolve_role,
    set_role_permission,
)
from storefront_admin.store import InMemoryEntityStore


class TestHasPermission:
    """Test role/tab lookups against the default table."""

    def test_user_cannot_open_products(self):
        assert has_permission("user", "products") is False

    def test_admin_can_open_logs(self):
        assert has_permission("admin", "logs") is True

    def test_unknown_role_denied(self):
        assert has_permission("unknown_role", "dashboard") is False

    def test_unknown_tab_denied(self):
        assert has_permission("admin", "no_such_tab") is False

    def test_sales_manager_tabs(self):
        assert has_permission("sales_manager", "products")
        assert has_permission("sales_manager", "revenue")
        assert not has_permission("sales_manager", "blog")
        assert not has_permission("sales_manager", "employees")

    def test_marketing_manager_tabs(self):
        assert has_permission("marketing_manager", "blog")
        assert has_permission("marketing_manager", "coupons")
        assert not has_permission("marketing_manager", "orders")

    def test_admin_only_tabs(self):
        """Only admin opens employees and permissions."""
        for tab in ADMIN_ONLY_TABS:
            assert has_permission("admin", tab)
            for role in Role:
                if role != Role.ADMIN:
                    assert not has_permission(role.value, tab)


class TestPermissionTable:
    """Test building and loading permission tables."""

    def test_admin_row_is_union_of_everything(self):
        table = PermissionTable.default()

        assert table.tabs_for("admin") == frozenset(ALL_TABS)
        assert table.actions_for("admin") == frozenset(ALL_ACTIONS)

    def test_admin_row_includes_custom_tabs(self):
        table = PermissionTable.build({"editor": ["wiki"]})

        assert "wiki" in table.tabs_for("admin")
        assert "wiki" in table.tabs_for("editor")

    def test_actions_follow_tabs(self):
        table = PermissionTable.default()

        actions = table.actions_for("sales_manager")
        for key in ACTION_GROUPS["products"]:
            assert key in actions
        assert "blog_delete" not in actions

    def test_explicit_role_actions(self):
        table = PermissionTable.build(
            {"clerk": ["products"]}, role_actions={"clerk": ["product_view"]}
        )

        assert table.actions_for("clerk") == frozenset({"product_view"})
        assert "product_delete" in table.actions_for("admin")

    def test_from_mapping(self):
        table = PermissionTable.from_mapping(
            {"roles": {"Support_Assistant": ["dashboard", "contacts"]}}
        )

        assert table.tabs_for("support_assistant") == frozenset({"dashboard", "contacts"})
        assert "support_assistant" in table.roles
        assert "admin" in table.roles

    def test_from_mapping_requires_roles(self):
        with pytest.raises(ValueError, match="roles"):
            PermissionTable.from_mapping({"actions": {}})

    def test_table_is_immutable(self):
        table = PermissionTable.default()

        with pytest.raises(Exception):
            table.tabs = {}

    def test_rows_are_read_only(self):
        table = PermissionTable.default()

        with pytest.raises(TypeError):
            table.tabs["user"] = frozenset({"products"})
        with pytest.raises(TypeError):
            table.actions["user"] = frozenset({"product_delete"})
        with pytest.raises(TypeError):
            del table.tabs["admin"]

        assert not PermissionGate().has_permission("user", "products")
        assert not PermissionGate(table).can("user", "product_delete")

    def test_empty_table_rows_are_read_only(self):
        table = PermissionTable()

        with pytest.raises(TypeError):
            table.tabs["user"] = frozenset({"products"})

    def test_unknown_role_has_empty_rows(self):
        table = PermissionTable.default()

        assert table.tabs_for("ghost") == frozenset()
        assert table.actions_for("ghost") == frozenset()


class TestPermissionGate:
    """Test the gate used by lifecycle operations."""

    def test_can_accepts_tabs_and_actions(self):
        gate = PermissionGate()

        assert gate.can("sales_manager", "products")
        assert gate.can("sales_manager", "product_delete")
        assert not gate.can("marketing_manager", "product_delete")
        assert gate.can("marketing_manager", "blog_delete")

    def test_employee_and_log_keys_admin_only(self):
        gate = PermissionGate()

        assert gate.can("admin", "employees")
        assert gate.can("admin", "logs")
        for role in ("sales_manager", "account_manager", "marketing_manager", "user"):
            assert not gate.can(role, "employees")
            assert not gate.can(role, "logs")

    def test_allowed_tabs_in_console_order(self):
        gate = PermissionGate()

        tabs = gate.allowed_tabs("account_manager")
        assert tabs == ["dashboard", "orders", "contacts", "customers"]

    def test_require_passes(self):
        gate = PermissionGate()
        actor = Actor(id="u1", role="admin")

        gate.require(actor, "page_delete")

    def test_require_raises(self):
        gate = PermissionGate()
        actor = Actor(id="u2", role="user")

        with pytest.raises(PermissionDeniedError) as exc_info:
            gate.require(actor, "product_delete")

        assert exc_info.value.role == "user"
        assert exc_info.value.key == "product_delete"
        assert exc_info.value.actor_id == "u2"
        assert isinstance(exc_info.value, PermissionError)

    def test_injected_table(self):
        table = PermissionTable.build({"clerk": ["pages"]})
        gate = PermissionGate(table)

        assert gate.can("clerk", "page_delete")
        assert not gate.can("sales_manager", "products")


class TestResolveRole:
    """Test effective role resolution."""

    def test_admin_wins(self):
        assert resolve_role(["user", "sales_manager", "admin"]) == "admin"

    def test_first_non_user_role(self):
        assert resolve_role(["user", "marketing_manager", "sales_manager"]) == "marketing_manager"

    def test_no_roles(self):
        assert resolve_role([]) == "user"

    def test_only_user(self):
        assert resolve_role(["user"]) == "user"

    def test_actor_from_roles(self):
        actor = Actor.from_roles("u1", ["user", "admin"], name="Ada")

        assert actor.role == "admin"
        assert actor.roles == ("user", "admin")
        assert actor.name == "Ada"


class TestStoredPermissions:
    """Test permission tables built from stored role_permissions rows."""

    @pytest.fixture
    def store(self):
        return InMemoryEntityStore(
            {
                "role_permissions": [
                    {"id": "r1", "role": "sales_manager", "permission": "product_view",
                     "enabled": True},
                    {"id": "r2", "role": "sales_manager", "permission": "product_delete",
                     "enabled": False},
                    {"id": "r3", "role": "admin", "permission": "product_delete",
                     "enabled": False},
                ]
            }
        )

    def test_enabled_row_grants_action(self):
        table = PermissionTable.from_rows(
            [{"role": "sales_manager", "permission": "product_view", "enabled": True}]
        )

        assert table.actions_for("sales_manager") == frozenset({"product_view"})

    def test_role_without_rows_holds_no_actions(self):
        gate = PermissionGate(PermissionTable.from_rows([]))

        assert gate.can("marketing_manager", "blog") is True
        assert gate.can("marketing_manager", "blog_delete") is False

    def test_admin_rows_are_ignored(self):
        table = PermissionTable.from_rows(
            [{"role": "admin", "permission": "logs_access", "enabled": False}]
        )

        assert "logs_access" in table.actions_for("admin")

    @pytest.mark.asyncio
    async def test_load_permission_table(self, store):
        gate = PermissionGate(await load_permission_table(store))

        assert gate.can("sales_manager", "product_view") is True
        assert gate.can("sales_manager", "product_delete") is False
        assert gate.can("sales_manager", "products") is True
        assert gate.can("admin", "product_delete") is True

    @pytest.mark.asyncio
    async def test_set_role_permission_toggles_existing_row(self, store):
        await set_role_permission(store, "sales_manager", "product_delete", True)

        rows = await store.list(
            "role_permissions", {"role": "sales_manager", "permission": "product_delete"}
        )
        assert [r["id"] for r in rows] == ["r2"]
        assert rows[0]["enabled"] is True

        gate = PermissionGate(await load_permission_table(store))
        assert gate.can("sales_manager", "product_delete") is True

    @pytest.mark.asyncio
    async def test_set_role_permission_inserts_new_row(self, store):
        await set_role_permission(store, "Marketing_Manager", "blog_add", True)

        gate = PermissionGate(await load_permission_table(store))
        assert gate.can("marketing_manager", "blog_add") is True
        assert gate.can("marketing_manager", "blog_delete") is False

    @pytest.mark.asyncio
    async def test_admin_cannot_be_toggled(self, store):
        with pytest.raises(ValueError, match="derived"):
            await set_role_permission(store, "admin", "logs_access", False)
