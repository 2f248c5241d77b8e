"""
Access control module for the admin console.

Maps console roles to the tabs they can open and the fine-grained actions
they can perform. The role table is an immutable value injected into a
``PermissionGate``; nothing here reads ambient global state.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
)

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from .store.base import EntityStore

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Console roles. The set is closed."""

    ADMIN = "admin"
    SALES_MANAGER = "sales_manager"
    ACCOUNT_MANAGER = "account_manager"
    SUPPORT_ASSISTANT = "support_assistant"
    MARKETING_MANAGER = "marketing_manager"
    USER = "user"


# Fine-grained action keys grouped by the tab that hosts them.
ACTION_GROUPS: Dict[str, Tuple[str, ...]] = {
    "dashboard": ("dashboard_access",),
    "products": (
        "product_view",
        "product_add",
        "product_edit",
        "product_delete",
        "variant_view",
        "variant_add",
        "variant_delete",
    ),
    "categories": ("category_view", "category_add", "category_edit", "category_delete"),
    "orders": ("order_view", "order_manage", "order_delete"),
    "coupons": ("coupon_view", "coupon_add", "coupon_edit", "coupon_delete"),
    "revenue": ("revenue_access", "revenue_export"),
    "shipping": ("shipping_access", "shipping_manage"),
    "blog": ("blog_view", "blog_add", "blog_delete"),
    "testimonials": (
        "testimonial_view",
        "testimonial_add",
        "testimonial_edit",
        "testimonial_delete",
    ),
    "contacts": ("message_access", "message_status_change", "message_delete"),
    "media": ("media_access", "media_upload", "media_delete"),
    "pages": ("page_access", "page_add", "page_edit", "page_delete"),
    "customers": ("customer_view", "customer_edit", "customer_delete"),
    "marketing": (
        "marketing_access",
        "marketing_campaign_create",
        "marketing_campaign_send",
        "marketing_template_manage",
    ),
    "logs": ("logs_access",),
    "settings": (
        "settings_access",
        "settings_general",
        "settings_payment",
        "settings_email",
    ),
}

# Tabs no role but admin may open.
ADMIN_ONLY_TABS: Tuple[str, ...] = ("employees", "permissions")

ALL_TABS: Tuple[str, ...] = tuple(ACTION_GROUPS) + ADMIN_ONLY_TABS
ALL_ACTIONS: Tuple[str, ...] = tuple(
    key for keys in ACTION_GROUPS.values() for key in keys
)

# Role rows for every role except admin; admin is derived.
DEFAULT_ROLE_TABS: Dict[str, Tuple[str, ...]] = {
    Role.SALES_MANAGER.value: (
        "dashboard",
        "products",
        "categories",
        "orders",
        "revenue",
        "customers",
    ),
    Role.ACCOUNT_MANAGER.value: ("dashboard", "orders", "contacts", "customers"),
    Role.SUPPORT_ASSISTANT.value: ("dashboard", "orders", "contacts", "customers"),
    Role.MARKETING_MANAGER.value: ("dashboard", "marketing", "blog", "media", "coupons"),
    Role.USER.value: (),
}


class PermissionDeniedError(PermissionError):
    """Raised when the permission gate denies an action."""

    def __init__(self, role: str, key: str, actor_id: Optional[str] = None):
        self.role = role
        self.key = key
        self.actor_id = actor_id
        super().__init__(f"Role '{role}' is not allowed to perform '{key}'")


@dataclass(frozen=True)
class Actor:
    """The authenticated person performing a console action."""

    id: str
    name: str = "Unknown"
    role: str = Role.USER.value
    roles: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_roles(cls, id: str, roles: Iterable[str], name: str = "Unknown") -> "Actor":
        """Build an actor whose effective role is resolved from its assignments."""
        assigned = tuple(roles)
        return cls(id=id, name=name, role=resolve_role(assigned), roles=assigned)


def resolve_role(roles: Iterable[str]) -> str:
    """
    Pick the effective role from a user's role assignments.

    ``admin`` wins; otherwise the first role other than ``user``; otherwise
    ``user``.
    """
    assigned = [r for r in roles if r]
    if not assigned:
        return Role.USER.value
    if Role.ADMIN.value in assigned:
        return Role.ADMIN.value
    for role in assigned:
        if role != Role.USER.value:
            return role
    return assigned[0]


class PermissionTable(BaseModel):
    """Immutable role → tabs / actions table."""

    model_config = ConfigDict(frozen=True)

    tabs: Mapping[str, FrozenSet[str]] = Field(
        default_factory=dict,
        description="Tabs each role may open",
        validate_default=True,
    )
    actions: Mapping[str, FrozenSet[str]] = Field(
        default_factory=dict,
        description="Action keys each role may perform",
        validate_default=True,
    )

    @field_validator("tabs", "actions")
    @classmethod
    def validate_rows(
        cls, v: Mapping[str, FrozenSet[str]]
    ) -> Mapping[str, FrozenSet[str]]:
        """Role names are stored lower case; rows are read-only."""
        return MappingProxyType(
            {role.lower(): frozenset(keys) for role, keys in v.items()}
        )

    @property
    def roles(self) -> List[str]:
        """All roles with a row in the table."""
        return sorted(set(self.tabs) | set(self.actions))

    def tabs_for(self, role: str) -> FrozenSet[str]:
        return self.tabs.get(role, frozenset())

    def actions_for(self, role: str) -> FrozenSet[str]:
        return self.actions.get(role, frozenset())

    @classmethod
    def build(
        cls,
        role_tabs: Mapping[str, Iterable[str]],
        action_groups: Mapping[str, Iterable[str]] = ACTION_GROUPS,
        admin_role: str = Role.ADMIN.value,
        admin_only_tabs: Iterable[str] = ADMIN_ONLY_TABS,
        role_actions: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> "PermissionTable":
        """
        Build a table from per-role tab lists.

        Each role receives every action key grouped under a tab it holds,
        unless ``role_actions`` lists its actions explicitly. The admin row
        is generated as the union of all known tabs and actions, so a new
        tab or action is never missing from it.

        Args:
            role_tabs: Tabs per non-admin role
            action_groups: Action keys grouped by tab
            admin_role: Name of the role that receives everything
            admin_only_tabs: Tabs only the admin row carries
            role_actions: Optional explicit action keys per role

        Returns:
            Immutable permission table
        """
        groups = {tab: tuple(keys) for tab, keys in action_groups.items()}
        explicit = {role: set(keys) for role, keys in (role_actions or {}).items()}

        tabs: Dict[str, FrozenSet[str]] = {}
        actions: Dict[str, FrozenSet[str]] = {}

        for role, role_tab_list in role_tabs.items():
            if role == admin_role:
                continue
            held = frozenset(role_tab_list)
            tabs[role] = held
            if role in explicit:
                actions[role] = frozenset(explicit[role])
            else:
                actions[role] = frozenset(
                    key for tab in held for key in groups.get(tab, ())
                )

        all_tabs = set(groups) | set(admin_only_tabs)
        all_actions = {key for keys in groups.values() for key in keys}
        for role in tabs:
            all_tabs |= tabs[role]
            all_actions |= actions[role]

        tabs[admin_role] = frozenset(all_tabs)
        actions[admin_role] = frozenset(all_actions)

        return cls(tabs=tabs, actions=actions)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PermissionTable":
        """
        Load a table from a plain mapping, e.g. parsed YAML or JSON.

        Expected shape::

            roles:
              sales_manager: [dashboard, products]
            actions:            # optional explicit action keys
              sales_manager: [product_view]
            admin_role: admin   # optional
        """
        roles = data.get("roles")
        if not isinstance(roles, Mapping):
            raise ValueError("Permission table mapping needs a 'roles' mapping")

        return cls.build(
            role_tabs={str(r): list(t or []) for r, t in roles.items()},
            admin_role=str(data.get("admin_role", Role.ADMIN.value)),
            role_actions=data.get("actions"),
        )

    @classmethod
    def default(cls) -> "PermissionTable":
        """Table used by the console out of the box."""
        return cls.build(DEFAULT_ROLE_TABS)

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Mapping[str, Any]],
        role_tabs: Mapping[str, Iterable[str]] = DEFAULT_ROLE_TABS,
        admin_role: str = Role.ADMIN.value,
    ) -> "PermissionTable":
        """
        Build a table from stored ``role_permissions`` rows.

        Each row carries ``role``, ``permission`` and ``enabled``. A non-admin
        role holds exactly the action keys it has an enabled row for; a role
        without rows holds no actions. Tabs still come from ``role_tabs`` and
        the admin row is still derived.

        Args:
            rows: Stored grant rows
            role_tabs: Tabs per non-admin role
            admin_role: Name of the role that receives everything

        Returns:
            Immutable permission table
        """
        granted: Dict[str, Set[str]] = {
            role.lower(): set() for role in role_tabs if role.lower() != admin_role
        }
        for row in rows:
            role = str(row.get("role") or "").lower()
            permission = row.get("permission")
            if not role or not permission or role == admin_role:
                continue
            keys = granted.setdefault(role, set())
            if row.get("enabled"):
                keys.add(str(permission))

        tabs = {role: list(role_tabs.get(role, ())) for role in granted}
        return cls.build(tabs, admin_role=admin_role, role_actions=granted)


DEFAULT_PERMISSION_TABLE = PermissionTable.default()


ROLE_PERMISSIONS_TABLE = "role_permissions"


async def load_permission_table(
    store: "EntityStore",
    role_tabs: Mapping[str, Iterable[str]] = DEFAULT_ROLE_TABS,
    table: str = ROLE_PERMISSIONS_TABLE,
) -> PermissionTable:
    """Read the stored action grants and build a permission table from them."""
    rows = await store.list(table)
    logger.debug("Loaded %d role permission rows", len(rows))
    return PermissionTable.from_rows(rows, role_tabs)


async def set_role_permission(
    store: "EntityStore",
    role: str,
    permission: str,
    enabled: bool,
    table: str = ROLE_PERMISSIONS_TABLE,
) -> None:
    """
    Grant or revoke one action key for a non-admin role.

    Raises:
        ValueError: ``role`` is the admin role, whose row is derived
    """
    role = role.lower()
    if role == Role.ADMIN.value:
        raise ValueError("Admin permissions are derived and cannot be toggled")

    existing = await store.list(table, {"role": role, "permission": permission})
    if existing:
        await store.update(table, existing[0]["id"], {"enabled": enabled})
    else:
        await store.insert(
            table, {"role": role, "permission": permission, "enabled": enabled}
        )
    logger.info(
        "Permission %s %s for role %s",
        permission,
        "granted" if enabled else "revoked",
        role,
    )


class PermissionGate:
    """
    Answers "may this role do that?".

    The gate is a pure lookup over its injected table; unknown roles and
    unknown keys are denied.
    """

    def __init__(self, table: Optional[PermissionTable] = None):
        self.table = table or DEFAULT_PERMISSION_TABLE

    def has_permission(self, role: str, tab: str) -> bool:
        """Check whether ``role`` may open ``tab``."""
        return tab in self.table.tabs_for(role)

    def can(self, role: str, key: str) -> bool:
        """Check whether ``role`` holds ``key``, which may be a tab or an action."""
        return key in self.table.actions_for(role) or key in self.table.tabs_for(role)

    def allowed_tabs(self, role: str) -> List[str]:
        """Tabs of ``role`` in console order."""
        held = self.table.tabs_for(role)
        ordered = [tab for tab in ALL_TABS if tab in held]
        return ordered + sorted(held - set(ordered))

    def require(self, actor: Actor, key: str) -> None:
        """
        Raise unless ``actor`` holds ``key``.

        Raises:
            PermissionDeniedError: The actor's role lacks the key
        """
        if not self.can(actor.role, key):
            logger.warning(
                "Permission denied: actor=%s role=%s key=%s", actor.id, actor.role, key
            )
            raise PermissionDeniedError(actor.role, key, actor_id=actor.id)


def has_permission(
    role: str, tab: str, table: Optional[PermissionTable] = None
) -> bool:
    """
    Check a role/tab pair against ``table`` (the default table when omitted).

    Args:
        role: Role name
        tab: Tab name

    Returns:
        True if the role may open the tab
    """
    return PermissionGate(table).has_permission(role, tab)


__all__ = [
    "Role",
    "Actor",
    "ACTION_GROUPS",
    "ADMIN_ONLY_TABS",
    "ALL_TABS",
    "ALL_ACTIONS",
    "DEFAULT_ROLE_TABS",
    "DEFAULT_PERMISSION_TABLE",
    "PermissionDeniedError",
    "PermissionTable",
    "PermissionGate",
    "has_permission",
    "resolve_role",
    "ROLE_PERMISSIONS_TABLE",
    "load_permission_table",
    "set_role_permission",
]
