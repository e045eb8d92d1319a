"""Permission catalog for workshop access control.

Defines all resources, actions, and the valid permission combinations.
Uses a matrix approach: each resource lists the actions it supports.

Permission string format: "resource.action"
Examples:
  - invoices.view
  - work_orders.complete
  - users.manage_permissions
  - audit_logs.view

The catalog is closed: a key that is not in the matrix is a programming
error and fails at import time wherever it is referenced through
:func:`permission_key`.
"""

from enum import Enum
from typing import NamedTuple


class Resource(str, Enum):
    """Resources that can be protected by permissions."""

    DASHBOARD = "dashboard"

    # Operations
    CUSTOMERS = "customers"
    VEHICLES = "vehicles"
    WORK_ORDERS = "work_orders"
    INVENTORY = "inventory"
    TECHNICIANS = "technicians"

    # Financial
    INVOICES = "invoices"
    EXPENSES = "expenses"
    SALARIES = "salaries"

    REPORTS = "reports"

    # Administration
    SETTINGS = "settings"
    USERS = "users"
    ROLES = "roles"
    AUDIT_LOGS = "audit_logs"


class Action(str, Enum):
    """Actions that can be performed on resources."""

    # Standard CRUD actions
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    # Specialized actions
    EXPORT = "export"
    PRINT = "print"
    VOID = "void"
    CANCEL = "cancel"
    COMPLETE = "complete"
    APPROVE = "approve"
    ADJUST_STOCK = "adjust_stock"
    VIEW_PERFORMANCE = "view_performance"
    MANAGE_ASSIGNMENTS = "manage_assignments"
    FINANCIAL = "financial"
    OPERATIONS = "operations"
    PERFORMANCE = "performance"
    MANAGE_WORKSHOP = "manage_workshop"
    MANAGE_TAX = "manage_tax"
    MANAGE_ROLES = "manage_roles"
    MANAGE_PERMISSIONS = "manage_permissions"
    CHANGE_PASSWORD = "change_password"


class Category(str, Enum):
    """UI grouping of permissions. Carries no authorization meaning."""

    GENERAL = "general"
    OPERATIONS = "operations"
    FINANCIAL = "financial"
    REPORTS = "reports"
    ADMINISTRATION = "administration"


class Permission(NamedTuple):
    """A permission is a combination of resource and action."""
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}.{self.action.value}"

    @property
    def key(self) -> str:
        return str(self)

    @classmethod
    def from_string(cls, perm_str: str) -> "Permission":
        """Parse a permission string like 'invoices.view'."""
        parts = perm_str.split(".")
        if len(parts) != 2:
            raise ValueError(f"Invalid permission format: {perm_str}")
        perm = cls(Resource(parts[0]), Action(parts[1]))
        if str(perm) not in PERMISSION_DEFINITIONS:
            raise ValueError(f"Unknown permission: {perm_str}")
        return perm


# Maps each resource to its valid actions, in display order
PERMISSION_MATRIX: dict[Resource, tuple[Action, ...]] = {
    Resource.DASHBOARD: (Action.VIEW,),
    Resource.CUSTOMERS: (
        Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE, Action.EXPORT,
    ),
    Resource.VEHICLES: (
        Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE,
    ),
    Resource.WORK_ORDERS: (
        Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE,
        Action.CANCEL, Action.COMPLETE, Action.EXPORT,
    ),
    Resource.INVOICES: (
        Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE,
        Action.PRINT, Action.EXPORT, Action.VOID,
    ),
    Resource.INVENTORY: (
        Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE,
        Action.ADJUST_STOCK, Action.EXPORT,
    ),
    Resource.EXPENSES: (
        Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE,
        Action.APPROVE, Action.EXPORT,
    ),
    Resource.SALARIES: (
        Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE,
        Action.APPROVE, Action.EXPORT,
    ),
    Resource.TECHNICIANS: (
        Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE,
        Action.VIEW_PERFORMANCE, Action.MANAGE_ASSIGNMENTS,
    ),
    Resource.REPORTS: (
        Action.VIEW, Action.EXPORT, Action.FINANCIAL, Action.OPERATIONS,
        Action.PERFORMANCE,
    ),
    Resource.SETTINGS: (
        Action.VIEW, Action.UPDATE, Action.MANAGE_WORKSHOP, Action.MANAGE_TAX,
    ),
    Resource.USERS: (
        Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE,
        Action.MANAGE_ROLES, Action.MANAGE_PERMISSIONS, Action.CHANGE_PASSWORD,
    ),
    Resource.ROLES: (
        Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE,
        Action.MANAGE_PERMISSIONS,
    ),
    Resource.AUDIT_LOGS: (Action.VIEW,),
}

RESOURCE_CATEGORIES: dict[Resource, Category] = {
    Resource.DASHBOARD: Category.GENERAL,
    Resource.CUSTOMERS: Category.OPERATIONS,
    Resource.VEHICLES: Category.OPERATIONS,
    Resource.WORK_ORDERS: Category.OPERATIONS,
    Resource.INVENTORY: Category.OPERATIONS,
    Resource.TECHNICIANS: Category.OPERATIONS,
    Resource.INVOICES: Category.FINANCIAL,
    Resource.EXPENSES: Category.FINANCIAL,
    Resource.SALARIES: Category.FINANCIAL,
    Resource.REPORTS: Category.REPORTS,
    Resource.SETTINGS: Category.ADMINISTRATION,
    Resource.USERS: Category.ADMINISTRATION,
    Resource.ROLES: Category.ADMINISTRATION,
    Resource.AUDIT_LOGS: Category.ADMINISTRATION,
}


def _generate_permission_definitions() -> dict[str, Permission]:
    """Generate all valid permission combinations from the matrix."""
    permissions = {}
    for resource, actions in PERMISSION_MATRIX.items():
        for action in actions:
            perm = Permission(resource, action)
            permissions[str(perm)] = perm
    return permissions


# All valid permissions as a dictionary: "resource.action" -> Permission
PERMISSION_DEFINITIONS = _generate_permission_definitions()


def is_valid_permission(perm_str: str) -> bool:
    """Check if a permission string is in the catalog."""
    return perm_str in PERMISSION_DEFINITIONS


def permission_key(perm_str: str) -> str:
    """Return ``perm_str`` unchanged if it is in the catalog, else raise."""
    if perm_str not in PERMISSION_DEFINITIONS:
        raise ValueError(f"Unknown permission: {perm_str}")
    return perm_str


def category_of(perm_str: str) -> Category:
    return RESOURCE_CATEGORIES[PERMISSION_DEFINITIONS[perm_str].resource]


def get_permissions_for_resource(resource: Resource) -> list[str]:
    """Get all valid permission strings for a resource."""
    return [
        str(Permission(resource, action))
        for action in PERMISSION_MATRIX.get(resource, ())
    ]


def get_all_permissions() -> list[str]:
    """Get all valid permission strings."""
    return list(PERMISSION_DEFINITIONS.keys())


def catalog_entries() -> list[dict]:
    """Rows used to seed the ``permissions`` table, in display order."""
    entries = []
    for resource, actions in PERMISSION_MATRIX.items():
        for order, action in enumerate(actions):
            entries.append({
                "key": str(Permission(resource, action)),
                "resource": resource.value,
                "action": action.value,
                "category": RESOURCE_CATEGORIES[resource].value,
                "display_order": order,
            })
    return entries
