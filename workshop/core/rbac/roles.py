"""System role definitions for workshop access control.

Defines the 3 system roles seeded for every organization:
1. Admin - Full access; resolves to the whole active catalog
2. Customer Service - Front-desk operations plus invoicing
3. Receptionist - Intake of customers, vehicles and work orders
"""

from enum import Enum
from typing import Dict, List

from .permissions import Resource, Action, Permission


class SystemRole(str, Enum):
    """Keys of the roles every organization is seeded with."""

    ADMIN = "admin"
    CUSTOMER_SERVICE = "customer_service"
    RECEPTIONIST = "receptionist"


def _build_permissions(*perms: tuple) -> List[str]:
    """Build permission strings from (Resource, Action) tuples."""
    return [str(Permission(r, a)) for r, a in perms]


# Admin holds no explicit links; the resolver grants the full catalog by role key
ADMIN_PERMISSIONS: List[str] = []

CUSTOMER_SERVICE_PERMISSIONS = _build_permissions(
    (Resource.DASHBOARD, Action.VIEW),

    (Resource.CUSTOMERS, Action.VIEW),
    (Resource.CUSTOMERS, Action.CREATE),
    (Resource.CUSTOMERS, Action.UPDATE),
    (Resource.CUSTOMERS, Action.EXPORT),

    (Resource.VEHICLES, Action.VIEW),
    (Resource.VEHICLES, Action.CREATE),
    (Resource.VEHICLES, Action.UPDATE),

    (Resource.WORK_ORDERS, Action.VIEW),
    (Resource.WORK_ORDERS, Action.CREATE),
    (Resource.WORK_ORDERS, Action.UPDATE),

    (Resource.INVOICES, Action.VIEW),
    (Resource.INVOICES, Action.CREATE),
    (Resource.INVOICES, Action.PRINT),

    (Resource.INVENTORY, Action.VIEW),
    (Resource.EXPENSES, Action.VIEW),
    (Resource.TECHNICIANS, Action.VIEW),
    (Resource.REPORTS, Action.VIEW),
)

RECEPTIONIST_PERMISSIONS = _build_permissions(
    (Resource.DASHBOARD, Action.VIEW),

    (Resource.CUSTOMERS, Action.VIEW),
    (Resource.CUSTOMERS, Action.CREATE),

    (Resource.VEHICLES, Action.VIEW),

    (Resource.WORK_ORDERS, Action.VIEW),
    (Resource.WORK_ORDERS, Action.CREATE),

    (Resource.INVOICES, Action.VIEW),
    (Resource.INVENTORY, Action.VIEW),
)


DEFAULT_ROLES: Dict[str, dict] = {
    SystemRole.ADMIN.value: {
        "name": "Admin",
        "name_ar": "مدير النظام",
        "description": "Full access to every feature of the organization",
        "permissions": ADMIN_PERMISSIONS,
    },
    SystemRole.CUSTOMER_SERVICE.value: {
        "name": "Customer Service",
        "name_ar": "خدمة العملاء",
        "description": "Handles customers, vehicles, work orders and invoicing",
        "permissions": CUSTOMER_SERVICE_PERMISSIONS,
    },
    SystemRole.RECEPTIONIST.value: {
        "name": "Receptionist",
        "name_ar": "موظف الاستقبال",
        "description": "Registers customers and vehicles and opens work orders",
        "permissions": RECEPTIONIST_PERMISSIONS,
    },
}


def get_default_role_permissions(role_key: str) -> List[str]:
    """Get permissions list for a system role."""
    role = DEFAULT_ROLES.get(role_key)
    if role is None:
        raise ValueError(f"Unknown system role: {role_key}")
    return role["permissions"]
