"""RBAC (Role-Based Access Control) module for workshop access control.

This module defines the permission catalog, system roles, and the checks
the API applies to every protected operation.
"""

from .permissions import Permission, Resource, Action, PERMISSION_DEFINITIONS
from .roles import SystemRole
from .checker import (
    FieldGate,
    Principal,
    ensure_same_organization,
    has_permission,
    require_admin_for_delete,
    require_any_role,
    require_field_permission,
    require_permission,
)

__all__ = [
    "Permission",
    "Resource",
    "Action",
    "PERMISSION_DEFINITIONS",
    "SystemRole",
    "FieldGate",
    "Principal",
    "ensure_same_organization",
    "has_permission",
    "require_admin_for_delete",
    "require_any_role",
    "require_field_permission",
    "require_permission",
]
