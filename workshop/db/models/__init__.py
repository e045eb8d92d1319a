"""Database models for workshop access control."""

from workshop.db.models.org import Organization
from workshop.db.models.user import User
from workshop.db.models.role import Role
from workshop.db.models.permission import Permission, RolePermission
from workshop.db.models.user_role import UserRole
from workshop.db.models.override import UserPermissionOverride
from workshop.db.models.audit import AuditLog, AuditSeverity
from workshop.db.models.invoice import Invoice, PaymentStatus

__all__ = [
    "Organization",
    "User",
    "Role",
    "Permission",
    "RolePermission",
    "UserRole",
    "UserPermissionOverride",
    "AuditLog",
    "AuditSeverity",
    "Invoice",
    "PaymentStatus",
]
