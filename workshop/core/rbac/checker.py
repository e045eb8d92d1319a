"""Permission checking for workshop access control.

All checks take an explicit, request-scoped :class:`Principal` built by the
authentication gate. A failing check raises ForbiddenError; the reason is
logged, never returned to the caller.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Union
from uuid import UUID

from workshop.core.errors import ForbiddenError, NotFoundError
from workshop.core.rbac.permissions import permission_key
from workshop.core.rbac.roles import SystemRole

logger = logging.getLogger(__name__)


@dataclass
class Principal:
    """The authenticated caller of one request."""

    user_id: UUID
    organization_id: UUID
    is_active: bool
    roles: frozenset = field(default_factory=frozenset)
    email: Optional[str] = None
    full_name: Optional[str] = None
    # Resolved lazily on first permission check unless attached eagerly
    permissions: Optional[frozenset] = None

    @property
    def is_admin(self) -> bool:
        return SystemRole.ADMIN.value in self.roles

    def has_role(self, *role_keys: Union[str, SystemRole]) -> bool:
        wanted = {r.value if isinstance(r, SystemRole) else r for r in role_keys}
        return bool(self.roles & wanted)

    def effective_permissions(self, resolver=None) -> frozenset:
        if self.permissions is None:
            if resolver is None:
                raise ValueError("permissions not attached and no resolver given")
            self.permissions = resolver.resolve(self.user_id)
        return self.permissions


def require_any_role(principal: Principal, allowed_roles: Iterable[Union[str, SystemRole]]) -> None:
    """Role gate: pass if the principal holds at least one allowed role."""
    allowed = [r.value if isinstance(r, SystemRole) else r for r in allowed_roles]
    if not principal.has_role(*allowed):
        logger.warning(
            "Role gate denied user %s: holds %s, needs one of %s",
            principal.user_id, sorted(principal.roles), allowed,
        )
        raise ForbiddenError(f"requires one of roles {allowed}")


def has_permission(principal: Principal, key: str, resolver=None) -> bool:
    permission_key(key)
    if principal.is_admin:
        return True
    return key in principal.effective_permissions(resolver)


def require_permission(principal: Principal, key: str, resolver=None) -> None:
    """Permission gate: admins always pass, others need ``key`` resolved."""
    if not has_permission(principal, key, resolver):
        logger.warning("Permission gate denied user %s: missing %s", principal.user_id, key)
        raise ForbiddenError(f"missing permission {key}")


def require_admin_for_delete(principal: Principal) -> None:
    """Deleting primary business records is reserved to the admin role.

    Not satisfiable through ``*.delete`` permissions or overrides.
    """
    if not principal.is_admin:
        logger.warning("Delete denied for non-admin user %s", principal.user_id)
        raise ForbiddenError("delete requires the admin role")


@dataclass(frozen=True)
class FieldGate:
    """Permission requirements of an update that depend on the fields sent.

    A payload made only of ``safe_fields`` passes the relaxed gate: any of
    ``relaxed_roles``, or the strict permission. Any other payload,
    including an empty one, must pass the strict permission gate.
    """

    safe_fields: frozenset
    relaxed_roles: frozenset
    strict_permission: str

    def __post_init__(self):
        permission_key(self.strict_permission)

    def is_relaxed(self, fields: Iterable[str]) -> bool:
        fields = set(fields)
        return bool(fields) and fields <= self.safe_fields


def require_field_permission(
    principal: Principal,
    payload: Union[Mapping, Iterable[str]],
    gate: FieldGate,
    resolver=None,
) -> None:
    """Apply ``gate`` to the field names of an update payload."""
    fields = set(payload.keys() if isinstance(payload, Mapping) else payload)
    if gate.is_relaxed(fields):
        if principal.has_role(*gate.relaxed_roles):
            return
        if has_permission(principal, gate.strict_permission, resolver):
            return
        logger.warning(
            "Relaxed field gate denied user %s for fields %s", principal.user_id, sorted(fields)
        )
        raise ForbiddenError("relaxed field gate denied")

    outside = sorted(fields - gate.safe_fields)
    if outside:
        logger.info(
            "Update from user %s touches restricted fields %s; applying %s",
            principal.user_id, outside, gate.strict_permission,
        )
    require_permission(principal, gate.strict_permission, resolver)


def ensure_same_organization(principal: Principal, organization_id: Optional[UUID], resource: str = "Resource") -> None:
    """Ownership check. Other tenants' rows are reported as missing."""
    if organization_id is None or organization_id != principal.organization_id:
        logger.warning(
            "User %s (org %s) referenced %s of org %s",
            principal.user_id, principal.organization_id, resource, organization_id,
        )
        raise NotFoundError(resource)
