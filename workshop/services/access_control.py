"""Role, assignment and permission-override administration.

Every operation runs in the caller's session as one transaction that also
holds its audit entry: either the change and its audit entry both commit,
or neither does. Cached permission sets of affected users are invalidated
after commit.

Authorization of the caller (which permission an operation needs) is the
router's job; this service enforces the data invariants and tenant scope.
"""

import logging
import re
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from workshop.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationError,
    WorkshopError,
)
from workshop.core.rbac.checker import Principal
from workshop.core.rbac.permissions import is_valid_permission
from workshop.core.rbac.resolver import PermissionResolver
from workshop.core.rbac.roles import SystemRole
from workshop.db.base import utcnow
from workshop.db.models import (
    AuditSeverity,
    Permission,
    Role,
    RolePermission,
    User,
    UserPermissionOverride,
    UserRole,
)
from workshop.db.tenant import get_scoped_or_404
from workshop.db.trusted import profile_exists

logger = logging.getLogger(__name__)

ROLE_KEY_PATTERN = re.compile(r"^[a-z][a-z0-9_]{1,49}$")

GRANT_REASON = "Explicit permission grant by administrator"
REVOKE_REASON = "Explicit permission revoke by administrator"

SYSTEM_ROLE_KEYS = {role.value for role in SystemRole}


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _role_snapshot(role: Role, permission_keys: Optional[Iterable[str]] = None) -> dict:
    snapshot = {
        "key": role.key,
        "name": role.name,
        "name_ar": role.name_ar,
        "description": role.description,
        "is_active": role.is_active,
        "is_system_role": role.is_system_role,
    }
    if permission_keys is not None:
        snapshot["permissions"] = sorted(permission_keys)
    return snapshot


def _override_snapshot(override: UserPermissionOverride, key: str) -> dict:
    return {
        "permission": key,
        "is_granted": override.is_granted,
        "reason": override.reason,
        "expires_at": override.expires_at.isoformat() if override.expires_at else None,
    }


class AccessControlService:
    """Administrative operations on roles, assignments and overrides.

    Args:
        db: Session bound to the caller's organization
        principal: The administrator performing the operations
        recorder: AuditRecorder writing into ``db``
        cache: Optional PermissionCache to invalidate after changes
    """

    def __init__(self, db: Session, principal: Principal, recorder, cache=None, resolver=None):
        self.db = db
        self.principal = principal
        self.recorder = recorder
        self.cache = cache
        self.resolver = resolver or PermissionResolver(db, cache)

    @property
    def organization_id(self) -> UUID:
        return self.principal.organization_id

    @property
    def actor_id(self) -> UUID:
        return self.principal.user_id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str):
        try:
            yield
            self.db.commit()
        except WorkshopError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("%s rejected by a constraint: %s", operation, e.orig)
            raise ConflictError(f"{operation}: {e.orig}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("%s failed", operation)
            raise InternalError(f"{operation} failed") from e

    def _audit(self, action, resource_type, resource_id=None, old_value=None, new_value=None,
               severity=AuditSeverity.INFO):
        return self.recorder.record(
            actor_id=self.actor_id,
            organization_id=self.organization_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            old_value=old_value,
            new_value=new_value,
            severity=severity,
        )

    def _invalidate(self, user_ids: Iterable[UUID]) -> None:
        if self.cache is not None:
            self.cache.invalidate_users(user_ids)

    def _user(self, user_id: UUID) -> User:
        return get_scoped_or_404(self.db, User, user_id, self.organization_id, "User")

    def _role(self, role_id: UUID) -> Role:
        return get_scoped_or_404(self.db, Role, role_id, self.organization_id, "Role")

    def _load_permissions(self, permission_ids: Iterable[UUID], field: str = "permission_ids") -> List[Permission]:
        """Load active catalog rows for ``permission_ids`` or raise ValidationError."""
        wanted = list(dict.fromkeys(permission_ids))
        if not wanted:
            return []
        found = (
            self.db.query(Permission)
            .filter(Permission.id.in_(wanted), Permission.is_active.is_(True))
            .all()
        )
        found_ids = {p.id for p in found}
        missing = [pid for pid in wanted if pid not in found_ids]
        if missing:
            raise ValidationError(
                [f"{field}: unknown or inactive permission {pid}" for pid in missing]
            )
        return found

    def _role_permission_keys(self, role_id: UUID) -> List[str]:
        rows = (
            self.db.query(Permission.key)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .filter(RolePermission.role_id == role_id)
            .all()
        )
        return [key for (key,) in rows]

    def _role_derived_permission_ids(self, user_id: UUID) -> set:
        rows = (
            self.db.query(RolePermission.permission_id)
            .join(Role, Role.id == RolePermission.role_id)
            .join(UserRole, UserRole.role_id == Role.id)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .filter(
                UserRole.user_id == user_id,
                Role.is_active.is_(True),
                Permission.is_active.is_(True),
            )
            .all()
        )
        return {pid for (pid,) in rows}

    def _overrides_with_keys(self, user_id: UUID):
        return (
            self.db.query(UserPermissionOverride, Permission.key)
            .join(Permission, Permission.id == UserPermissionOverride.permission_id)
            .filter(UserPermissionOverride.user_id == user_id)
            .order_by(Permission.key)
            .all()
        )

    def _reject_admin_target(self, user: User) -> None:
        if self.resolver.is_admin(user.id):
            raise ConflictError("admin permissions cannot be overridden")

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def list_roles(self, include_inactive: bool = False) -> List[Role]:
        query = self.db.query(Role).filter(
            or_(Role.organization_id == self.organization_id, Role.organization_id.is_(None))
        )
        if not include_inactive:
            query = query.filter(Role.is_active.is_(True))
        return query.order_by(Role.is_system_role.desc(), Role.name).all()

    def get_role(self, role_id: UUID) -> Role:
        return self._role(role_id)

    def role_permission_keys(self, role_id: UUID) -> List[str]:
        return sorted(self._role_permission_keys(self._role(role_id).id))

    def create_role(
        self,
        key: str,
        name: str,
        *,
        name_ar: Optional[str] = None,
        description: Optional[str] = None,
        permission_ids: Iterable[UUID] = (),
    ) -> Role:
        key = (key or "").strip()
        name = (name or "").strip()
        errors = []
        if not key:
            errors.append("key: must not be empty")
        elif not ROLE_KEY_PATTERN.match(key):
            errors.append("key: lowercase letters, digits and underscores, starting with a letter")
        if not name:
            errors.append("name: must not be empty")
        if errors:
            raise ValidationError(errors)

        with self._transaction("create role"):
            if key in SYSTEM_ROLE_KEYS:
                raise ConflictError(f"role key {key} is reserved")
            duplicate = self.db.query(Role.id).filter(
                Role.key == key,
                or_(Role.organization_id == self.organization_id, Role.organization_id.is_(None)),
            ).first()
            if duplicate:
                raise ConflictError(f"role key {key} already exists")

            permissions = self._load_permissions(permission_ids)
            role = Role(
                organization_id=self.organization_id,
                key=key,
                name=name,
                name_ar=name_ar,
                description=description,
                is_system_role=False,
                is_active=True,
            )
            self.db.add(role)
            for perm in permissions:
                role.permission_links.append(
                    RolePermission(permission_id=perm.id, granted_by=self.actor_id)
                )
            self.db.flush()
            self._audit(
                "role.create", "role", role.id,
                new_value=_role_snapshot(role, [p.key for p in permissions]),
            )
        logger.info("Role %s created in org %s by %s", key, self.organization_id, self.actor_id)
        return role

    def update_role(
        self,
        role_id: UUID,
        *,
        name: Optional[str] = None,
        name_ar: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Role:
        if name is not None and not name.strip():
            raise ValidationError(["name: must not be empty"])

        with self._transaction("update role"):
            role = self._role(role_id)
            if role.is_system_role or role.organization_id is None:
                raise ConflictError("system roles cannot be modified")
            old = _role_snapshot(role)
            if name is not None:
                role.name = name.strip()
            if name_ar is not None:
                role.name_ar = name_ar
            if description is not None:
                role.description = description
            status_changed = is_active is not None and is_active != role.is_active
            if is_active is not None:
                role.is_active = is_active
            self.db.flush()
            self._audit("role.update", "role", role.id, old_value=old, new_value=_role_snapshot(role))
            holders = [uid for (uid,) in self.db.query(UserRole.user_id).filter(UserRole.role_id == role.id)]

        if status_changed:
            self._invalidate(holders)
        return role

    def delete_role(self, role_id: UUID) -> None:
        with self._transaction("delete role"):
            role = self._role(role_id)
            if role.is_system_role or role.organization_id is None:
                raise ConflictError("system roles cannot be deleted")
            assigned = self.db.query(UserRole).filter(UserRole.role_id == role.id).count()
            if assigned:
                raise ConflictError(f"role is assigned to {assigned} users")
            old = _role_snapshot(role, self._role_permission_keys(role.id))
            self.db.delete(role)
            self.db.flush()
            self._audit("role.delete", "role", role_id, old_value=old, severity=AuditSeverity.WARNING)
        logger.info("Role %s deleted in org %s by %s", old["key"], self.organization_id, self.actor_id)

    def replace_role_permissions(self, role_id: UUID, permission_ids: Iterable[UUID]) -> List[str]:
        """Replace the permission set of a role and invalidate every holder."""
        with self._transaction("replace role permissions"):
            role = self._role(role_id)
            if role.organization_id is None:
                raise ConflictError("global roles cannot be modified")
            if role.key == SystemRole.ADMIN.value:
                raise ConflictError("the admin role always holds every permission")
            permissions = self._load_permissions(permission_ids)
            old_keys = self._role_permission_keys(role.id)
            holders = [uid for (uid,) in self.db.query(UserRole.user_id).filter(UserRole.role_id == role.id)]

            self.db.query(RolePermission).filter(RolePermission.role_id == role.id).delete(
                synchronize_session=False
            )
            for perm in permissions:
                self.db.add(RolePermission(role_id=role.id, permission_id=perm.id, granted_by=self.actor_id))
            self.db.flush()
            new_keys = sorted(p.key for p in permissions)
            self._audit(
                "role.permissions.replace", "role", role.id,
                old_value={"permissions": sorted(old_keys)},
                new_value={"permissions": new_keys},
            )

        self._invalidate(holders)
        logger.info("Role %s now grants %d permissions; %d holders invalidated", role_id, len(new_keys), len(holders))
        return new_keys

    # ------------------------------------------------------------------
    # Users and assignments
    # ------------------------------------------------------------------

    def create_user(
        self,
        user_id: UUID,
        email: str,
        full_name: Optional[str] = None,
        role_ids: Iterable[UUID] = (),
    ) -> User:
        """Create the profile of an identity-provider user in this organization."""
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValidationError(["email: must be an email address"])

        with self._transaction("create user"):
            roles = [self._role(rid) for rid in dict.fromkeys(role_ids)]
            inactive = [r.key for r in roles if not r.is_active]
            if inactive:
                raise ValidationError([f"role_ids: role {key} is inactive" for key in inactive])
            if user_id == self.actor_id or profile_exists(self.db, user_id):
                raise ConflictError("a profile already exists for this user")
            user = User(
                id=user_id,
                organization_id=self.organization_id,
                email=email,
                full_name=full_name,
                is_active=True,
            )
            self.db.add(user)
            self.db.flush()
            for role in roles:
                self.db.add(UserRole(user_id=user.id, role_id=role.id, assigned_by=self.actor_id))
            self.db.flush()
            self._audit(
                "user.create", "user", user.id,
                new_value={"email": email, "full_name": full_name, "roles": sorted(r.key for r in roles)},
            )
        return user

    def list_users(self) -> List[User]:
        return (
            self.db.query(User)
            .filter(User.organization_id == self.organization_id)
            .order_by(User.email)
            .all()
        )

    def get_user(self, user_id: UUID) -> User:
        return self._user(user_id)

    def user_role_assignments(self, user_id: UUID) -> List[tuple]:
        user = self._user(user_id)
        return (
            self.db.query(UserRole, Role)
            .join(Role, Role.id == UserRole.role_id)
            .filter(UserRole.user_id == user.id)
            .order_by(Role.key)
            .all()
        )

    def assign_role(self, user_id: UUID, role_id: UUID) -> UserRole:
        with self._transaction("assign role"):
            user = self._user(user_id)
            role = self._role(role_id)
            if not role.is_active:
                raise ValidationError(["role_id: role is inactive"])
            existing = self.db.query(UserRole.id).filter(
                UserRole.user_id == user.id, UserRole.role_id == role.id
            ).first()
            if existing:
                raise ConflictError(f"user already holds role {role.key}")
            assignment = UserRole(user_id=user.id, role_id=role.id, assigned_by=self.actor_id)
            self.db.add(assignment)
            self.db.flush()
            self._audit(
                "role.assign", "user", user.id,
                new_value={"role": role.key, "user_role_id": str(assignment.id)},
                severity=AuditSeverity.CRITICAL if role.key == SystemRole.ADMIN.value else AuditSeverity.INFO,
            )
        self._invalidate([user_id])
        return assignment

    def remove_role_assignment(self, user_role_id: UUID) -> None:
        with self._transaction("remove role assignment"):
            row = (
                self.db.query(UserRole, Role)
                .join(User, User.id == UserRole.user_id)
                .join(Role, Role.id == UserRole.role_id)
                .filter(UserRole.id == user_role_id, User.organization_id == self.organization_id)
                .first()
            )
            if row is None:
                raise NotFoundError("Role assignment")
            assignment, role = row
            if assignment.user_id == self.actor_id and role.key == SystemRole.ADMIN.value:
                raise ConflictError("administrators cannot remove their own admin role")
            user_id = assignment.user_id
            self.db.delete(assignment)
            self.db.flush()
            self._audit(
                "role.unassign", "user", user_id,
                old_value={"role": role.key, "user_role_id": str(user_role_id)},
                severity=AuditSeverity.CRITICAL if role.key == SystemRole.ADMIN.value else AuditSeverity.WARNING,
            )
        self._invalidate([user_id])

    def set_user_active(self, user_id: UUID, is_active: bool) -> User:
        with self._transaction("set user status"):
            user = self._user(user_id)
            if user.id == self.actor_id and not is_active:
                raise ConflictError("users cannot deactivate themselves")
            old = {"is_active": user.is_active}
            user.is_active = is_active
            self.db.flush()
            self._audit(
                "user.activate" if is_active else "user.deactivate", "user", user.id,
                old_value=old, new_value={"is_active": is_active},
                severity=AuditSeverity.CRITICAL,
            )
        self._invalidate([user_id])
        return user

    # ------------------------------------------------------------------
    # Permission overrides
    # ------------------------------------------------------------------

    def list_overrides(self, user_id: UUID) -> List[tuple]:
        user = self._user(user_id)
        return self._overrides_with_keys(user.id)

    def replace_user_permission_overrides(
        self, user_id: UUID, permission_ids: Iterable[UUID]
    ) -> List[UserPermissionOverride]:
        """Make ``permission_ids`` the user's effective set, atomically.

        Stores the minimal explicit set relative to the user's roles: a grant
        for each selected permission the roles do not give, a revoke for each
        role permission not selected. The delete of the old overrides, the
        insert of the new ones and the audit entry share one transaction.
        """
        permission_ids = list(permission_ids)
        with self._transaction("replace permission overrides"):
            user = self._user(user_id)
            self._reject_admin_target(user)
            permissions = self._load_permissions(permission_ids)
            selected = {p.id: p for p in permissions}
            role_derived = self._role_derived_permission_ids(user.id)
            old = [_override_snapshot(o, key) for o, key in self._overrides_with_keys(user.id)]

            self.db.query(UserPermissionOverride).filter(
                UserPermissionOverride.user_id == user.id
            ).delete(synchronize_session=False)

            created = []
            for pid in sorted(set(selected) - role_derived, key=str):
                created.append(UserPermissionOverride(
                    user_id=user.id, permission_id=pid, is_granted=True,
                    reason=GRANT_REASON, granted_by=self.actor_id,
                ))
            for pid in sorted(role_derived - set(selected), key=str):
                created.append(UserPermissionOverride(
                    user_id=user.id, permission_id=pid, is_granted=False,
                    reason=REVOKE_REASON, granted_by=self.actor_id,
                ))
            grants = sum(1 for o in created if o.is_granted)
            revokes = len(created) - grants
            self.db.add_all(created)
            self.db.flush()

            keys = {p.id: p.key for p in permissions}
            if role_derived - set(selected):
                for pid, key in self.db.query(Permission.id, Permission.key).filter(
                    Permission.id.in_(role_derived - set(selected))
                ):
                    keys[pid] = key
            self._audit(
                "permissions.replace", "user", user.id,
                old_value={"overrides": old},
                new_value={"overrides": [_override_snapshot(o, keys[o.permission_id]) for o in created]},
                severity=AuditSeverity.WARNING,
            )

        self._invalidate([user_id])
        logger.info(
            "Replaced overrides of user %s: %d grants, %d revokes", user_id, grants, revokes,
        )
        return created

    def create_override(
        self,
        user_id: UUID,
        permission_id: UUID,
        is_granted: bool,
        *,
        reason: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> UserPermissionOverride:
        expires_at = _naive_utc(expires_at)
        if expires_at is not None and expires_at <= utcnow():
            raise ValidationError(["expires_at: must be in the future"])

        with self._transaction("create permission override"):
            user = self._user(user_id)
            self._reject_admin_target(user)
            (perm,) = self._load_permissions([permission_id], field="permission_id")
            duplicate = self.db.query(UserPermissionOverride.id).filter(
                UserPermissionOverride.user_id == user.id,
                UserPermissionOverride.permission_id == perm.id,
            ).first()
            if duplicate:
                raise ConflictError(f"user already has an override for {perm.key}")
            override = UserPermissionOverride(
                user_id=user.id,
                permission_id=perm.id,
                is_granted=is_granted,
                reason=reason or (GRANT_REASON if is_granted else REVOKE_REASON),
                granted_by=self.actor_id,
                expires_at=expires_at,
            )
            self.db.add(override)
            self.db.flush()
            self._audit(
                "permission.grant" if is_granted else "permission.revoke", "user", user.id,
                new_value=_override_snapshot(override, perm.key),
            )
        self._invalidate([user_id])
        return override

    def delete_override(self, override_id: UUID) -> None:
        with self._transaction("delete permission override"):
            row = (
                self.db.query(UserPermissionOverride, Permission.key)
                .join(User, User.id == UserPermissionOverride.user_id)
                .join(Permission, Permission.id == UserPermissionOverride.permission_id)
                .filter(
                    UserPermissionOverride.id == override_id,
                    User.organization_id == self.organization_id,
                )
                .first()
            )
            if row is None:
                raise NotFoundError("Permission override")
            override, key = row
            user_id = override.user_id
            old = _override_snapshot(override, key)
            self.db.delete(override)
            self.db.flush()
            self._audit("permission.override.delete", "user", user_id, old_value=old)
        self._invalidate([user_id])

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_effective_permissions(self, user_id: UUID) -> List[str]:
        """Sorted effective permissions. Users may read their own; admins anyone's."""
        if user_id == self.actor_id:
            return sorted(self.principal.effective_permissions(self.resolver))
        if not self.principal.is_admin:
            logger.warning("User %s tried to read permissions of %s", self.actor_id, user_id)
            raise ForbiddenError("only administrators may read other users' permissions")
        user = self._user(user_id)
        return sorted(self.resolver.resolve(user.id))

    def check(self, user_id: UUID, key: str) -> bool:
        return self.check_any(user_id, [key])

    def check_any(self, user_id: UUID, keys: Iterable[str]) -> bool:
        keys = list(keys)
        unknown = [k for k in keys if not is_valid_permission(k)]
        if unknown or not keys:
            raise ValidationError(
                [f"permissions: unknown permission {k}" for k in unknown] or ["permissions: must not be empty"]
            )
        user = self._user(user_id)
        resolved = self.resolver.resolve(user.id)
        return any(k in resolved for k in keys)
