"""Permission resolution.

Computes the effective permission set of one user:

1. A holder of the active ``admin`` role gets every active permission in
   the catalog; overrides are ignored.
2. Otherwise the role-derived set is the union of the active permissions
   linked to every active role assigned to the user.
3. Overrides that have not expired are applied on top:
   ``(role-derived | granted) - revoked``.

Resolution only reads. An unknown user resolves to the empty set.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import or_, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from workshop.core.errors import AuthorizationTimeout
from workshop.core.rbac.roles import SystemRole
from workshop.db.base import utcnow
from workshop.db.models import (
    Permission,
    Role,
    RolePermission,
    UserPermissionOverride,
    UserRole,
)

logger = logging.getLogger(__name__)

# SQLSTATE of a statement cancelled by statement_timeout
QUERY_CANCELED = "57014"


class PermissionResolver:
    """Resolves effective permissions against one session.

    Args:
        db: Session the queries run on
        cache: Optional PermissionCache consulted before the database
        timeout_ms: Budget for one resolution; exceeding it raises
            AuthorizationTimeout, which callers treat as a denial
        clock: Monotonic clock, seconds
    """

    def __init__(
        self,
        db: Session,
        cache=None,
        timeout_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.cache = cache
        self.timeout_ms = timeout_ms
        self.clock = clock
        self._statement_bounded = False

    def resolve(self, user_id: UUID) -> frozenset:
        if self.cache is not None:
            cached = self.cache.get(user_id)
            if cached is not None:
                return cached

        deadline = None
        if self.timeout_ms is not None:
            deadline = self.clock() + self.timeout_ms / 1000.0

        try:
            with self._statement_timeout():
                permissions = self._resolve_from_store(user_id, deadline)
        except DBAPIError as e:
            if getattr(e.orig, "pgcode", None) != QUERY_CANCELED:
                raise
            logger.error("Permission resolution for %s cancelled by statement timeout", user_id)
            raise AuthorizationTimeout("permission resolution timed out in the database") from e

        if self.cache is not None:
            self.cache.set(user_id, permissions)
        return permissions

    def is_admin(self, user_id: UUID) -> bool:
        """True if the user holds the active admin role."""
        match = (
            self.db.query(UserRole.id)
            .join(Role, Role.id == UserRole.role_id)
            .filter(
                UserRole.user_id == user_id,
                Role.key == SystemRole.ADMIN.value,
                Role.is_active.is_(True),
            )
            .first()
        )
        return match is not None

    def role_keys(self, user_id: UUID) -> frozenset:
        """Keys of the active roles assigned to the user."""
        rows = (
            self.db.query(Role.key)
            .join(UserRole, UserRole.role_id == Role.id)
            .filter(UserRole.user_id == user_id, Role.is_active.is_(True))
            .all()
        )
        return frozenset(key for (key,) in rows)

    @contextmanager
    def _statement_timeout(self):
        """Bound the resolution queries on PostgreSQL by the resolution budget.

        Starts at the whole budget and is narrowed to what remains after
        every stage. The setting is transaction-local and restored once
        resolution succeeds; a cancelled statement aborts the transaction
        anyway.
        """
        if self.timeout_ms is None or self.db.get_bind().dialect.name != "postgresql":
            yield
            return
        previous = self.db.execute(text("SELECT current_setting('statement_timeout')")).scalar()
        self._set_statement_timeout(f"{self.timeout_ms}ms")
        self._statement_bounded = True
        try:
            yield
        finally:
            self._statement_bounded = False
        self._set_statement_timeout(previous)

    def _set_statement_timeout(self, value: str) -> None:
        self.db.execute(
            text("SELECT set_config('statement_timeout', :value, true)"), {"value": value}
        )

    def _check_deadline(self, deadline: Optional[float], user_id: UUID, stage: str) -> None:
        if deadline is None:
            return
        remaining = deadline - self.clock()
        if remaining < 0:
            logger.error("Permission resolution for %s timed out after %s", user_id, stage)
            raise AuthorizationTimeout(f"permission resolution timed out after {stage}")
        if self._statement_bounded:
            self._set_statement_timeout(f"{max(1, int(remaining * 1000))}ms")

    def _resolve_from_store(self, user_id: UUID, deadline: Optional[float]) -> frozenset:
        if self.is_admin(user_id):
            self._check_deadline(deadline, user_id, "admin check")
            rows = self.db.query(Permission.key).filter(Permission.is_active.is_(True)).all()
            self._check_deadline(deadline, user_id, "catalog load")
            return frozenset(key for (key,) in rows)
        self._check_deadline(deadline, user_id, "admin check")

        role_rows = (
            self.db.query(Permission.key)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .join(UserRole, UserRole.role_id == Role.id)
            .filter(
                UserRole.user_id == user_id,
                Role.is_active.is_(True),
                Permission.is_active.is_(True),
            )
            .distinct()
            .all()
        )
        role_derived = {key for (key,) in role_rows}
        self._check_deadline(deadline, user_id, "role permissions")

        override_rows = (
            self.db.query(Permission.key, UserPermissionOverride.is_granted)
            .join(UserPermissionOverride, UserPermissionOverride.permission_id == Permission.id)
            .filter(
                UserPermissionOverride.user_id == user_id,
                Permission.is_active.is_(True),
                or_(
                    UserPermissionOverride.expires_at.is_(None),
                    UserPermissionOverride.expires_at > utcnow(),
                ),
            )
            .all()
        )
        self._check_deadline(deadline, user_id, "overrides")

        granted = {key for key, is_granted in override_rows if is_granted}
        revoked = {key for key, is_granted in override_rows if not is_granted}
        return frozenset((role_derived | granted) - revoked)
