from functools import lru_cache
from typing import Generator, Optional, Union

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from workshop.api.middleware.audit import AuditRecorder
from workshop.core.config import get_settings
from workshop.core.errors import AuthenticationError
from workshop.core.rbac.cache import PermissionCache
from workshop.core.rbac.checker import (
    Principal,
    require_admin_for_delete,
    require_any_role,
    require_permission,
)
from workshop.core.rbac.permissions import permission_key
from workshop.core.rbac.resolver import PermissionResolver
from workshop.core.rbac.roles import SystemRole
from workshop.core.security import decode_access_token
from workshop.db.session import SessionLocal
from workshop.db.tenant import bind_identity, bind_tenant, require_tenant
from workshop.db.trusted import load_principal_profile
from workshop.services.access_control import AccessControlService

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator:
    """Request-scoped session; queries fail until the tenant is bound."""
    db = require_tenant(SessionLocal())
    try:
        yield db
    finally:
        db.close()


def get_system_db() -> Generator:
    """Session for unauthenticated infrastructure endpoints (health checks)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_permission_cache() -> Optional[PermissionCache]:
    settings = get_settings()
    if not settings.permission_cache_enabled:
        return None
    return PermissionCache.from_url(settings.redis_url, settings.permission_cache_ttl_seconds)


def get_resolver(
    db: Session = Depends(get_db),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
) -> PermissionResolver:
    return PermissionResolver(db, cache, timeout_ms=get_settings().authorization_timeout_ms)


def authenticate(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    resolver: PermissionResolver = Depends(get_resolver),
) -> Principal:
    """Authentication gate: bearer token -> active, tenant-bound principal."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("missing bearer credential")

    user_id = decode_access_token(credentials.credentials)
    bind_identity(db, user_id)

    user = load_principal_profile(db, user_id)
    if user is None:
        raise AuthenticationError(f"no profile for user {user_id}")
    if not user.is_active:
        raise AuthenticationError(f"user {user_id} is inactive")
    if user.organization_id is None:
        raise AuthenticationError(f"user {user_id} belongs to no organization")

    bind_tenant(db, user.organization_id, user.id)

    principal = Principal(
        user_id=user.id,
        organization_id=user.organization_id,
        is_active=user.is_active,
        roles=resolver.role_keys(user.id),
        email=user.email,
        full_name=user.full_name,
    )
    principal.permissions = resolver.resolve(user.id)
    request.state.principal = principal
    return principal


def get_access_control(
    request: Request,
    principal: Principal = Depends(authenticate),
    db: Session = Depends(get_db),
    cache: Optional[PermissionCache] = Depends(get_permission_cache),
    resolver: PermissionResolver = Depends(get_resolver),
) -> AccessControlService:
    return AccessControlService(
        db, principal, AuditRecorder.for_request(db, request), cache=cache, resolver=resolver
    )


class RequirePermission:
    """
    FastAPI dependency for permission checking.

    Usage:
        @router.get("/invoices")
        async def list_invoices(principal: Principal = Depends(RequirePermission("invoices.view"))):
            ...
    """

    def __init__(self, key: str):
        self.key = permission_key(key)

    def __call__(
        self,
        principal: Principal = Depends(authenticate),
        resolver: PermissionResolver = Depends(get_resolver),
    ) -> Principal:
        require_permission(principal, self.key, resolver)
        return principal


class RequireAnyRole:
    """FastAPI dependency for the coarse role gate."""

    def __init__(self, *roles: Union[str, SystemRole]):
        self.roles = tuple(r.value if isinstance(r, SystemRole) else SystemRole(r).value for r in roles)

    def __call__(self, principal: Principal = Depends(authenticate)) -> Principal:
        require_any_role(principal, self.roles)
        return principal


require_admin = RequireAnyRole(SystemRole.ADMIN)


def require_delete_rights(principal: Principal = Depends(authenticate)) -> Principal:
    require_admin_for_delete(principal)
    return principal
