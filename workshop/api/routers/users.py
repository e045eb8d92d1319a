"""User, role assignment and permission override endpoints.

Listing needs ``users.view``. Reading effective permissions is open to the
user themself and to administrators. Every change is reserved to
administrators, so that no delegated permission can be used to widen the
caller's own access.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from workshop.api.deps import RequirePermission, authenticate, get_access_control, require_admin
from workshop.core.rbac.checker import Principal
from workshop.services.access_control import AccessControlService

router = APIRouter(tags=["users"])


# Schemas
class UserCreate(BaseModel):
    id: UUID = Field(..., description="User id issued by the identity provider")
    email: str = Field(..., max_length=255)
    full_name: Optional[str] = Field(None, max_length=255)
    role_ids: List[UUID] = Field(default_factory=list)


class UserResponse(BaseModel):
    id: UUID
    organization_id: UUID
    email: str
    full_name: Optional[str]
    is_active: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class RoleAssignmentCreate(BaseModel):
    role_id: UUID


class RoleAssignmentResponse(BaseModel):
    id: UUID
    user_id: UUID
    role_id: UUID
    role_key: str
    assigned_by: Optional[UUID]
    assigned_at: Optional[datetime]


class EffectivePermissionsResponse(BaseModel):
    user_id: UUID
    permissions: List[str]


class PermissionSelection(BaseModel):
    permission_ids: List[UUID]


class OverrideCreate(BaseModel):
    permission_id: UUID
    is_granted: bool
    reason: Optional[str] = Field(None, max_length=500)
    expires_at: Optional[datetime] = None


class OverrideResponse(BaseModel):
    id: UUID
    user_id: UUID
    permission_id: UUID
    permission: str
    is_granted: bool
    reason: Optional[str]
    granted_by: Optional[UUID]
    expires_at: Optional[datetime]
    created_at: Optional[datetime]


def _override_response(override, key: str) -> OverrideResponse:
    return OverrideResponse(
        id=override.id,
        user_id=override.user_id,
        permission_id=override.permission_id,
        permission=key,
        is_granted=override.is_granted,
        reason=override.reason,
        granted_by=override.granted_by,
        expires_at=override.expires_at,
        created_at=override.created_at,
    )


# Users
@router.get("/users", response_model=List[UserResponse])
def list_users(
    principal: Principal = Depends(RequirePermission("users.view")),
    service: AccessControlService = Depends(get_access_control),
):
    """List the users of the current organization."""
    return service.list_users()


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    body: UserCreate,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    """Create the profile of an identity-provider user in this organization."""
    return service.create_user(body.id, body.email, body.full_name, body.role_ids)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    user_id: UUID,
    principal: Principal = Depends(RequirePermission("users.view")),
    service: AccessControlService = Depends(get_access_control),
):
    return service.get_user(user_id)


@router.post("/users/{user_id}/deactivate", response_model=UserResponse)
def deactivate_user(
    user_id: UUID,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    """Deactivate a user; their next request fails authentication."""
    return service.set_user_active(user_id, False)


@router.post("/users/{user_id}/activate", response_model=UserResponse)
def activate_user(
    user_id: UUID,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    return service.set_user_active(user_id, True)


# Role assignments
@router.get("/users/{user_id}/roles", response_model=List[RoleAssignmentResponse])
def list_user_roles(
    user_id: UUID,
    principal: Principal = Depends(RequirePermission("users.view")),
    service: AccessControlService = Depends(get_access_control),
):
    return [
        RoleAssignmentResponse(
            id=assignment.id,
            user_id=assignment.user_id,
            role_id=role.id,
            role_key=role.key,
            assigned_by=assignment.assigned_by,
            assigned_at=assignment.assigned_at,
        )
        for assignment, role in service.user_role_assignments(user_id)
    ]


@router.post(
    "/users/{user_id}/roles",
    response_model=RoleAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def assign_role(
    user_id: UUID,
    body: RoleAssignmentCreate,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    assignment = service.assign_role(user_id, body.role_id)
    return RoleAssignmentResponse(
        id=assignment.id,
        user_id=assignment.user_id,
        role_id=assignment.role_id,
        role_key=assignment.role.key,
        assigned_by=assignment.assigned_by,
        assigned_at=assignment.assigned_at,
    )


@router.delete("/user-roles/{user_role_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_role_assignment(
    user_role_id: UUID,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    service.remove_role_assignment(user_role_id)
    return None


# Permissions
@router.get("/users/{user_id}/permissions", response_model=EffectivePermissionsResponse)
def list_effective_permissions(
    user_id: UUID,
    principal: Principal = Depends(authenticate),
    service: AccessControlService = Depends(get_access_control),
):
    """Effective permissions of a user: the caller's own, or anyone's for admins."""
    return EffectivePermissionsResponse(
        user_id=user_id, permissions=service.list_effective_permissions(user_id)
    )


@router.put("/users/{user_id}/permissions", response_model=EffectivePermissionsResponse)
def replace_user_permissions(
    user_id: UUID,
    body: PermissionSelection,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    """Save the complete permission selection of a user."""
    service.replace_user_permission_overrides(user_id, body.permission_ids)
    return EffectivePermissionsResponse(
        user_id=user_id, permissions=service.list_effective_permissions(user_id)
    )


@router.get("/users/{user_id}/permission-overrides", response_model=List[OverrideResponse])
def list_overrides(
    user_id: UUID,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    return [_override_response(o, key) for o, key in service.list_overrides(user_id)]


@router.post(
    "/users/{user_id}/permission-overrides",
    response_model=OverrideResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_override(
    user_id: UUID,
    body: OverrideCreate,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    override = service.create_override(
        user_id,
        body.permission_id,
        body.is_granted,
        reason=body.reason,
        expires_at=body.expires_at,
    )
    return _override_response(override, override.permission.key)


@router.delete("/permission-overrides/{override_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_override(
    override_id: UUID,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    service.delete_override(override_id)
    return None
