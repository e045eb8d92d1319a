"""Role management API endpoints.

Reads need ``roles.view``; every change is reserved to administrators.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from workshop.api.deps import RequirePermission, get_access_control, require_admin
from workshop.core.rbac.checker import Principal
from workshop.services.access_control import AccessControlService

router = APIRouter(prefix="/roles", tags=["roles"])


# Schemas
class RoleCreate(BaseModel):
    key: str = Field(..., max_length=50)
    name: str = Field(..., max_length=100)
    name_ar: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    permission_ids: List[UUID] = Field(default_factory=list)


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    name_ar: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class RolePermissionsUpdate(BaseModel):
    permission_ids: List[UUID]


class RoleResponse(BaseModel):
    id: UUID
    organization_id: Optional[UUID]
    key: str
    name: str
    name_ar: Optional[str]
    description: Optional[str]
    is_system_role: bool
    is_active: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class RoleDetailResponse(RoleResponse):
    permissions: List[str]


class RolePermissionsResponse(BaseModel):
    role_id: UUID
    permissions: List[str]


# Endpoints
@router.get("", response_model=List[RoleResponse])
def list_roles(
    include_inactive: bool = Query(False, description="Include deactivated roles"),
    principal: Principal = Depends(RequirePermission("roles.view")),
    service: AccessControlService = Depends(get_access_control),
):
    """List the roles available in the current organization."""
    return service.list_roles(include_inactive=include_inactive)


@router.get("/{role_id}", response_model=RoleDetailResponse)
def get_role(
    role_id: UUID,
    principal: Principal = Depends(RequirePermission("roles.view")),
    service: AccessControlService = Depends(get_access_control),
):
    """Get a role with its permission keys."""
    role = service.get_role(role_id)
    detail = RoleResponse.model_validate(role).model_dump()
    return RoleDetailResponse(**detail, permissions=service.role_permission_keys(role.id))


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
def create_role(
    body: RoleCreate,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    """Create a custom role."""
    return service.create_role(
        body.key,
        body.name,
        name_ar=body.name_ar,
        description=body.description,
        permission_ids=body.permission_ids,
    )


@router.patch("/{role_id}", response_model=RoleResponse)
def update_role(
    role_id: UUID,
    body: RoleUpdate,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    """Update a custom role. System roles cannot be modified."""
    return service.update_role(role_id, **body.model_dump(exclude_unset=True))


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_role(
    role_id: UUID,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    """Delete a custom role that no user holds. System roles cannot be deleted."""
    service.delete_role(role_id)
    return None


@router.put("/{role_id}/permissions", response_model=RolePermissionsResponse)
def replace_role_permissions(
    role_id: UUID,
    body: RolePermissionsUpdate,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    """Replace the permission set of a role."""
    keys = service.replace_role_permissions(role_id, body.permission_ids)
    return RolePermissionsResponse(role_id=role_id, permissions=keys)
