"""Permission catalog and permission check endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from workshop.api.deps import authenticate, get_access_control, get_db, require_admin
from workshop.core.rbac.checker import Principal
from workshop.db.models import Permission
from workshop.services.access_control import AccessControlService

router = APIRouter(prefix="/permissions", tags=["permissions"])


# Schemas
class PermissionResponse(BaseModel):
    id: UUID
    key: str
    resource: str
    action: str
    category: str
    display_order: int

    class Config:
        from_attributes = True


class CheckRequest(BaseModel):
    user_id: UUID
    permission: str = Field(..., min_length=3)


class CheckAnyRequest(BaseModel):
    user_id: UUID
    permissions: List[str] = Field(..., min_length=1)


class CheckResponse(BaseModel):
    user_id: UUID
    allowed: bool


# Endpoints
@router.get("", response_model=List[PermissionResponse])
def list_permissions(
    db: Session = Depends(get_db),
    principal: Principal = Depends(authenticate),
):
    """List the active permission catalog."""
    return (
        db.query(Permission)
        .filter(Permission.is_active.is_(True))
        .order_by(Permission.category, Permission.resource, Permission.display_order)
        .all()
    )


@router.post("/check", response_model=CheckResponse)
def check_permission(
    body: CheckRequest,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    """Does the user hold the permission? Administrators only."""
    return CheckResponse(user_id=body.user_id, allowed=service.check(body.user_id, body.permission))


@router.post("/check-any", response_model=CheckResponse)
def check_any_permission(
    body: CheckAnyRequest,
    principal: Principal = Depends(require_admin),
    service: AccessControlService = Depends(get_access_control),
):
    """Does the user hold at least one of the permissions? Administrators only."""
    return CheckResponse(user_id=body.user_id, allowed=service.check_any(body.user_id, body.permissions))
