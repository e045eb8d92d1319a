from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from workshop.api.deps import authenticate
from workshop.core.rbac.checker import Principal

router = APIRouter(prefix="/auth", tags=["auth"])


class MeResponse(BaseModel):
    id: UUID
    organization_id: UUID
    email: Optional[str]
    full_name: Optional[str]
    is_admin: bool
    roles: List[str]
    permissions: List[str]


@router.get("/me", response_model=MeResponse)
def read_current_principal(principal: Principal = Depends(authenticate)):
    """Profile, roles and effective permissions of the caller."""
    return MeResponse(
        id=principal.user_id,
        organization_id=principal.organization_id,
        email=principal.email,
        full_name=principal.full_name,
        is_admin=principal.is_admin,
        roles=sorted(principal.roles),
        permissions=sorted(principal.permissions or ()),
    )
