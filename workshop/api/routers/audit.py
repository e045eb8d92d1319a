"""Audit log query API endpoints."""

from typing import List, Optional
from uuid import UUID
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session
from sqlalchemy import or_

from workshop.api.deps import RequirePermission, get_db
from workshop.core.rbac.checker import Principal
from workshop.db.models import AuditLog
from workshop.db.tenant import get_scoped_or_404

router = APIRouter(prefix="/audit-logs", tags=["audit"])


# Schemas
class AuditLogResponse(BaseModel):
    id: UUID
    organization_id: UUID
    actor_user_id: Optional[UUID]
    action: str
    resource_type: str
    resource_id: Optional[UUID]
    severity: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    old_value: Optional[dict]
    new_value: Optional[dict]
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    items: List[AuditLogResponse]
    total: int
    page: int
    per_page: int


# Endpoints
@router.get("", response_model=AuditLogListResponse)
def list_audit_logs(
    db: Session = Depends(get_db),
    principal: Principal = Depends(RequirePermission("audit_logs.view")),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    actor_user_id: Optional[UUID] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[UUID] = None,
    severity: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    search: Optional[str] = None,
):
    """
    List audit entries of the current organization, newest first.

    Supports filtering by actor, action, resource, severity, and date range.
    """
    query = db.query(AuditLog).filter(AuditLog.organization_id == principal.organization_id)

    if actor_user_id:
        query = query.filter(AuditLog.actor_user_id == actor_user_id)

    if action:
        query = query.filter(AuditLog.action == action)

    if resource_type:
        query = query.filter(AuditLog.resource_type == resource_type)

    if resource_id:
        query = query.filter(AuditLog.resource_id == resource_id)

    if severity:
        query = query.filter(AuditLog.severity == severity)

    if start_date:
        query = query.filter(AuditLog.created_at >= start_date)

    if end_date:
        query = query.filter(AuditLog.created_at <= end_date)

    if search:
        query = query.filter(
            or_(
                AuditLog.action.ilike(f"%{search}%"),
                AuditLog.resource_type.ilike(f"%{search}%"),
            )
        )

    total = query.count()
    logs = query.order_by(AuditLog.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{log_id}", response_model=AuditLogResponse)
def get_audit_log(
    log_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(RequirePermission("audit_logs.view")),
):
    """Get a specific audit log entry."""
    return get_scoped_or_404(db, AuditLog, log_id, principal.organization_id, "Audit log")
