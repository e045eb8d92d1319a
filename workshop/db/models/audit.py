"""Audit log model for permission and role administration.

This table is APPEND-ONLY. Database triggers reject UPDATE and DELETE, and
the ORM refuses to flush either for an existing entry.
"""

import uuid
from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy import Column, String, DateTime, JSON, Text, event
from sqlalchemy.dialects.postgresql import UUID

from workshop.db.base import Base, utcnow
from workshop.db.tenant import TenantScoped


class AuditSeverity(str, Enum):
    """Severity levels for audit log entries."""
    INFO = "info"         # Routine administration
    WARNING = "warning"   # Destructive or access-reducing changes
    CRITICAL = "critical" # Changes to admin access or user status


class AuditLog(TenantScoped, Base):
    """
    Immutable audit log entry.

    Actor and resource ids are stored without foreign keys so that entries
    survive deletion of the rows they describe.
    """
    __tablename__ = "audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    # Actor information
    actor_user_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    # Action details
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(UUID(as_uuid=True), nullable=True, index=True)

    # Change tracking
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)

    severity = Column(String(20), nullable=False, default=AuditSeverity.INFO.value, index=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.resource_type} by user {self.actor_user_id}>"

    @classmethod
    def create_entry(
        cls,
        organization_id: uuid.UUID,
        action: str,
        resource_type: str,
        *,
        actor_user_id: Optional[uuid.UUID] = None,
        resource_id: Optional[uuid.UUID] = None,
        old_value: Optional[Dict[str, Any]] = None,
        new_value: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> "AuditLog":
        """
        Factory method to create a new audit log entry.

        Args:
            organization_id: Organization the action happened in
            action: Action performed (e.g. 'role.create', 'permissions.replace')
            resource_type: Type of resource (e.g. 'role', 'user')
            actor_user_id: User performing the action (None for system actions)
            resource_id: ID of affected resource
            old_value: Snapshot before the change
            new_value: Snapshot after the change
            ip_address: Client IP address
            user_agent: Client user agent string
            severity: Log severity level
        """
        return cls(
            organization_id=organization_id,
            action=action,
            resource_type=resource_type,
            actor_user_id=actor_user_id,
            resource_id=resource_id,
            old_value=old_value,
            new_value=new_value,
            ip_address=ip_address,
            user_agent=user_agent,
            severity=severity.value if isinstance(severity, AuditSeverity) else severity,
        )


@event.listens_for(AuditLog, "before_update")
def _reject_update(mapper, connection, target):
    raise ValueError(f"Audit logs are immutable and cannot be updated. Record ID: {target.id}")


@event.listens_for(AuditLog, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ValueError(f"Audit logs are immutable and cannot be deleted. Record ID: {target.id}")
