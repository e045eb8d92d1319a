"""Audit recording for permission and role administration.

Entries are written in the caller's session and transaction, so an
administrative change and its audit entry commit or roll back together.
A failed audit write raises InternalError and the change is abandoned.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workshop.core.errors import InternalError
from workshop.db.models.audit import AuditLog, AuditSeverity

logger = logging.getLogger(__name__)

# Sensitive fields to redact from snapshots
SENSITIVE_FIELDS = {
    "password",
    "token",
    "access_token",
    "refresh_token",
    "api_key",
    "secret",
}


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    # Check X-Forwarded-For header (set by reverse proxies)
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # Take the first IP (original client)
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def redact_sensitive(data: Any) -> Any:
    """Redact sensitive fields from data."""
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if k.lower() in SENSITIVE_FIELDS else redact_sensitive(v)
            for k, v in data.items()
        }
    elif isinstance(data, list):
        return [redact_sensitive(item) for item in data]
    return data


class AuditRecorder:
    """
    Appends audit entries within an open session.

    Usage:
        recorder = AuditRecorder.for_request(db, request)
        recorder.record(
            actor_id=principal.user_id,
            organization_id=principal.organization_id,
            action="role.create",
            resource_type="role",
            resource_id=role.id,
            new_value={"key": role.key},
        )
    """

    def __init__(self, db: Session, ip_address: Optional[str] = None, user_agent: Optional[str] = None):
        self.db = db
        self.ip_address = ip_address
        self.user_agent = user_agent

    @classmethod
    def for_request(cls, db: Session, request: Request) -> "AuditRecorder":
        return cls(db, get_client_ip(request), request.headers.get("user-agent"))

    def record(
        self,
        actor_id: Optional[uuid.UUID],
        organization_id: uuid.UUID,
        action: str,
        resource_type: str,
        resource_id: Optional[uuid.UUID] = None,
        old_value: Optional[Dict[str, Any]] = None,
        new_value: Optional[Dict[str, Any]] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> AuditLog:
        """Append one entry and flush it; raise InternalError if that fails."""
        entry = AuditLog.create_entry(
            organization_id=organization_id,
            action=action,
            resource_type=resource_type,
            actor_user_id=actor_id,
            resource_id=resource_id,
            old_value=redact_sensitive(old_value) if old_value else None,
            new_value=redact_sensitive(new_value) if new_value else None,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            severity=severity,
        )
        try:
            self.db.add(entry)
            self.db.flush()
        except SQLAlchemyError as e:
            logger.exception("Audit write failed for %s on %s %s", action, resource_type, resource_id)
            raise InternalError(f"audit write failed: {action}") from e
        return entry
