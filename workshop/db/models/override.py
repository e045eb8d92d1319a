import uuid
from sqlalchemy import Column, DateTime, Boolean, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from workshop.db.base import Base, utcnow


class UserPermissionOverride(Base):
    """Explicit per-user grant (``is_granted``) or revoke of one permission.

    An override whose ``expires_at`` has passed is inert; it is kept for
    history until the user's overrides are next replaced.
    """

    __tablename__ = "user_permission_overrides"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "permission_id", name="uq_user_permission_overrides_user_id_permission_id"
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    permission_id = Column(
        UUID(as_uuid=True), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False
    )
    is_granted = Column(Boolean, nullable=False)
    reason = Column(Text)
    granted_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    user = relationship("User", back_populates="permission_overrides", foreign_keys=[user_id])
    permission = relationship("Permission")
