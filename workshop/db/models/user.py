import uuid
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, validates

from workshop.db.base import Base, utcnow
from workshop.db.tenant import TenantScoped


class User(TenantScoped, Base):
    """Profile of a principal.

    ``id`` is the identity provider's user id. ``organization_id`` is
    nullable at the storage level so that an unprovisioned profile can be
    detected and rejected by the authentication gate, but it can never be
    changed once set.
    """

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="users")
    role_assignments = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="UserRole.user_id",
        passive_deletes=True,
    )
    permission_overrides = relationship(
        "UserPermissionOverride",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="UserPermissionOverride.user_id",
        passive_deletes=True,
    )

    @validates("organization_id")
    def _freeze_organization(self, key, value):
        current = self.__dict__.get("organization_id")
        if current is not None and value != current:
            raise ValueError("organization_id cannot be changed once set")
        return value

    def __repr__(self) -> str:
        return f"<User {self.email}>"
