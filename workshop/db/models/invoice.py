import uuid
from decimal import Decimal
from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from workshop.db.base import Base, utcnow
from workshop.db.tenant import TenantScoped


class PaymentStatus:
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"

    ALL = (UNPAID, PARTIAL, PAID)


class Invoice(TenantScoped, Base):
    """Tenant-scoped business entity protected by the authorization core."""

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("organization_id", "invoice_number", name="uq_invoices_organization_id_invoice_number"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    invoice_number = Column(String(50), nullable=False)
    customer_name = Column(String(255), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    tax_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    discount_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    notes = Column(Text)

    # Payment fields
    paid_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID)
    payment_method = Column(String(50))
    paid_at = Column(DateTime)

    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number}>"
