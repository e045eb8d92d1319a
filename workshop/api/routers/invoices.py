"""Invoice endpoints.

Updates that only touch payment fields pass a relaxed gate open to all
front-desk roles; any other update needs ``invoices.update``. Deleting an
invoice is reserved to administrators regardless of permissions.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from workshop.api.deps import RequirePermission, authenticate, get_db, get_resolver, require_delete_rights
from workshop.core.errors import ConflictError
from workshop.core.rbac.checker import FieldGate, Principal, require_field_permission
from workshop.core.rbac.resolver import PermissionResolver
from workshop.core.rbac.roles import SystemRole
from workshop.db.base import utcnow
from workshop.db.models import Invoice, PaymentStatus
from workshop.db.tenant import get_scoped_or_404

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])

PAYMENT_FIELDS = frozenset({"paid_amount", "payment_status", "payment_method", "paid_at"})

INVOICE_PAYMENT_GATE = FieldGate(
    safe_fields=PAYMENT_FIELDS,
    relaxed_roles=frozenset({
        SystemRole.ADMIN.value,
        SystemRole.CUSTOMER_SERVICE.value,
        SystemRole.RECEPTIONIST.value,
    }),
    strict_permission="invoices.update",
)

PaymentStatusValue = Literal["unpaid", "partial", "paid"]

NOT_NULL_FIELDS = (
    "customer_name", "subtotal", "tax_amount", "discount_amount", "total", "paid_amount", "payment_status",
)


# Schemas
class InvoiceCreate(BaseModel):
    invoice_number: str = Field(..., min_length=1, max_length=50)
    customer_name: str = Field(..., min_length=1, max_length=255)
    subtotal: Decimal = Field(Decimal("0"), ge=0)
    tax_amount: Decimal = Field(Decimal("0"), ge=0)
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    customer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    subtotal: Optional[Decimal] = Field(None, ge=0)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    total: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None
    paid_amount: Optional[Decimal] = Field(None, ge=0)
    payment_status: Optional[PaymentStatusValue] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    paid_at: Optional[datetime] = None

    class Config:
        extra = "forbid"

    @field_validator(*NOT_NULL_FIELDS, mode="before")
    @classmethod
    def _reject_null(cls, value):
        # Omitted fields stay unchanged; NOT NULL columns cannot be cleared
        if value is None:
            raise ValueError("must not be null")
        return value


class InvoiceResponse(BaseModel):
    id: UUID
    organization_id: UUID
    invoice_number: str
    customer_name: str
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    notes: Optional[str]
    paid_amount: Decimal
    payment_status: str
    payment_method: Optional[str]
    paid_at: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


def _payment_status(invoice: Invoice) -> str:
    paid = invoice.paid_amount or Decimal("0")
    if paid <= 0:
        return PaymentStatus.UNPAID
    if paid >= (invoice.total or Decimal("0")):
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


# Endpoints
@router.get("", response_model=List[InvoiceResponse])
def list_invoices(
    payment_status: Optional[PaymentStatusValue] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(RequirePermission("invoices.view")),
):
    query = db.query(Invoice).filter(Invoice.organization_id == principal.organization_id)
    if payment_status:
        query = query.filter(Invoice.payment_status == payment_status)
    return query.order_by(Invoice.created_at.desc()).offset(offset).limit(limit).all()


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(RequirePermission("invoices.view")),
):
    return get_scoped_or_404(db, Invoice, invoice_id, principal.organization_id, "Invoice")


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
def create_invoice(
    body: InvoiceCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(RequirePermission("invoices.create")),
):
    duplicate = db.query(Invoice.id).filter(
        Invoice.organization_id == principal.organization_id,
        Invoice.invoice_number == body.invoice_number,
    ).first()
    if duplicate:
        raise ConflictError(f"invoice number {body.invoice_number} already exists")

    invoice = Invoice(
        organization_id=principal.organization_id,
        created_by=principal.user_id,
        total=body.subtotal + body.tax_amount - body.discount_amount,
        paid_amount=Decimal("0"),
        payment_status=PaymentStatus.UNPAID,
        **body.model_dump(),
    )
    db.add(invoice)
    db.commit()
    db.refresh(invoice)
    return invoice


@router.put("/{invoice_id}", response_model=InvoiceResponse)
def update_invoice(
    invoice_id: UUID,
    body: InvoiceUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(authenticate),
    resolver: PermissionResolver = Depends(get_resolver),
):
    """Update an invoice; the fields sent decide which gate applies."""
    changes = body.model_dump(exclude_unset=True)
    require_field_permission(principal, changes, INVOICE_PAYMENT_GATE, resolver)

    invoice = get_scoped_or_404(db, Invoice, invoice_id, principal.organization_id, "Invoice")
    for field, value in changes.items():
        setattr(invoice, field, value)

    if {"subtotal", "tax_amount", "discount_amount"} & changes.keys() and "total" not in changes:
        invoice.total = invoice.subtotal + invoice.tax_amount - invoice.discount_amount
    if "paid_amount" in changes and "payment_status" not in changes:
        invoice.payment_status = _payment_status(invoice)
    if invoice.payment_status == PaymentStatus.PAID and invoice.paid_at is None:
        invoice.paid_at = utcnow()

    db.commit()
    db.refresh(invoice)
    logger.info("Invoice %s updated by %s: %s", invoice.id, principal.user_id, sorted(changes))
    return invoice


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_delete_rights),
):
    invoice = get_scoped_or_404(db, Invoice, invoice_id, principal.organization_id, "Invoice")
    db.delete(invoice)
    db.commit()
    logger.info("Invoice %s deleted by %s", invoice_id, principal.user_id)
    return None
