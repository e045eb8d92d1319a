"""Fixtures for API tests: one seeded workshop and a neighbouring one."""

from types import SimpleNamespace

import pytest

from workshop.db.seed import get_admin_role, get_role_by_key, seed_organization
from tests.factories import create_invoice, create_user


@pytest.fixture
def workshop(db_session):
    """Committed tenant data; attributes are ids, safe to use across sessions."""
    org = seed_organization(db_session, "Corniche Auto Care")
    other = seed_organization(db_session, "Harbour Auto Care")

    admin = create_user(db_session, org=org, roles=[get_admin_role(db_session, org.id)])
    receptionist = create_user(
        db_session, org=org, roles=[get_role_by_key(db_session, org.id, "receptionist")]
    )
    customer_service = create_user(
        db_session, org=org, roles=[get_role_by_key(db_session, org.id, "customer_service")]
    )
    no_roles = create_user(db_session, org=org)
    other_admin = create_user(db_session, org=other, roles=[get_admin_role(db_session, other.id)])

    invoice = create_invoice(db_session, org=org, invoice_number="INV-1001", created_by=admin)
    other_invoice = create_invoice(db_session, org=other, invoice_number="INV-1001")
    db_session.commit()

    return SimpleNamespace(
        org=org.id,
        other=other.id,
        admin=admin.id,
        receptionist=receptionist.id,
        customer_service=customer_service.id,
        no_roles=no_roles.id,
        other_admin=other_admin.id,
        invoice=invoice.id,
        other_invoice=other_invoice.id,
        receptionist_role=get_role_by_key(db_session, org.id, "receptionist").id,
        admin_role=get_admin_role(db_session, org.id).id,
    )
