"""Row-level security policies keyed on the caller's organization

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

The application publishes the authenticated user and organization as the
transaction-local settings ``app.current_user_id`` and
``app.current_organization_id`` (see workshop.db.tenant). These policies
restrict every tenant-scoped table to that organization independently of
the ORM filter.

Policies bind roles that do not own the tables; the application must
connect as such a role. Migrations, run as the owner, are not affected.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, Sequence[str], None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# table -> USING / WITH CHECK expression
POLICIES = {
    "users": (
        "organization_id = app_current_organization_id() OR id = app_current_user_id()"
    ),
    "roles": (
        "organization_id IS NULL OR organization_id = app_current_organization_id()"
    ),
    "role_permissions": (
        "role_id IN (SELECT id FROM roles WHERE organization_id IS NULL "
        "OR organization_id = app_current_organization_id())"
    ),
    "user_roles": (
        "user_id = app_current_user_id() OR user_id IN "
        "(SELECT id FROM users WHERE organization_id = app_current_organization_id())"
    ),
    "user_permission_overrides": (
        "user_id = app_current_user_id() OR user_id IN "
        "(SELECT id FROM users WHERE organization_id = app_current_organization_id())"
    ),
    "audit_logs": "organization_id = app_current_organization_id()",
    "invoices": "organization_id = app_current_organization_id()",
}

# Global roles and their permission links are readable by every tenant but
# writable by none
WRITE_CHECKS = {
    "roles": "organization_id = app_current_organization_id()",
    "role_permissions": (
        "role_id IN (SELECT id FROM roles WHERE organization_id = app_current_organization_id())"
    ),
}


def upgrade() -> None:
    """Create the context functions and enable RLS on tenant-scoped tables."""

    op.execute("""
        CREATE OR REPLACE FUNCTION app_current_organization_id()
        RETURNS uuid AS $fn$
            SELECT NULLIF(current_setting('app.current_organization_id', true), '')::uuid;
        $fn$ LANGUAGE sql STABLE;
    """)
    op.execute("""
        CREATE OR REPLACE FUNCTION app_current_user_id()
        RETURNS uuid AS $fn$
            SELECT NULLIF(current_setting('app.current_user_id', true), '')::uuid;
        $fn$ LANGUAGE sql STABLE;
    """)

    for table, expression in POLICIES.items():
        check = WRITE_CHECKS.get(table, expression)
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;")
        op.execute(f"""
            CREATE POLICY {table}_tenant_isolation ON {table}
            USING ({expression})
            WITH CHECK ({check});
        """)


def downgrade() -> None:
    """Drop the policies and context functions."""
    for table in reversed(list(POLICIES)):
        op.execute(f"DROP POLICY IF EXISTS {table}_tenant_isolation ON {table};")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY;")

    op.execute("DROP FUNCTION IF EXISTS app_current_user_id();")
    op.execute("DROP FUNCTION IF EXISTS app_current_organization_id();")
