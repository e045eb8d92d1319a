"""Make audit_logs append-only

Revision ID: 0003
Revises: 0002
Create Date: 2026-10-19

Database triggers reject every UPDATE and DELETE on audit_logs. There is
no bypass: retention, if ever needed, is a separate, reviewed migration.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0003"
down_revision: Union[str, Sequence[str], None] = "0002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create immutability triggers on audit_logs."""

    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_audit_log_change()
        RETURNS TRIGGER AS $trigger$
        BEGIN
            RAISE EXCEPTION 'Audit logs are immutable (% rejected). Record ID: %', TG_OP, OLD.id;
        END;
        $trigger$ LANGUAGE plpgsql;
    """)

    op.execute("""
        CREATE TRIGGER audit_logs_prevent_update
        BEFORE UPDATE ON audit_logs
        FOR EACH ROW
        EXECUTE FUNCTION prevent_audit_log_change();
    """)

    op.execute("""
        CREATE TRIGGER audit_logs_prevent_delete
        BEFORE DELETE ON audit_logs
        FOR EACH ROW
        EXECUTE FUNCTION prevent_audit_log_change();
    """)


def downgrade() -> None:
    """Remove the immutability triggers."""
    op.execute("DROP TRIGGER IF EXISTS audit_logs_prevent_update ON audit_logs;")
    op.execute("DROP TRIGGER IF EXISTS audit_logs_prevent_delete ON audit_logs;")
    op.execute("DROP FUNCTION IF EXISTS prevent_audit_log_change();")
