"""Seed the permission catalog

Revision ID: 0004
Revises: 0003
Create Date: 2026-10-19

Inserts the catalog keys that are missing. Later catalog changes are
applied by workshop.db.seed.seed_permission_catalog.
"""
from typing import Sequence, Union
import uuid

from alembic import op
import sqlalchemy as sa

from workshop.core.rbac.permissions import catalog_entries

# revision identifiers, used by Alembic.
revision: str = "0004"
down_revision: Union[str, Sequence[str], None] = "0003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Insert every catalog key not present yet."""
    connection = op.get_bind()
    existing = {row[0] for row in connection.execute(sa.text("SELECT key FROM permissions"))}

    for entry in catalog_entries():
        if entry["key"] in existing:
            continue
        connection.execute(
            sa.text("""
                INSERT INTO permissions (id, key, resource, action, category, display_order, is_active)
                VALUES (:id, :key, :resource, :action, :category, :display_order, true)
            """),
            {"id": str(uuid.uuid4()), **entry},
        )


def downgrade() -> None:
    """Remove the seeded catalog."""
    op.execute("DELETE FROM permissions;")
