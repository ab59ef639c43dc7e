"""Add linked identities.

Revision ID: 0002_linked_identities
Revises: 0001_initial_schema
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_linked_identities"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "linked_identities",
        sa.Column("primary_id", sa.String(length=255), primary_key=True),
        sa.Column("linked_id", sa.String(length=255), primary_key=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_linked_identities_primary",
        "linked_identities",
        ["primary_id"],
    )
    op.create_index(
        "ix_linked_identities_linked",
        "linked_identities",
        ["linked_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_linked_identities_linked", table_name="linked_identities")
    op.drop_index("ix_linked_identities_primary", table_name="linked_identities")
    op.drop_table("linked_identities")
