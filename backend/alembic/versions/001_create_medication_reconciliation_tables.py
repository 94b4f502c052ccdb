"""Create medication_reconciliation_records table.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Create enum types
    reconciliation_type_enum = postgresql.ENUM(
        "admission",
        "discharge",
        "transfer",
        "periodic_review",
        name="reconciliation_type",
        create_type=False,
    )
    reconciliation_type_enum.create(op.get_bind(), checkfirst=True)

    reconciliation_status_enum = postgresql.ENUM(
        "in_progress",
        "requires_review",
        "completed",
        "approved",
        name="reconciliation_status",
        create_type=False,
    )
    reconciliation_status_enum.create(op.get_bind(), checkfirst=True)

    # Create medication_reconciliation_records table
    op.create_table(
        "medication_reconciliation_records",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("organization_id", sa.String(255), nullable=False),
        sa.Column("resident_id", sa.String(255), nullable=False),
        sa.Column("reconciliation_type", reconciliation_type_enum, nullable=False),
        sa.Column("reconciliation_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("performed_by", sa.String(255), nullable=False),
        sa.Column("reviewed_by", sa.String(255), nullable=True),
        sa.Column("status", reconciliation_status_enum, nullable=False, server_default="in_progress"),
        sa.Column("source_list", postgresql.JSONB(), nullable=False),
        sa.Column("target_list", postgresql.JSONB(), nullable=False),
        sa.Column("discrepancies", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("resolutions", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("clinical_notes", sa.Text(), nullable=True),
        sa.Column("pharmacist_review", postgresql.JSONB(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
    )

    # Create indexes
    op.create_index(
        "ix_medication_reconciliation_records_organization_id",
        "medication_reconciliation_records",
        ["organization_id"],
    )
    op.create_index(
        "ix_medication_reconciliation_records_resident_id",
        "medication_reconciliation_records",
        ["resident_id"],
    )
    op.create_index(
        "ix_medication_reconciliation_records_reconciliation_date",
        "medication_reconciliation_records",
        ["reconciliation_date"],
    )
    op.create_index(
        "ix_medication_reconciliation_records_status",
        "medication_reconciliation_records",
        ["status"],
    )
    # History lookups are per resident within an organization, newest first
    op.create_index(
        "ix_medication_reconciliation_records_org_resident_date",
        "medication_reconciliation_records",
        ["organization_id", "resident_id", "reconciliation_date"],
    )


def downgrade() -> None:
    op.drop_table("medication_reconciliation_records")
    op.execute("DROP TYPE IF EXISTS reconciliation_status")
    op.execute("DROP TYPE IF EXISTS reconciliation_type")
