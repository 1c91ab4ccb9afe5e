"""Create divisions, students, patients and treatment step tables.

Revision ID: 0001_clinical_catalog
Revises:
Create Date: 2026-02-20
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_clinical_catalog"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "divisions",
        sa.Column("division_id", sa.String(length=36), primary_key=True),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("clinic", sa.String(length=16), nullable=False, server_default="N/A"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("code", name="uq_divisions_code"),
    )

    op.create_table(
        "students",
        sa.Column("student_id", sa.String(length=36), primary_key=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "patients",
        sa.Column("patient_id", sa.String(length=36), primary_key=True),
        sa.Column("hn", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_patients_hn", "patients", ["hn"])

    op.create_table(
        "treatment_steps",
        sa.Column("step_id", sa.String(length=36), primary_key=True),
        sa.Column("step_name", sa.String(length=255), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_table("treatment_steps")
    op.drop_index("ix_patients_hn", table_name="patients")
    op.drop_table("patients")
    op.drop_table("students")
    op.drop_table("divisions")
