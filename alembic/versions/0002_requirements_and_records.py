"""Create requirement catalog and treatment record tables.

Revision ID: 0002_requirements_records
Revises: 0001_clinical_catalog
Create Date: 2026-02-25
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002_requirements_records"
down_revision: str | None = "0001_clinical_catalog"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "requirement_list",
        sa.Column("requirement_id", sa.String(length=36), primary_key=True),
        sa.Column(
            "division_id",
            sa.String(length=36),
            sa.ForeignKey("divisions.division_id"),
            nullable=False,
        ),
        sa.Column("requirement_type", sa.String(length=255), nullable=False),
        sa.Column("cda_requirement_type", sa.String(length=255), nullable=True),
        sa.Column("minimum_rsu", sa.Float(), nullable=False, server_default="0"),
        sa.Column("minimum_cda", sa.Float(), nullable=False, server_default="0"),
        sa.Column("rsu_unit", sa.String(length=64), nullable=True),
        sa.Column("cda_unit", sa.String(length=64), nullable=True),
        sa.Column("is_exam", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_selectable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("default_rsu", sa.Float(), nullable=True),
        sa.Column("default_cda", sa.Float(), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("aggregation_config", _JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_requirement_list_division_id", "requirement_list", ["division_id"])

    op.create_table(
        "treatment_records",
        sa.Column("record_id", sa.String(length=36), primary_key=True),
        sa.Column(
            "student_id",
            sa.String(length=36),
            sa.ForeignKey("students.student_id"),
            nullable=False,
        ),
        sa.Column(
            "patient_id",
            sa.String(length=36),
            sa.ForeignKey("patients.patient_id"),
            nullable=True,
        ),
        sa.Column(
            "requirement_id",
            sa.String(length=36),
            sa.ForeignKey("requirement_list.requirement_id"),
            nullable=True,
        ),
        sa.Column(
            "step_id",
            sa.String(length=36),
            sa.ForeignKey("treatment_steps.step_id"),
            nullable=True,
        ),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="planned"),
        sa.Column("rsu_units", sa.Float(), nullable=True),
        sa.Column("cda_units", sa.Float(), nullable=True),
        sa.Column("is_exam", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("exam_flags", _JSON, nullable=True),
        sa.Column("hn", sa.String(length=64), nullable=True),
        sa.Column("patient_name", sa.Text(), nullable=True),
        sa.Column("severity", sa.Float(), nullable=True),
        sa.Column("book_number", sa.Float(), nullable=True),
        sa.Column("page_number", sa.Float(), nullable=True),
        sa.Column("performed_on", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_treatment_records_student_id", "treatment_records", ["student_id"])
    op.create_index(
        "ix_treatment_records_requirement_id", "treatment_records", ["requirement_id"]
    )
    op.create_index("ix_treatment_records_status", "treatment_records", ["status"])


def downgrade() -> None:
    op.drop_index("ix_treatment_records_status", table_name="treatment_records")
    op.drop_index("ix_treatment_records_requirement_id", table_name="treatment_records")
    op.drop_index("ix_treatment_records_student_id", table_name="treatment_records")
    op.drop_table("treatment_records")

    op.drop_index("ix_requirement_list_division_id", table_name="requirement_list")
    op.drop_table("requirement_list")
