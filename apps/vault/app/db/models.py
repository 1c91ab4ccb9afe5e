"""ORM models for the requirement catalog and clinical records."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from apps.vault.app.db.base import Base


class Division(Base):
    __tablename__ = "divisions"

    division_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    clinic: Mapped[str] = mapped_column(String(16), nullable=False, default="N/A")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Student(Base):
    __tablename__ = "students"

    student_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Patient(Base):
    __tablename__ = "patients"

    patient_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    hn: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class TreatmentStep(Base):
    __tablename__ = "treatment_steps"

    step_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    step_name: Mapped[str] = mapped_column(String(255), nullable=False)
    step_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class RequirementList(Base):
    __tablename__ = "requirement_list"

    requirement_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    division_id: Mapped[str] = mapped_column(
        ForeignKey("divisions.division_id"), nullable=False, index=True
    )
    requirement_type: Mapped[str] = mapped_column(String(255), nullable=False)
    cda_requirement_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    minimum_rsu: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    minimum_cda: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    rsu_unit: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cda_unit: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_exam: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_selectable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    default_rsu: Mapped[float | None] = mapped_column(Float, nullable=True)
    default_cda: Mapped[float | None] = mapped_column(Float, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    aggregation_config: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class TreatmentRecord(Base):
    __tablename__ = "treatment_records"

    record_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    student_id: Mapped[str] = mapped_column(
        ForeignKey("students.student_id"), nullable=False, index=True
    )
    patient_id: Mapped[str | None] = mapped_column(
        ForeignKey("patients.patient_id"), nullable=True
    )
    requirement_id: Mapped[str | None] = mapped_column(
        ForeignKey("requirement_list.requirement_id"), nullable=True, index=True
    )
    step_id: Mapped[str | None] = mapped_column(
        ForeignKey("treatment_steps.step_id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="planned", index=True)
    rsu_units: Mapped[float | None] = mapped_column(Float, nullable=True)
    cda_units: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_exam: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    exam_flags: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    hn: Mapped[str | None] = mapped_column(String(64), nullable=True)
    patient_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    severity: Mapped[float | None] = mapped_column(Float, nullable=True)
    book_number: Mapped[float | None] = mapped_column(Float, nullable=True)
    page_number: Mapped[float | None] = mapped_column(Float, nullable=True)
    performed_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
