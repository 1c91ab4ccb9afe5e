"""SQLAlchemy-backed requirement and record sources for the progress engine."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.progress.schema import QUALIFYING_STATUSES, ClinicalRecord, Requirement
from apps.vault.app.db.models import (
    Division,
    Patient,
    RequirementList,
    TreatmentRecord,
    TreatmentStep,
)


class SqlProgressSource:
    """Reads the requirement catalog and one student's qualifying records."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def list_requirements(self) -> list[Requirement]:
        rows = self._db.execute(
            select(RequirementList, Division.code, Division.name)
            .join(Division, Division.division_id == RequirementList.division_id)
            .order_by(
                Division.name,
                RequirementList.display_order,
                RequirementList.requirement_type,
                RequirementList.requirement_id,
            )
        ).all()
        return [
            Requirement(
                requirement_id=row.requirement_id,
                division_id=row.division_id,
                division_code=code,
                division_name=name,
                requirement_type=row.requirement_type,
                cda_requirement_type=row.cda_requirement_type,
                minimum_rsu=row.minimum_rsu,
                minimum_cda=row.minimum_cda,
                rsu_unit=row.rsu_unit,
                cda_unit=row.cda_unit,
                is_exam=row.is_exam,
                is_selectable=row.is_selectable,
                default_rsu=row.default_rsu,
                default_cda=row.default_cda,
                display_order=row.display_order,
                aggregation_config=row.aggregation_config,
            )
            for row, code, name in rows
        ]

    def list_student_records(self, student_id: str) -> list[ClinicalRecord]:
        rows = self._db.execute(
            select(
                TreatmentRecord,
                Patient.hn,
                Patient.full_name,
                TreatmentStep.step_name,
                TreatmentStep.step_order,
            )
            .outerjoin(Patient, Patient.patient_id == TreatmentRecord.patient_id)
            .outerjoin(TreatmentStep, TreatmentStep.step_id == TreatmentRecord.step_id)
            .where(
                TreatmentRecord.student_id == student_id,
                TreatmentRecord.requirement_id.is_not(None),
                TreatmentRecord.status.in_(sorted(QUALIFYING_STATUSES)),
            )
            .order_by(TreatmentRecord.performed_on, TreatmentRecord.record_id)
        ).all()
        return [
            ClinicalRecord(
                record_id=row.record_id,
                student_id=row.student_id,
                requirement_id=row.requirement_id,
                patient_id=row.patient_id,
                status=row.status,
                rsu_units=row.rsu_units,
                cda_units=row.cda_units,
                is_exam=row.is_exam,
                exam_flags=row.exam_flags,
                performed_on=row.performed_on,
                patient_hn=hn or row.hn,
                patient_name=full_name or row.patient_name,
                step_name=step_name,
                step_order=step_order,
                severity=row.severity,
                book_number=row.book_number,
                page_number=row.page_number,
            )
            for row, hn, full_name, step_name, step_order in rows
        ]
