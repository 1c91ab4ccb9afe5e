"""Student progress report service."""

from __future__ import annotations

from sqlalchemy.orm import Session

from app.progress.division_rules import default_registry
from app.progress.orchestrator import compute_student_progress
from app.progress.rules import DivisionRuleRegistry
from app.progress.schema import DivisionProgress
from apps.vault.app.core.config import Settings, get_settings
from apps.vault.app.db.models import Student
from apps.vault.app.services.audit import log_structured_event
from apps.vault.app.services.progress_source import SqlProgressSource


def get_student_progress(
    db: Session,
    *,
    student_id: str,
    settings: Settings | None = None,
) -> list[DivisionProgress]:
    """Build the per-division progress report for one student."""
    settings = settings or get_settings()
    if db.get(Student, student_id) is None:
        raise ValueError(f"Student not found: {student_id}")

    registry = default_registry() if settings.division_rules_enabled else DivisionRuleRegistry()
    report = compute_student_progress(
        SqlProgressSource(db),
        student_id=student_id,
        registry=registry,
    )
    log_structured_event(
        "progress.report.built",
        student_id=student_id,
        divisions=[item.division_code or item.division_id for item in report],
        division_rules_enabled=settings.division_rules_enabled,
    )
    return report
