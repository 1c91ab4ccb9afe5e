"""Pydantic schema for requirement catalogs, clinical records and progress reports."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.progress.aggregation import (
    AggregationConfig,
    CountExamConfig,
    SourceOnlyConfig,
    SumConfig,
    parse_aggregation_config,
)

Axis = Literal["rsu", "cda"]
AXES: tuple[Axis, Axis] = ("rsu", "cda")

RecordStatus = Literal[
    "planned",
    "in_progress",
    "completed",
    "pending_verification",
    "verified",
    "rejected",
    "void",
]

CONFIRMED_STATUSES = frozenset({"verified"})
PENDING_STATUSES = frozenset({"completed", "pending_verification", "rejected"})
QUALIFYING_STATUSES = CONFIRMED_STATUSES | PENDING_STATUSES


class Requirement(BaseModel):
    model_config = ConfigDict(frozen=True)

    requirement_id: str = Field(min_length=1)
    division_id: str = Field(min_length=1)
    division_code: str | None = None
    division_name: str | None = None
    requirement_type: str = Field(min_length=1)
    cda_requirement_type: str | None = None
    minimum_rsu: float = 0
    minimum_cda: float = 0
    rsu_unit: str | None = None
    cda_unit: str | None = None
    is_exam: bool = False
    is_selectable: bool = True
    default_rsu: float | None = None
    default_cda: float | None = None
    display_order: int = 0
    aggregation_config: AggregationConfig | None = None

    @field_validator("aggregation_config", mode="before")
    @classmethod
    def _tolerant_config(cls, value: Any) -> Any:
        return parse_aggregation_config(value)

    @field_validator("minimum_rsu", "minimum_cda", mode="before")
    @classmethod
    def _null_minimum(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def aggregation(self) -> AggregationConfig:
        """Effective configuration, applying the exam and sum defaults."""
        if self.aggregation_config is not None:
            return self.aggregation_config
        if self.is_exam:
            return CountExamConfig()
        return SumConfig()

    @property
    def is_source_only(self) -> bool:
        return isinstance(self.aggregation_config, SourceOnlyConfig)

    def label(self, axis: Axis = "rsu") -> str:
        if axis == "cda" and self.cda_requirement_type:
            return self.cda_requirement_type
        return self.requirement_type

    def minimum(self, axis: Axis) -> float:
        return self.minimum_rsu if axis == "rsu" else self.minimum_cda

    def unit(self, axis: Axis) -> str | None:
        return self.rsu_unit if axis == "rsu" else self.cda_unit

    @property
    def division_label(self) -> str:
        return self.division_name or self.division_code or self.division_id


class ClinicalRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    record_id: str = Field(min_length=1)
    student_id: str = Field(min_length=1)
    requirement_id: str | None = None
    patient_id: str | None = None
    status: RecordStatus
    rsu_units: float = 0
    cda_units: float = 0
    is_exam: bool = False
    exam_flags: dict[str, bool] = Field(default_factory=dict)
    performed_on: date | None = None
    patient_hn: str | None = None
    patient_name: str | None = None
    step_name: str | None = None
    step_order: int | None = None
    severity: float | None = None
    book_number: float | None = None
    page_number: float | None = None

    @field_validator("rsu_units", "cda_units", mode="before")
    @classmethod
    def _null_units(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("exam_flags", mode="before")
    @classmethod
    def _null_flags(cls, value: Any) -> Any:
        return {} if value is None else value

    def units(self, axis: Axis) -> float:
        return self.rsu_units if axis == "rsu" else self.cda_units

    @property
    def case_severity(self) -> float:
        """Recorded severity, or half the RSU units when none was recorded."""
        if self.severity is not None:
            return self.severity
        return self.rsu_units * 0.5

    @property
    def is_confirmed(self) -> bool:
        return self.status in CONFIRMED_STATUSES

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES

    @property
    def qualifies(self) -> bool:
        return self.status in QUALIFYING_STATUSES


class SourceRecord(BaseModel):
    """One record credited on one axis of a requirement, as shown in provenance."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    requirement_id: str | None
    status: RecordStatus
    confirmed: bool
    value: float
    is_exam: bool = False
    performed_on: date | None = None
    patient_hn: str | None = None
    patient_name: str | None = None
    step_name: str | None = None
    via: str | None = None
    transferred_from: str | None = None
    transferred_to: str | None = None

    @classmethod
    def from_record(cls, record: ClinicalRecord, *, value: float) -> SourceRecord:
        return cls(
            record_id=record.record_id,
            requirement_id=record.requirement_id,
            status=record.status,
            confirmed=record.is_confirmed,
            value=value,
            is_exam=record.is_exam,
            performed_on=record.performed_on,
            patient_hn=record.patient_hn,
            patient_name=record.patient_name,
            step_name=record.step_name,
        )


class SubCount(BaseModel):
    verified: int = 0
    pending: int = 0


class RequirementProgress(BaseModel):
    model_config = ConfigDict(extra="forbid")

    requirement_id: str
    requirement_type: str
    cda_requirement_type: str | None
    minimum_rsu: float
    minimum_cda: float
    current_rsu: float
    current_cda: float
    pending_rsu: float
    pending_cda: float
    rsu_unit: str | None
    cda_unit: str | None
    is_exam: bool
    is_selectable: bool
    is_source_only: bool
    calc_method: str
    rsu_calc_hint: str
    cda_calc_hint: str
    rsu_records: list[SourceRecord] = Field(default_factory=list)
    cda_records: list[SourceRecord] = Field(default_factory=list)
    sub_counts: dict[str, SubCount] | None = None


class DivisionProgress(BaseModel):
    model_config = ConfigDict(extra="forbid")

    division_id: str
    division_code: str | None
    division_name: str
    rsu_completion_pct: int
    cda_completion_pct: int
    requirements: list[RequirementProgress] = Field(default_factory=list)
