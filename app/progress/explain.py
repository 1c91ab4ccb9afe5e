"""Human-readable provenance for every number shown in a progress report."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import assert_never

from app.progress.aggregation import (
    CountConfig,
    CountExamConfig,
    CountMetConfig,
    CountUnionConfig,
    DerivedConfig,
    ExamFlagConfig,
    PerioSeverityConfig,
    PerioTotalCasesConfig,
    SourceOnlyConfig,
    SumConfig,
    SumUnionConfig,
    derived_input_axis,
)
from app.progress.evaluator import case_source_ids
from app.progress.ledger import ProgressEntry, ProgressMap
from app.progress.schema import Axis, Requirement, RequirementProgress, SourceRecord

_AXIS_NAMES = {"rsu": "RSU", "cda": "CDA"}
_UNKNOWN = "unknown requirement"


def round_half_up(value: float, places: int = 0) -> float:
    """Round halves away from zero, as a report reader expects."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def fmt_number(value: float) -> str:
    return f"{round_half_up(value, 2):g}"


def calc_method(requirement: Requirement) -> str:
    """Short label of how a requirement's progress is computed."""
    config = requirement.aggregation
    match config:
        case SumConfig() | SumUnionConfig() | SourceOnlyConfig() | PerioSeverityConfig():
            return "Sum"
        case CountConfig() | CountUnionConfig() | PerioTotalCasesConfig():
            return "Count"
        case CountExamConfig() | ExamFlagConfig():
            return "Exam"
        case DerivedConfig():
            return "Derived"
        case CountMetConfig():
            return "Met"
        case _:
            assert_never(config)


def _label_of(requirement_id: str, requirements_by_id: Mapping[str, Requirement], axis: Axis) -> str:
    requirement = requirements_by_id.get(requirement_id)
    return requirement.label(axis) if requirement else _UNKNOWN


def _joined(ids: Iterable[str], requirements_by_id: Mapping[str, Requirement], axis: Axis) -> str:
    return " + ".join(_label_of(item, requirements_by_id, axis) for item in ids)


def _with_pending(text: str, entry: ProgressEntry, axis: Axis) -> str:
    pending = entry.pending(axis)
    if pending:
        return f"{text} (+{fmt_number(pending)} pending)"
    return text


def _base_hint(
    requirement: Requirement,
    entry: ProgressEntry,
    axis: Axis,
    *,
    progress: ProgressMap,
    requirements_by_id: Mapping[str, Requirement],
) -> str:
    config = requirement.aggregation
    name = _AXIS_NAMES[axis]
    total = fmt_number(_own_total(entry, axis))

    match config:
        case SumConfig() | SourceOnlyConfig():
            text = f"Sum of {name} units over verified records = {total}"
        case CountConfig():
            text = f"Count of verified records = {total}"
        case CountUnionConfig(also_count=extra):
            ids = (requirement.requirement_id, *extra)
            text = f"Count of verified records in {_joined(ids, requirements_by_id, axis)} = {total}"
        case SumUnionConfig(also_sum=extra):
            ids = (requirement.requirement_id, *extra)
            text = (
                f"Sum of {name} units over {_joined(ids, requirements_by_id, axis)} = {total}"
            )
        case CountExamConfig(source_ids=source_ids):
            if source_ids:
                scope = _joined(source_ids, requirements_by_id, axis)
                text = f"Count of verified exam records in {scope} = {total}"
            else:
                text = f"Count of verified exam records in division = {total}"
        case ExamFlagConfig(flag_key=flag_key):
            text = f"Count of verified records with exam toggle '{flag_key}' = {total}"
        case PerioTotalCasesConfig(min_step_order=min_step_order):
            scope = _joined(case_source_ids(config, requirements_by_id), requirements_by_id, axis)
            text = (
                f"Count of verified records in {scope or _UNKNOWN} "
                f"at step {min_step_order} or later = {total}"
            )
        case PerioSeverityConfig():
            scope = _joined(case_source_ids(config, requirements_by_id), requirements_by_id, axis)
            text = f"Sum of severity over {scope or _UNKNOWN} = {total}"
        case DerivedConfig(source_ids=source_ids, operation=operation):
            if operation == "count":
                scope = _joined(source_ids, requirements_by_id, axis)
                text = f"Count of verified records in {scope} = {total}"
            else:
                from_axis = derived_input_axis(operation, axis)
                parts = [
                    f"{_label_of(item, requirements_by_id, axis)} "
                    f"{fmt_number(progress.get(item, ProgressEntry()).confirmed(from_axis))}"
                    for item in source_ids
                ]
                prefix = "" if from_axis == axis else f"{_AXIS_NAMES[from_axis]} of "
                text = f"{prefix}{' + '.join(parts)} = {total}"
        case CountMetConfig(source_ids=source_ids):
            met = [
                item
                for item in source_ids
                if item in requirements_by_id
                and requirements_by_id[item].minimum(axis) > 0
                and progress.get(item, ProgressEntry()).confirmed(axis)
                >= requirements_by_id[item].minimum(axis)
            ]
            text = f"{len(met)} of {len(source_ids)} prerequisites met"
            if met:
                text += f": {_joined(met, requirements_by_id, axis)}"
            return text
        case _:
            assert_never(config)
    return _with_pending(text, entry, axis)


def _own_total(entry: ProgressEntry, axis: Axis) -> float:
    """Confirmed total before any transfer, rebuilt from provenance when transfers happened."""
    received = sum(item.value for item in entry.received(axis))
    sent = sum(
        item.value for item in entry.records(axis) if item.transferred_to is not None
    )
    return entry.confirmed(axis) - received + sent


def _transfer_notes(entry: ProgressEntry, axis: Axis) -> list[str]:
    notes: list[str] = []
    received = Counter(item.transferred_from for item in entry.received(axis))
    for label, count in sorted(received.items(), key=lambda pair: str(pair[0])):
        notes.append(f"+{count} received from {label}")
    sent: dict[str, float] = {}
    for item in entry.records(axis):
        if item.transferred_to is not None:
            sent[item.transferred_to] = sent.get(item.transferred_to, 0.0) + item.value
    for label in sorted(sent):
        notes.append(f"-{fmt_number(sent[label])} sent to {label}")
    return notes


def build_calc_hint(
    requirement: Requirement,
    entry: ProgressEntry,
    axis: Axis,
    *,
    progress: ProgressMap,
    requirements_by_id: Mapping[str, Requirement],
) -> str:
    """Explain how the current value on ``axis`` was derived."""
    hint = _base_hint(
        requirement,
        entry,
        axis,
        progress=progress,
        requirements_by_id=requirements_by_id,
    )
    notes = _transfer_notes(entry, axis)
    if notes:
        hint = f"{hint}; {'; '.join(notes)} -> {fmt_number(entry.confirmed(axis))}"
    return hint


def axis_records(entry: ProgressEntry, axis: Axis) -> list[SourceRecord]:
    """Own records (with transfer annotations) followed by records received via transfer."""
    return [*entry.records(axis), *entry.received(axis)]


def build_requirement_progress(
    requirement: Requirement,
    entry: ProgressEntry,
    *,
    progress: ProgressMap,
    requirements_by_id: Mapping[str, Requirement],
) -> RequirementProgress:
    hints = {
        axis: build_calc_hint(
            requirement,
            entry,
            axis,
            progress=progress,
            requirements_by_id=requirements_by_id,
        )
        for axis in ("rsu", "cda")
    }
    return RequirementProgress(
        requirement_id=requirement.requirement_id,
        requirement_type=requirement.requirement_type,
        cda_requirement_type=requirement.cda_requirement_type,
        minimum_rsu=requirement.minimum_rsu,
        minimum_cda=requirement.minimum_cda,
        current_rsu=round_half_up(entry.rsu, 2),
        current_cda=round_half_up(entry.cda, 2),
        pending_rsu=round_half_up(entry.p_rsu, 2),
        pending_cda=round_half_up(entry.p_cda, 2),
        rsu_unit=requirement.rsu_unit,
        cda_unit=requirement.cda_unit,
        is_exam=requirement.is_exam,
        is_selectable=requirement.is_selectable,
        is_source_only=requirement.is_source_only,
        calc_method=calc_method(requirement),
        rsu_calc_hint=hints["rsu"],
        cda_calc_hint=hints["cda"],
        rsu_records=axis_records(entry, "rsu"),
        cda_records=axis_records(entry, "cda"),
        sub_counts=dict(entry.sub_counts) if entry.sub_counts is not None else None,
    )
