"""Two-pass aggregation evaluator for one requirement within one division."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Literal, assert_never

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
    is_pass_two,
)
from app.progress.ledger import ProgressEntry, ProgressMap
from app.progress.rules import find_requirement
from app.progress.schema import AXES, Axis, ClinicalRecord, Requirement, SourceRecord

_logger = logging.getLogger(__name__)

PASS_ONE = 1
PASS_TWO = 2

TOTAL_CASE_LABELS = ("Case G", "Case P")
SEVERITY_CASE_LABELS = ("Case P",)

_Mode = Literal["sum", "count", "severity"]


def evaluation_pass(requirement: Requirement) -> int:
    """Return the pass in which a requirement is evaluated."""
    return PASS_TWO if is_pass_two(requirement.aggregation) else PASS_ONE


def _record_value(record: ClinicalRecord, axis: Axis, mode: _Mode) -> float:
    if mode == "count":
        return 1.0
    if mode == "severity":
        return record.case_severity
    return record.units(axis)


def _accumulate(
    entry: ProgressEntry,
    records: Iterable[ClinicalRecord],
    *,
    matches: Callable[[ClinicalRecord], bool],
    mode: _Mode,
    axes: Sequence[Axis] = AXES,
) -> None:
    for record in records:
        if not record.qualifies or not matches(record):
            continue
        for axis in axes:
            value = _record_value(record, axis, mode)
            entry.add_record(axis, SourceRecord.from_record(record, value=value))


def _in_ids(ids: Iterable[str]) -> Callable[[ClinicalRecord], bool]:
    wanted = set(ids)
    return lambda record: record.requirement_id in wanted


def case_source_ids(
    config: PerioTotalCasesConfig | PerioSeverityConfig,
    requirements_by_id: Mapping[str, Requirement],
) -> tuple[str, ...]:
    """Requirement ids a periodontal case total reads, resolving the default case labels."""
    if config.source_ids:
        return config.source_ids
    labels = (
        TOTAL_CASE_LABELS if isinstance(config, PerioTotalCasesConfig) else SEVERITY_CASE_LABELS
    )
    resolved: list[str] = []
    for label in labels:
        requirement = find_requirement(requirements_by_id.values(), label)
        if requirement is not None:
            resolved.append(requirement.requirement_id)
    return tuple(resolved)


def _source_entry(progress: ProgressMap, source_id: str, *, owner: Requirement) -> ProgressEntry:
    entry = progress.get(source_id)
    if entry is None:
        _logger.debug(
            "Requirement %s references missing source %s; treating as zero",
            owner.requirement_id,
            source_id,
        )
        return ProgressEntry()
    return entry


def _derive(
    entry: ProgressEntry,
    requirement: Requirement,
    config: DerivedConfig,
    *,
    records: Sequence[ClinicalRecord],
    progress: ProgressMap,
    requirements_by_id: Mapping[str, Requirement],
) -> None:
    if config.operation == "count":
        _accumulate(entry, records, matches=_in_ids(config.source_ids), mode="count")
        return

    for source_id in config.source_ids:
        source = _source_entry(progress, source_id, owner=requirement)
        source_requirement = requirements_by_id.get(source_id)
        via = source_requirement.requirement_type if source_requirement else None
        for axis in AXES:
            from_axis = derived_input_axis(config.operation, axis)
            entry.credit(axis, source.confirmed(from_axis), confirmed=True)
            entry.credit(axis, source.pending(from_axis), confirmed=False)
            entry.records(axis).extend(
                item.model_copy(update={"via": via}) for item in source.records(from_axis)
            )


def _count_met(
    entry: ProgressEntry,
    requirement: Requirement,
    config: CountMetConfig,
    *,
    progress: ProgressMap,
    requirements_by_id: Mapping[str, Requirement],
) -> None:
    for source_id in config.source_ids:
        source_requirement = requirements_by_id.get(source_id)
        if source_requirement is None:
            continue
        source = _source_entry(progress, source_id, owner=requirement)
        for axis in AXES:
            minimum = source_requirement.minimum(axis)
            if minimum > 0 and source.confirmed(axis) >= minimum:
                entry.credit(axis, 1.0, confirmed=True)


def evaluate_requirement(
    requirement: Requirement,
    *,
    records: Sequence[ClinicalRecord],
    progress: ProgressMap,
    requirements_by_id: Mapping[str, Requirement],
    pass_number: int,
) -> None:
    """Update ``progress`` for one requirement; a no-op outside its own pass.

    ``records`` are the qualifying records of the requirement's division and
    ``progress`` is the division's map, already filled by earlier calls.
    """
    config = requirement.aggregation
    if evaluation_pass(requirement) != pass_number:
        return
    entry = progress.setdefault(requirement.requirement_id, ProgressEntry())
    own = requirement.requirement_id

    match config:
        case SumConfig() | SourceOnlyConfig():
            _accumulate(entry, records, matches=_in_ids([own]), mode="sum")
        case CountConfig():
            _accumulate(entry, records, matches=_in_ids([own]), mode="count")
        case CountUnionConfig(also_count=extra):
            _accumulate(entry, records, matches=_in_ids([own, *extra]), mode="count")
        case SumUnionConfig(also_sum=extra):
            _accumulate(entry, records, matches=_in_ids([own, *extra]), mode="sum")
        case CountExamConfig(source_ids=source_ids):
            scope = set(source_ids) if source_ids else None
            _accumulate(
                entry,
                records,
                matches=lambda record: record.is_exam
                and (scope is None or record.requirement_id in scope),
                mode="count",
            )
        case ExamFlagConfig(flag_key=flag_key):
            _accumulate(
                entry,
                records,
                matches=lambda record: record.exam_flags.get(flag_key) is True,
                mode="count",
            )
        case PerioTotalCasesConfig(min_step_order=min_step_order):
            cases = set(case_source_ids(config, requirements_by_id))
            _accumulate(
                entry,
                records,
                matches=lambda record: record.requirement_id in cases
                and (record.step_order or 0) >= min_step_order,
                mode="count",
                axes=("rsu",),
            )
        case PerioSeverityConfig():
            _accumulate(
                entry,
                records,
                matches=_in_ids(case_source_ids(config, requirements_by_id)),
                mode="severity",
                axes=("rsu",),
            )
        case DerivedConfig():
            _derive(
                entry,
                requirement,
                config,
                records=records,
                progress=progress,
                requirements_by_id=requirements_by_id,
            )
        case CountMetConfig():
            _count_met(
                entry,
                requirement,
                config,
                progress=progress,
                requirements_by_id=requirements_by_id,
            )
        case _:
            assert_never(config)


def run_pass(
    requirements: Sequence[Requirement],
    *,
    records: Sequence[ClinicalRecord],
    progress: ProgressMap,
    pass_number: int,
    catalog: Sequence[Requirement] | None = None,
) -> None:
    """Evaluate ``requirements`` for one pass, in the given order.

    Source lookups resolve against ``catalog``, the division's full requirement
    list, which defaults to ``requirements``.
    """
    requirements_by_id = {
        item.requirement_id: item for item in (requirements if catalog is None else catalog)
    }
    for requirement in requirements:
        progress.setdefault(requirement.requirement_id, ProgressEntry())
    for requirement in requirements:
        evaluate_requirement(
            requirement,
            records=records,
            progress=progress,
            requirements_by_id=requirements_by_id,
            pass_number=pass_number,
        )
