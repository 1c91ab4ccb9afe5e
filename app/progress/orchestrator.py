"""Per-student progress report assembly across divisions."""

from __future__ import annotations

import copy
import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date
from graphlib import CycleError, TopologicalSorter
from typing import Protocol

from app.progress.aggregation import referenced_ids
from app.progress.division_rules import default_registry
from app.progress.evaluator import PASS_ONE, PASS_TWO, evaluation_pass, run_pass
from app.progress.explain import build_requirement_progress, round_half_up
from app.progress.ledger import ProgressMap
from app.progress.rules import DivisionRuleRegistry
from app.progress.schema import (
    AXES,
    Axis,
    ClinicalRecord,
    DivisionProgress,
    Requirement,
)
from apps.vault.app.services.audit import log_structured_event

_logger = logging.getLogger(__name__)


class ProgressSource(Protocol):
    def list_requirements(self) -> list[Requirement]:
        """Return every requirement definition."""

    def list_student_records(self, student_id: str) -> list[ClinicalRecord]:
        """Return the student's confirmed and provisional records."""


def requirement_sort_key(requirement: Requirement) -> tuple[int, str, str]:
    return (requirement.display_order, requirement.requirement_type, requirement.requirement_id)


def _record_sort_key(record: ClinicalRecord) -> tuple[date, str]:
    return (record.performed_on or date.min, record.record_id)


def _pass_two_order(requirements: Sequence[Requirement]) -> list[Requirement]:
    """Pass-2 requirements ordered so that derived sources are computed first."""
    pass_two = [item for item in requirements if evaluation_pass(item) == PASS_TWO]
    by_id = {item.requirement_id: item for item in pass_two}
    graph = {
        item.requirement_id: [
            source for source in referenced_ids(item.aggregation) if source in by_id
        ]
        for item in pass_two
    }
    try:
        ordered_ids = list(TopologicalSorter(graph).static_order())
    except CycleError as exc:
        _logger.warning("Derived requirement cycle %s; using display order", exc.args[1])
        return pass_two
    return [by_id[item] for item in ordered_ids]


def evaluate_division(
    requirements: Sequence[Requirement],
    records: Sequence[ClinicalRecord],
    *,
    registry: DivisionRuleRegistry,
) -> ProgressMap:
    """Run pass 1, pass 2 and the division's rule; return the progress map."""
    ordered = sorted(requirements, key=requirement_sort_key)
    ordered_records = sorted(records, key=_record_sort_key)
    progress: ProgressMap = {}

    run_pass(ordered, records=ordered_records, progress=progress, pass_number=PASS_ONE)
    run_pass(
        _pass_two_order(ordered),
        records=ordered_records,
        progress=progress,
        pass_number=PASS_TWO,
        catalog=ordered,
    )

    division_code = ordered[0].division_code if ordered else None
    rule = registry.get(division_code)
    if rule is None:
        return progress

    snapshot = copy.deepcopy(progress)
    try:
        rule.apply(ordered, ordered_records, progress)
    except Exception as exc:
        _logger.exception("Division rule for %s failed; keeping pre-rule progress", division_code)
        log_structured_event(
            "progress.division_rule.failed",
            division_code=division_code,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return snapshot
    return progress


def completion_pct(
    requirements: Iterable[Requirement],
    progress: ProgressMap,
    axis: Axis,
) -> int:
    """Average capped completion ratio over requirements tracked on ``axis``."""
    ratios: list[float] = []
    for requirement in requirements:
        if requirement.is_source_only:
            continue
        minimum = requirement.minimum(axis)
        if minimum <= 0:
            if not requirement.is_exam:
                continue
            minimum = 1
        current = progress[requirement.requirement_id].confirmed(axis)
        ratios.append(min(current / minimum, 1.0))
    if not ratios:
        return 0
    return int(round_half_up(sum(ratios) / len(ratios) * 100))


def _group_by_division(
    requirements: Sequence[Requirement],
    records: Sequence[ClinicalRecord],
) -> dict[str, tuple[list[Requirement], list[ClinicalRecord]]]:
    requirements_by_id = {item.requirement_id: item for item in requirements}
    grouped: dict[str, tuple[list[Requirement], list[ClinicalRecord]]] = defaultdict(
        lambda: ([], [])
    )
    for requirement in requirements:
        grouped[requirement.division_id][0].append(requirement)
    for record in records:
        if record.requirement_id is None or not record.qualifies:
            continue
        requirement = requirements_by_id.get(record.requirement_id)
        if requirement is None:
            _logger.debug(
                "Record %s references unknown requirement %s",
                record.record_id,
                record.requirement_id,
            )
            continue
        grouped[requirement.division_id][1].append(record)
    return dict(grouped)


def build_progress_report(
    requirements: Sequence[Requirement],
    records: Sequence[ClinicalRecord],
    *,
    registry: DivisionRuleRegistry | None = None,
) -> list[DivisionProgress]:
    """Compute per-division progress for one student's records."""
    if registry is None:
        registry = default_registry()

    divisions: list[DivisionProgress] = []
    for division_id, (division_requirements, division_records) in _group_by_division(
        requirements, records
    ).items():
        progress = evaluate_division(division_requirements, division_records, registry=registry)
        ordered = sorted(division_requirements, key=requirement_sort_key)
        requirements_by_id = {item.requirement_id: item for item in ordered}
        head = ordered[0]
        pct = {axis: completion_pct(ordered, progress, axis) for axis in AXES}
        divisions.append(
            DivisionProgress(
                division_id=division_id,
                division_code=head.division_code,
                division_name=head.division_label,
                rsu_completion_pct=pct["rsu"],
                cda_completion_pct=pct["cda"],
                requirements=[
                    build_requirement_progress(
                        requirement,
                        progress[requirement.requirement_id],
                        progress=progress,
                        requirements_by_id=requirements_by_id,
                    )
                    for requirement in ordered
                ],
            )
        )
    return sorted(divisions, key=lambda item: (item.division_name, item.division_id))


def compute_student_progress(
    source: ProgressSource,
    *,
    student_id: str,
    registry: DivisionRuleRegistry | None = None,
) -> list[DivisionProgress]:
    """Fetch a student's inputs from ``source`` and build the report.

    Source failures propagate unchanged.
    """
    requirements = source.list_requirements()
    records = [
        record
        for record in source.list_student_records(student_id)
        if record.student_id == student_id
    ]
    return build_progress_report(requirements, records, registry=registry)
