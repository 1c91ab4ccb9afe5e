import logging
from collections.abc import Sequence
from typing import Any

import pytest

from app.progress import orchestrator
from app.progress.canonical import report_checksum
from app.progress.division_rules import default_registry
from app.progress.ledger import ProgressMap
from app.progress.orchestrator import (
    build_progress_report,
    completion_pct,
    compute_student_progress,
    evaluate_division,
)
from app.progress.rules import DivisionRuleRegistry
from app.progress.schema import ClinicalRecord, Requirement


def _requirement(
    requirement_id: str,
    *,
    division: str = "OPER",
    **overrides: Any,
) -> Requirement:
    payload: dict[str, Any] = {
        "requirement_id": requirement_id,
        "division_id": f"div-{division.lower()}",
        "division_code": division,
        "division_name": division.title(),
        "requirement_type": requirement_id,
    }
    payload.update(overrides)
    return Requirement.model_validate(payload)


def _record(
    record_id: str,
    requirement_id: str | None,
    *,
    status: str = "verified",
    student_id: str = "stu-1",
    **overrides: Any,
) -> ClinicalRecord:
    payload: dict[str, Any] = {
        "record_id": record_id,
        "student_id": student_id,
        "requirement_id": requirement_id,
        "status": status,
    }
    payload.update(overrides)
    return ClinicalRecord.model_validate(payload)


class _ExplodingRule:
    def apply(
        self,
        requirements: Sequence[Requirement],
        records: Sequence[ClinicalRecord],
        progress: ProgressMap,
    ) -> None:
        progress[requirements[0].requirement_id].rsu += 100
        raise RuntimeError("boom")


class _StaticSource:
    def __init__(self, requirements: list[Requirement], records: list[ClinicalRecord]) -> None:
        self._requirements = requirements
        self._records = records

    def list_requirements(self) -> list[Requirement]:
        return self._requirements

    def list_student_records(self, student_id: str) -> list[ClinicalRecord]:
        return self._records


class _BrokenSource(_StaticSource):
    def list_student_records(self, student_id: str) -> list[ClinicalRecord]:
        raise ConnectionError("record store unavailable")


def test_report_groups_by_division_and_sorts_by_name() -> None:
    requirements = [
        _requirement("Scaling", division="PERIO", minimum_rsu=2),
        _requirement("Class I", division="OPER", minimum_rsu=1),
        _requirement("Crown", division="FIXED", minimum_rsu=1),
    ]
    records = [
        _record("r1", "Scaling", rsu_units=1),
        _record("r2", "Class I", rsu_units=1),
        _record("r3", None, rsu_units=5),
        _record("r4", "Unknown", rsu_units=5),
    ]

    report = build_progress_report(requirements, records, registry=DivisionRuleRegistry())

    assert [item.division_name for item in report] == ["Fixed", "Oper", "Perio"]
    by_code = {item.division_code: item for item in report}
    assert by_code["PERIO"].requirements[0].current_rsu == 1
    assert by_code["PERIO"].rsu_completion_pct == 50
    assert by_code["OPER"].rsu_completion_pct == 100
    assert by_code["FIXED"].rsu_completion_pct == 0
    assert by_code["FIXED"].requirements[0].rsu_records == []


def test_requirements_follow_display_order_then_label() -> None:
    requirements = [
        _requirement("b-late", requirement_type="Zeta", display_order=2),
        _requirement("a-early", requirement_type="Beta", display_order=1),
        _requirement("c-tie", requirement_type="Alpha", display_order=1),
    ]

    report = build_progress_report(requirements, [], registry=DivisionRuleRegistry())

    ordered = [item.requirement_id for item in report[0].requirements]
    assert ordered == ["c-tie", "a-early", "b-late"]


def test_completion_pct_skips_source_only_and_uses_implicit_exam_minimum() -> None:
    requirements = [
        _requirement("half", minimum_rsu=4),
        _requirement("pool", minimum_rsu=10, aggregation_config={"type": "source_only"}),
        _requirement("exam", is_exam=True),
        _requirement("untracked"),
    ]
    records = [
        _record("r1", "half", rsu_units=2),
        _record("r2", "exam", is_exam=True),
        _record("r3", "exam", is_exam=True),
    ]

    progress = evaluate_division(requirements, records, registry=DivisionRuleRegistry())

    assert completion_pct(requirements, progress, "rsu") == 75
    assert completion_pct(requirements, progress, "cda") == 100
    assert completion_pct(requirements[1:2], progress, "rsu") == 0


def test_rule_failure_degrades_to_pre_rule_progress(monkeypatch, caplog) -> None:
    events: list[tuple[str, dict[str, Any]]] = []

    def fake_log_structured_event(event_type: str, **fields: Any) -> str:
        events.append((event_type, fields))
        return event_type

    monkeypatch.setattr(orchestrator, "log_structured_event", fake_log_structured_event)
    requirements = [_requirement("Class I", minimum_rsu=2)]
    records = [_record("r1", "Class I", rsu_units=1)]

    with caplog.at_level(logging.ERROR, logger="app.progress.orchestrator"):
        report = build_progress_report(
            requirements,
            records,
            registry=DivisionRuleRegistry({"oper": _ExplodingRule()}),
        )

    assert report[0].requirements[0].current_rsu == 1
    assert report[0].rsu_completion_pct == 50
    assert events == [
        (
            "progress.division_rule.failed",
            {"division_code": "OPER", "error_type": "RuntimeError", "error": "boom"},
        )
    ]
    assert "Division rule for OPER failed" in caplog.text


def test_derived_scenario_sums_sources_in_pass_two() -> None:
    requirements = [
        _requirement(
            "X",
            minimum_rsu=3,
            is_selectable=False,
            aggregation_config={
                "type": "derived",
                "source_ids": ["Y", "Z"],
                "operation": "sum_both",
            },
        ),
        _requirement("Y", aggregation_config={"type": "source_only"}),
        _requirement("Z", aggregation_config={"type": "source_only"}),
    ]
    records = [
        _record("r1", "Y", rsu_units=1),
        _record("r2", "Y", rsu_units=1),
        _record("r3", "Z", rsu_units=1),
    ]

    report = build_progress_report(requirements, records, registry=DivisionRuleRegistry())

    derived = report[0].requirements[0]
    assert derived.requirement_id == "X"
    assert derived.current_rsu == 3
    assert derived.calc_method == "Derived"
    assert derived.rsu_calc_hint == "Y 2 + Z 1 = 3"
    assert report[0].rsu_completion_pct == 100


def test_count_met_scenario() -> None:
    sources = [f"S{index}" for index in range(1, 7)]
    requirements = [
        _requirement(
            "R",
            minimum_rsu=6,
            aggregation_config={"type": "count_met", "source_ids": sources},
        ),
        *(_requirement(item, minimum_rsu=1, display_order=1) for item in sources),
    ]
    records = [_record(f"r-{item}", item, rsu_units=1) for item in sources[:4]]

    report = build_progress_report(requirements, records, registry=DivisionRuleRegistry())

    recall = report[0].requirements[0]
    assert recall.calc_method == "Met"
    assert (recall.current_rsu, recall.current_cda) == (4, 0)
    assert (recall.pending_rsu, recall.pending_cda) == (0, 0)
    assert recall.rsu_calc_hint == "4 of 6 prerequisites met: S1 + S2 + S3 + S4"


def test_derived_reads_pre_rule_totals() -> None:
    requirements = [
        _requirement("Class I", minimum_rsu=3, aggregation_config={"type": "count"}),
        _requirement("Class II", minimum_rsu=2, aggregation_config={"type": "count"}),
        _requirement(
            "All Classes",
            display_order=9,
            aggregation_config={"type": "derived", "source_ids": ["Class I", "Class II"]},
        ),
    ]
    records = [_record(f"r{index}", "Class II") for index in range(5)]

    progress = evaluate_division(requirements, records, registry=default_registry())

    assert progress["Class I"].rsu == 3
    assert progress["Class II"].rsu == 2
    assert progress["All Classes"].rsu == 5


def test_pass_two_runs_in_dependency_order() -> None:
    requirements = [
        _requirement(
            "outer",
            display_order=1,
            aggregation_config={"type": "derived", "source_ids": ["inner"]},
        ),
        _requirement(
            "inner",
            display_order=2,
            aggregation_config={"type": "derived", "source_ids": ["base"]},
        ),
        _requirement("base", display_order=3),
    ]

    progress = evaluate_division(
        requirements,
        [_record("r1", "base", rsu_units=2)],
        registry=DivisionRuleRegistry(),
    )

    assert progress["inner"].rsu == 2
    assert progress["outer"].rsu == 2


def test_pass_two_cycle_falls_back_to_display_order(caplog) -> None:
    requirements = [
        _requirement("left", aggregation_config={"type": "derived", "source_ids": ["right"]}),
        _requirement("right", aggregation_config={"type": "derived", "source_ids": ["left"]}),
    ]

    with caplog.at_level(logging.WARNING, logger="app.progress.orchestrator"):
        progress = evaluate_division(requirements, [], registry=DivisionRuleRegistry())

    assert progress["left"].rsu == 0
    assert "Derived requirement cycle" in caplog.text


def test_report_is_byte_identical_across_runs() -> None:
    requirements = [
        _requirement("Class I", minimum_rsu=3, aggregation_config={"type": "count"}),
        _requirement("Class II", minimum_rsu=2, aggregation_config={"type": "count"}),
        _requirement("PRR", minimum_rsu=1, aggregation_config={"type": "count"}),
    ]
    records = [_record(f"r{index}", "Class II") for index in range(4)] + [
        _record("p1", "PRR"),
        _record("p2", "PRR", status="rejected"),
    ]

    first = build_progress_report(requirements, records)
    second = build_progress_report(requirements, list(reversed(records)))

    assert report_checksum(first) == report_checksum(second)


def test_compute_student_progress_keeps_only_that_student() -> None:
    source = _StaticSource(
        [_requirement("Class I", minimum_rsu=2)],
        [
            _record("r1", "Class I", rsu_units=1),
            _record("r2", "Class I", rsu_units=1, student_id="stu-2"),
        ],
    )

    report = compute_student_progress(source, student_id="stu-1")

    assert report[0].requirements[0].current_rsu == 1


def test_compute_student_progress_propagates_source_failures() -> None:
    source = _BrokenSource([_requirement("Class I")], [])

    with pytest.raises(ConnectionError, match="record store unavailable"):
        compute_student_progress(source, student_id="stu-1")


def test_completion_pct_rounds_halves_up() -> None:
    requirements = [_requirement(f"req-{index}", minimum_rsu=2) for index in range(4)]

    progress = evaluate_division(
        requirements,
        [_record("r1", "req-0", rsu_units=1)],
        registry=DivisionRuleRegistry(),
    )

    assert completion_pct(requirements, progress, "rsu") == 13
