import json
from pathlib import Path

from app.progress.__main__ import main

FIXTURE = "fixtures/vault_sample.json"


def _requirements_by_id(report: list[dict]) -> dict[str, dict]:
    return {
        item["requirement_id"]: item
        for division in report
        for item in division["requirements"]
    }


def test_report_from_fixture_applies_division_rules(capsys) -> None:
    exit_code = main(["report", "--student-id", "stu-001", "--fixture", FIXTURE])

    report = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert [item["division_name"] for item in report] == [
        "Operative Dentistry",
        "Periodontics",
        "Prosthodontics",
    ]
    assert [(item["rsu_completion_pct"], item["cda_completion_pct"]) for item in report] == [
        (90, 100),
        (67, 100),
        (67, 75),
    ]

    items = _requirements_by_id(report)
    assert (items["oper-class-1"]["current_rsu"], items["oper-class-1"]["current_cda"]) == (4, 2)
    assert items["oper-class-1"]["pending_rsu"] == 1
    assert (items["oper-class-2"]["current_rsu"], items["oper-class-2"]["current_cda"]) == (2, 1)
    assert (items["oper-class-3"]["current_rsu"], items["oper-class-3"]["current_cda"]) == (1, 3)
    assert items["oper-class-4"]["current_rsu"] == 1
    assert items["oper-diastema"]["is_source_only"] is True
    received = [
        record["transferred_from"]
        for record in items["oper-class-3"]["rsu_records"]
        if record["transferred_from"]
    ]
    assert received == ["Class IV"]

    assert items["prosth-rpd"]["sub_counts"] == {
        "MRPD": {"verified": 1, "pending": 0},
        "ARPD": {"verified": 0, "pending": 1},
    }
    assert items["prosth-cd"]["sub_counts"] == {
        "Upper": {"verified": 1, "pending": 0},
        "Lower": {"verified": 0, "pending": 0},
    }
    assert items["prosth-exam"]["calc_method"] == "Exam"

    assert items["perio-case"]["current_rsu"] == 10.5
    assert items["perio-case"]["pending_rsu"] == 3
    assert items["perio-ohi"]["current_rsu"] == 1
    assert (items["perio-recall"]["current_rsu"], items["perio-recall"]["current_cda"]) == (1, 1)


def test_report_without_division_rules(capsys) -> None:
    exit_code = main(
        ["report", "--student-id", "stu-001", "--fixture", FIXTURE, "--no-division-rules"]
    )

    items = _requirements_by_id(json.loads(capsys.readouterr().out))
    assert exit_code == 0
    assert items["oper-class-1"]["current_rsu"] == 1
    assert items["oper-class-2"]["current_rsu"] == 5
    assert items["prosth-rpd"]["sub_counts"] is None


def test_report_output_is_stable_across_runs(capsys) -> None:
    main(["report", "--student-id", "stu-001", "--fixture", FIXTURE])
    first = capsys.readouterr().out
    main(["report", "--student-id", "stu-001", "--fixture", FIXTURE])
    second = capsys.readouterr().out

    assert first == second


def test_validate_accepts_sample_catalog(capsys) -> None:
    exit_code = main(["validate", "--fixture", FIXTURE])

    captured = capsys.readouterr()
    assert exit_code == 0
    assert captured.out.strip() == "checked requirements=16 problems=0"
    assert captured.err == ""


def test_validate_reports_catalog_problems(tmp_path: Path, capsys) -> None:
    fixture = tmp_path / "broken.json"
    fixture.write_text(
        json.dumps(
            {
                "requirements": [
                    {
                        "requirement_id": "a",
                        "division_id": "d1",
                        "requirement_type": "A",
                        "aggregation_config": {"type": "weighted"},
                    },
                    {
                        "requirement_id": "b",
                        "division_id": "d1",
                        "requirement_type": "B",
                        "aggregation_config": {"type": "derived", "source_ids": ["ghost", "c"]},
                    },
                    {
                        "requirement_id": "c",
                        "division_id": "d2",
                        "requirement_type": "C",
                        "aggregation_config": None,
                    },
                ]
            }
        )
    )

    exit_code = main(["validate", "--fixture", str(fixture)])

    captured = capsys.readouterr()
    assert exit_code == 1
    assert captured.out.strip() == "checked requirements=3 problems=3"
    problems = captured.err.strip().splitlines()
    assert problems[0].startswith("a: invalid aggregation config 'weighted'")
    assert problems[1:] == [
        "b: references unknown requirement ghost",
        "b: references c from another division",
    ]
