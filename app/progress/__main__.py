"""CLI for student progress reports and catalog validation.

Usage:
    python -m app.progress report --student-id <id> [--database-url URL]
    python -m app.progress report --student-id <id> --fixture fixtures/vault_sample.json
    python -m app.progress validate --fixture fixtures/vault_sample.json
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from app.progress.canonical import canonical_json
from app.progress.division_rules import default_registry
from app.progress.loader import load_fixture, read_fixture_payload, validate_catalog
from app.progress.orchestrator import build_progress_report
from app.progress.rules import DivisionRuleRegistry
from apps.vault.app.core.config import get_settings
from apps.vault.app.core.ops import validate_runtime_configuration
from apps.vault.app.db.session import read_session
from apps.vault.app.services.student_progress import get_student_progress


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m app.progress")
    subparsers = parser.add_subparsers(dest="command", required=True)

    report_parser = subparsers.add_parser("report", help="Print a student's progress report")
    report_parser.add_argument("--student-id", required=True, help="Student identifier")
    report_parser.add_argument("--fixture", required=False, help="Path to fixture JSON file")
    report_parser.add_argument(
        "--database-url",
        required=False,
        help="Optional SQLAlchemy database URL override",
    )
    report_parser.add_argument(
        "--no-division-rules",
        action="store_true",
        help="Skip division-specific transfer rules",
    )

    validate_parser = subparsers.add_parser("validate", help="Validate aggregation configs")
    validate_parser.add_argument("--fixture", required=True, help="Path to fixture JSON file")
    return parser


def _report(args: argparse.Namespace) -> int:
    settings = get_settings()
    rules_enabled = settings.division_rules_enabled and not args.no_division_rules
    registry = default_registry() if rules_enabled else DivisionRuleRegistry()

    if args.fixture:
        fixture = load_fixture(Path(args.fixture))
        records = [item for item in fixture.records if item.student_id == args.student_id]
        report = build_progress_report(fixture.requirements, records, registry=registry)
    else:
        settings = settings.model_copy(update={"division_rules_enabled": rules_enabled})
        with read_session(args.database_url) as session:
            report = get_student_progress(session, student_id=args.student_id, settings=settings)

    print(canonical_json(report))
    return 0


def _validate(args: argparse.Namespace) -> int:
    payload = read_fixture_payload(Path(args.fixture))
    problems = validate_catalog(payload.get("requirements", []))
    for problem in problems:
        print(problem, file=sys.stderr)
    print(f"checked requirements={len(payload.get('requirements', []))} problems={len(problems)}")
    return 1 if problems else 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    validate_runtime_configuration(settings)
    logging.basicConfig(level=settings.log_level.upper())

    if args.command == "report":
        return _report(args)
    if args.command == "validate":
        return _validate(args)
    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
