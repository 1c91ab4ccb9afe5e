"""Filesystem loader and catalog validation for progress fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.progress.aggregation import parse_aggregation_config_strict, referenced_ids
from app.progress.errors import AggregationConfigError
from app.progress.schema import ClinicalRecord, Requirement


class ProgressFixture(BaseModel):
    model_config = ConfigDict(extra="forbid")

    requirements: list[Requirement]
    records: list[ClinicalRecord] = Field(default_factory=list)


def read_fixture_payload(fixture_path: Path) -> dict[str, Any]:
    payload = json.loads(fixture_path.read_text())
    if not isinstance(payload, dict):
        raise ValueError("fixture JSON must decode to an object")
    return payload


def load_fixture(fixture_path: Path) -> ProgressFixture:
    """Load and validate a requirements/records fixture from disk."""
    return ProgressFixture.model_validate(read_fixture_payload(fixture_path))


def validate_catalog(requirements: list[dict[str, Any]]) -> list[str]:
    """Return catalog problems that the tolerant engine would silently absorb."""
    problems: list[str] = []
    known_ids = {str(item.get("requirement_id")) for item in requirements}
    divisions = {str(item.get("requirement_id")): item.get("division_id") for item in requirements}
    for item in requirements:
        requirement_id = str(item.get("requirement_id"))
        try:
            config = parse_aggregation_config_strict(item.get("aggregation_config"))
        except AggregationConfigError as exc:
            problems.append(f"{requirement_id}: {exc}")
            continue
        if config is None:
            continue
        for source_id in referenced_ids(config):
            if source_id not in known_ids:
                problems.append(f"{requirement_id}: references unknown requirement {source_id}")
            elif divisions[source_id] != item.get("division_id"):
                problems.append(
                    f"{requirement_id}: references {source_id} from another division"
                )
    return problems
