"""Division rule registry and the record-level transfer primitive rules build on."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from app.progress.errors import DivisionRuleError
from app.progress.ledger import ProgressEntry, ProgressMap
from app.progress.schema import Axis, ClinicalRecord, Requirement, SourceRecord

_TOLERANCE = 1e-9


class DivisionRule(Protocol):
    def apply(
        self,
        requirements: Sequence[Requirement],
        records: Sequence[ClinicalRecord],
        progress: ProgressMap,
    ) -> None:
        """Mutate ``progress`` for the division after both evaluation passes."""


class DivisionRuleRegistry:
    """Maps a division code to the single rule run for that division."""

    def __init__(self, rules: dict[str, DivisionRule] | None = None) -> None:
        self._rules: dict[str, DivisionRule] = {}
        for code, rule in (rules or {}).items():
            self.register(code, rule)

    def register(self, division_code: str, rule: DivisionRule) -> None:
        self._rules[division_code.upper()] = rule

    def get(self, division_code: str | None) -> DivisionRule | None:
        if not division_code:
            return None
        return self._rules.get(division_code.upper())

    def codes(self) -> list[str]:
        return sorted(self._rules)


def find_requirement(
    requirements: Iterable[Requirement],
    label: str,
    *,
    axis: Axis = "rsu",
) -> Requirement | None:
    """Return the first requirement whose label on ``axis`` matches ``label``."""
    wanted = label.strip().casefold()
    for requirement in requirements:
        if requirement.label(axis).strip().casefold() == wanted:
            return requirement
    return None


def deficit(requirement: Requirement, entry: ProgressEntry, axis: Axis) -> float:
    return max(requirement.minimum(axis) - entry.confirmed(axis), 0.0)


def transfer_excess(
    progress: ProgressMap,
    *,
    source: Requirement,
    destination: Requirement,
    axis: Axis,
    retain: float,
    limit: int | None = None,
) -> list[SourceRecord]:
    """Greedily move confirmed records from ``source`` to ``destination`` on one axis.

    Records are taken in ascending order of their value at the source while the
    source stays at or above ``retain``. The destination counts each moved
    record as 1; the source loses the summed value of the moved records. The
    source keeps its records, annotated with the destination label.
    """
    if source.requirement_id == destination.requirement_id:
        raise DivisionRuleError(f"cannot transfer {source.requirement_id} onto itself")
    if limit is not None and limit <= 0:
        return []

    source_entry = progress.get(source.requirement_id)
    destination_entry = progress.get(destination.requirement_id)
    if source_entry is None or destination_entry is None:
        return []

    candidates = sorted(
        (
            (index, item)
            for index, item in enumerate(source_entry.records(axis))
            if item.confirmed and item.transferred_to is None and item.value > 0
        ),
        key=lambda pair: (pair[1].value, pair[1].record_id),
    )

    remaining = source_entry.confirmed(axis)
    selected: list[tuple[int, SourceRecord]] = []
    for index, item in candidates:
        if limit is not None and len(selected) >= limit:
            break
        if remaining - item.value < retain - _TOLERANCE:
            break
        remaining -= item.value
        selected.append((index, item))

    if not selected:
        return []

    source_label = source.label(axis)
    destination_label = destination.label(axis)
    own_records = source_entry.records(axis)
    moved: list[SourceRecord] = []
    for index, item in selected:
        own_records[index] = item.model_copy(update={"transferred_to": destination_label})
        received = item.model_copy(update={"value": 1.0, "transferred_from": source_label})
        destination_entry.received(axis).append(received)
        moved.append(received)

    source_entry.credit(axis, -sum(item.value for _, item in selected), confirmed=True)
    destination_entry.credit(axis, float(len(selected)), confirmed=True)
    return moved
