"""Division-specific post-processing rules shipped with the vault."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from app.progress.aggregation import DerivedConfig
from app.progress.ledger import ProgressEntry, ProgressMap
from app.progress.rules import DivisionRuleRegistry, deficit, find_requirement, transfer_excess
from app.progress.schema import Axis, ClinicalRecord, Requirement, SubCount


def _tracks(requirement: Requirement, axis: Axis) -> bool:
    return requirement.minimum(axis) > 0


@dataclass(frozen=True)
class OperativeTransferRule:
    """Overflow absorption between operative restoration classes.

    Steps run in order and each one reads the result of the previous:

    1. RSU excess on ``overflow`` beyond its minimum moves to ``sink``.
    2. RSU excess on ``anterior_overflow`` moves to ``anterior_sink``. Pooling
       with Diastema Closure comes from the requirement's own ``sum_union``.
    3. If ``sink`` is still short on RSU, at most ``bonus_limit`` records move
       from ``bonus``.
    4. CDA excess on ``overflow`` first fills the CDA deficit of ``sink``, then
       moves to the requirement labelled ``anterior_cda_alias`` on the CDA side,
       or ``anterior_sink`` when no such alias exists.
    """

    sink: str = "Class I"
    overflow: str = "Class II"
    anterior_sink: str = "Class III"
    anterior_overflow: str = "Class IV"
    anterior_cda_alias: str = "Class III/IV"
    bonus: str = "PRR"
    bonus_limit: int = 1

    def apply(
        self,
        requirements: Sequence[Requirement],
        records: Sequence[ClinicalRecord],
        progress: ProgressMap,
    ) -> None:
        sink = find_requirement(requirements, self.sink)
        overflow = find_requirement(requirements, self.overflow)
        anterior_sink = find_requirement(requirements, self.anterior_sink)
        anterior_overflow = find_requirement(requirements, self.anterior_overflow)
        bonus = find_requirement(requirements, self.bonus)

        if sink and overflow and _tracks(sink, "rsu"):
            transfer_excess(
                progress,
                source=overflow,
                destination=sink,
                axis="rsu",
                retain=overflow.minimum_rsu,
            )

        if anterior_sink and anterior_overflow and _tracks(anterior_sink, "rsu"):
            transfer_excess(
                progress,
                source=anterior_overflow,
                destination=anterior_sink,
                axis="rsu",
                retain=anterior_overflow.minimum_rsu,
            )

        if sink and bonus and _tracks(sink, "rsu"):
            if deficit(sink, progress[sink.requirement_id], "rsu") > 0:
                transfer_excess(
                    progress,
                    source=bonus,
                    destination=sink,
                    axis="rsu",
                    retain=bonus.minimum_rsu,
                    limit=self.bonus_limit,
                )

        if overflow is None:
            return
        if sink and _tracks(sink, "cda"):
            shortfall = math.ceil(deficit(sink, progress[sink.requirement_id], "cda"))
            if shortfall > 0:
                transfer_excess(
                    progress,
                    source=overflow,
                    destination=sink,
                    axis="cda",
                    retain=overflow.minimum_cda,
                    limit=shortfall,
                )
        cda_target = find_requirement(requirements, self.anterior_cda_alias, axis="cda")
        if cda_target is None:
            cda_target = anterior_sink
        if (
            cda_target is not None
            and cda_target.requirement_id != overflow.requirement_id
            and _tracks(cda_target, "cda")
        ):
            transfer_excess(
                progress,
                source=overflow,
                destination=cda_target,
                axis="cda",
                retain=overflow.minimum_cda,
            )


def sub_count_key(parent: Requirement, source: Requirement) -> str:
    """Short display key of a derived source, e.g. ``CD (Upper)`` under ``CD`` -> ``Upper``."""
    label = source.requirement_type.strip()
    prefix = parent.requirement_type.strip()
    if label.startswith(prefix) and label != prefix:
        short = label[len(prefix) :].strip(" ()-")
        if short:
            return short
    return label


@dataclass(frozen=True)
class DerivedSubCountRule:
    """Expose per-source verified/pending record tallies on derived requirements."""

    def apply(
        self,
        requirements: Sequence[Requirement],
        records: Sequence[ClinicalRecord],
        progress: ProgressMap,
    ) -> None:
        requirements_by_id = {item.requirement_id: item for item in requirements}
        for requirement in requirements:
            config = requirement.aggregation
            entry = progress.get(requirement.requirement_id)
            if not isinstance(config, DerivedConfig) or entry is None:
                continue
            sub_counts: dict[str, SubCount] = {}
            for source_id in config.source_ids:
                source = requirements_by_id.get(source_id)
                if source is None:
                    continue
                confirmed, pending = progress.get(source_id, ProgressEntry()).record_ids()
                sub_counts[sub_count_key(requirement, source)] = SubCount(
                    verified=len(confirmed), pending=len(pending)
                )
            entry.sub_counts = sub_counts


def default_registry() -> DivisionRuleRegistry:
    """Registry with the rules of every division that has one."""
    return DivisionRuleRegistry(
        {
            "OPER": OperativeTransferRule(),
            "PROSTH": DerivedSubCountRule(),
        }
    )
