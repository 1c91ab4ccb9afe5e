"""Per-requirement progress accumulator shared by the evaluation passes and division rules."""

from __future__ import annotations

from dataclasses import dataclass, field

from app.progress.schema import Axis, SourceRecord, SubCount


@dataclass
class ProgressEntry:
    rsu: float = 0.0
    p_rsu: float = 0.0
    cda: float = 0.0
    p_cda: float = 0.0
    rsu_records: list[SourceRecord] = field(default_factory=list)
    cda_records: list[SourceRecord] = field(default_factory=list)
    rsu_received: list[SourceRecord] = field(default_factory=list)
    cda_received: list[SourceRecord] = field(default_factory=list)
    sub_counts: dict[str, SubCount] | None = None

    def confirmed(self, axis: Axis) -> float:
        return self.rsu if axis == "rsu" else self.cda

    def pending(self, axis: Axis) -> float:
        return self.p_rsu if axis == "rsu" else self.p_cda

    def credit(self, axis: Axis, value: float, *, confirmed: bool) -> None:
        if axis == "rsu":
            if confirmed:
                self.rsu += value
            else:
                self.p_rsu += value
        elif confirmed:
            self.cda += value
        else:
            self.p_cda += value

    def records(self, axis: Axis) -> list[SourceRecord]:
        return self.rsu_records if axis == "rsu" else self.cda_records

    def received(self, axis: Axis) -> list[SourceRecord]:
        return self.rsu_received if axis == "rsu" else self.cda_received

    def add_record(self, axis: Axis, record: SourceRecord) -> None:
        self.credit(axis, record.value, confirmed=record.confirmed)
        if record.value:
            self.records(axis).append(record)

    def record_ids(self) -> tuple[set[str], set[str]]:
        """Distinct own record ids split into (confirmed, pending)."""
        confirmed: set[str] = set()
        pending: set[str] = set()
        for item in (*self.rsu_records, *self.cda_records):
            (confirmed if item.confirmed else pending).add(item.record_id)
        return confirmed, pending


ProgressMap = dict[str, ProgressEntry]
