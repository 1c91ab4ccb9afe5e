"""Aggregation configuration variants for requirement progress."""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from app.progress.errors import AggregationConfigError

_logger = logging.getLogger(__name__)

_TYPE_ALIASES = {"perio_exam_flag": "exam_flag"}


class _ConfigBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class SumConfig(_ConfigBase):
    type: Literal["sum"] = "sum"


class CountConfig(_ConfigBase):
    type: Literal["count"] = "count"


class CountUnionConfig(_ConfigBase):
    type: Literal["count_union"] = "count_union"
    also_count: tuple[str, ...] = ()


class SumUnionConfig(_ConfigBase):
    type: Literal["sum_union"] = "sum_union"
    also_sum: tuple[str, ...] = ()


class CountExamConfig(_ConfigBase):
    type: Literal["count_exam"] = "count_exam"
    source_ids: tuple[str, ...] | None = None


class ExamFlagConfig(_ConfigBase):
    type: Literal["exam_flag"] = "exam_flag"
    flag_key: str = Field(min_length=1)


class DerivedConfig(_ConfigBase):
    type: Literal["derived"] = "derived"
    source_ids: tuple[str, ...] = Field(min_length=1)
    operation: Literal["sum_both", "sum_rsu", "sum_cda", "count"] = "sum_both"


class CountMetConfig(_ConfigBase):
    type: Literal["count_met"] = "count_met"
    source_ids: tuple[str, ...] = Field(min_length=1)


class SourceOnlyConfig(_ConfigBase):
    type: Literal["source_only"] = "source_only"


class PerioTotalCasesConfig(_ConfigBase):
    """Counts case records that reached ``min_step_order``.

    Without ``source_ids`` the division's Case G and Case P requirements are used.
    """

    type: Literal["perio_total_cases"] = "perio_total_cases"
    source_ids: tuple[str, ...] | None = None
    min_step_order: int = 7


class PerioSeverityConfig(_ConfigBase):
    """Sums record severity, or half the RSU units where no severity was recorded.

    Without ``source_ids`` the division's Case P requirement is used.
    """

    type: Literal["perio_severity_casep"] = "perio_severity_casep"
    source_ids: tuple[str, ...] | None = None


AggregationConfig = Annotated[
    Union[
        SumConfig,
        CountConfig,
        CountUnionConfig,
        SumUnionConfig,
        CountExamConfig,
        ExamFlagConfig,
        DerivedConfig,
        CountMetConfig,
        SourceOnlyConfig,
        PerioTotalCasesConfig,
        PerioSeverityConfig,
    ],
    Field(discriminator="type"),
]

_ADAPTER: TypeAdapter[AggregationConfig] = TypeAdapter(AggregationConfig)

PASS_TWO_TYPES = (DerivedConfig, CountMetConfig)


def _normalize_payload(raw: Any) -> dict[str, Any] | None:
    if raw is None:
        return None
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if isinstance(raw, (str, bytes)):
        if not raw.strip():
            return None
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise AggregationConfigError(f"aggregation config is not valid JSON: {exc.msg}") from exc
    if not isinstance(raw, dict):
        raise AggregationConfigError("aggregation config must decode to an object")
    payload = dict(raw)
    tag = payload.get("type")
    if tag in _TYPE_ALIASES:
        payload["type"] = _TYPE_ALIASES[tag]
    return payload


def parse_aggregation_config_strict(raw: Any) -> AggregationConfig | None:
    """Parse a stored aggregation config, raising on anything unrecognised.

    ``None`` (or an empty string) means no configuration was stored.
    """
    payload = _normalize_payload(raw)
    if payload is None:
        return None
    try:
        return _ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise AggregationConfigError(
            f"invalid aggregation config {payload.get('type')!r}: {exc.error_count()} error(s)"
        ) from exc


def parse_aggregation_config(raw: Any) -> AggregationConfig | None:
    """Parse a stored aggregation config, degrading to ``sum`` when it is malformed."""
    if isinstance(raw, _ConfigBase):
        return raw
    try:
        return parse_aggregation_config_strict(raw)
    except AggregationConfigError as exc:
        _logger.warning("Falling back to sum aggregation: %s", exc)
        return SumConfig()


def is_pass_two(config: AggregationConfig) -> bool:
    return isinstance(config, PASS_TWO_TYPES)


def derived_input_axis(operation: str, axis: str) -> str:
    """Axis of the source entries a derived operation reads for output ``axis``."""
    if operation == "sum_rsu":
        return "rsu"
    if operation == "sum_cda":
        return "cda"
    return axis


def referenced_ids(config: AggregationConfig) -> tuple[str, ...]:
    """Return requirement ids a config reads besides its own requirement."""
    if isinstance(config, CountUnionConfig):
        return config.also_count
    if isinstance(config, SumUnionConfig):
        return config.also_sum
    if isinstance(config, (DerivedConfig, CountMetConfig)):
        return config.source_ids
    if isinstance(config, (CountExamConfig, PerioTotalCasesConfig, PerioSeverityConfig)):
        return config.source_ids or ()
    return ()
