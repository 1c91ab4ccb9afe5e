"""Deterministic serialization and checksum helpers for progress reports."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel


def report_payload(report: Sequence[BaseModel]) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json") for item in report]


def canonical_json(report: Sequence[BaseModel]) -> str:
    """Serialize a report using deterministic JSON formatting."""
    return json.dumps(report_payload(report), sort_keys=True, separators=(",", ":"))


def report_checksum(report: Sequence[BaseModel]) -> str:
    """Return deterministic SHA-256 over the canonical report JSON."""
    return hashlib.sha256(canonical_json(report).encode("utf-8")).hexdigest()
