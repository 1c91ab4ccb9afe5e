"""Progress engine errors."""

from __future__ import annotations


class AggregationConfigError(ValueError):
    """Raised by strict validation when an aggregation config cannot be parsed."""


class DivisionRuleError(RuntimeError):
    """Raised when a division rule finds the progress map in an inconsistent state."""
