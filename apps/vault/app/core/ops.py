"""Operational safety helpers for logging and config validation."""

from __future__ import annotations

import logging
from typing import Any

from apps.vault.app.core.config import Settings

_REDACTED = "***REDACTED***"
_SENSITIVE_KEYS = {"hn", "patient_hn", "patient_name", "password", "database_url"}


def _is_sensitive_key(key: str) -> bool:
    normalized = key.lower().replace("-", "_")
    return normalized in _SENSITIVE_KEYS or normalized.startswith("patient_")


def redact_sensitive_fields(value: Any) -> Any:
    if isinstance(value, dict):
        redacted: dict[str, Any] = {}
        for key, nested in value.items():
            if _is_sensitive_key(key):
                redacted[key] = _REDACTED
            else:
                redacted[key] = redact_sensitive_fields(nested)
        return redacted
    if isinstance(value, list):
        return [redact_sensitive_fields(item) for item in value]
    return value


def validate_runtime_configuration(settings: Settings) -> None:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid runtime configuration: unknown log level {settings.log_level}")
    if "://" not in settings.database_url:
        raise ValueError("Invalid runtime configuration: database url must include a scheme")
