"""Structured logging helpers."""

from __future__ import annotations

import json
import logging
from typing import Any

from apps.vault.app.core.ops import redact_sensitive_fields

_audit_logger = logging.getLogger("vault.audit")


def log_structured_event(event_type: str, **fields: Any) -> str:
    payload = redact_sensitive_fields({"event_type": event_type, **fields})
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    _audit_logger.info(serialized)
    return serialized
