import pytest

from apps.vault.app.core.config import Settings, get_settings
from apps.vault.app.core.ops import redact_sensitive_fields, validate_runtime_configuration
from apps.vault.app.services.audit import log_structured_event


def test_settings_load_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("VAULT_APP_VERSION", "9.9.9")
    monkeypatch.setenv("VAULT_DIVISION_RULES_ENABLED", "false")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.app_version == "9.9.9"
    assert settings.division_rules_enabled is False
    get_settings.cache_clear()


def test_runtime_configuration_rejects_bad_values() -> None:
    validate_runtime_configuration(Settings(database_url="sqlite:///vault.sqlite"))

    with pytest.raises(ValueError, match="unknown log level"):
        validate_runtime_configuration(Settings(log_level="chatty"))
    with pytest.raises(ValueError, match="must include a scheme"):
        validate_runtime_configuration(Settings(database_url="vault.sqlite"))


def test_redaction_masks_patient_identifiers() -> None:
    payload = {
        "student_id": "stu-1",
        "records": [{"record_id": "r1", "patient_hn": "HN-1", "patient_name": "A. Patient"}],
        "hn": "HN-2",
        "patient_id": "pat-9",
    }

    redacted = redact_sensitive_fields(payload)

    assert redacted["student_id"] == "stu-1"
    assert redacted["records"][0]["record_id"] == "r1"
    assert redacted["records"][0]["patient_hn"] == "***REDACTED***"
    assert redacted["records"][0]["patient_name"] == "***REDACTED***"
    assert redacted["hn"] == "***REDACTED***"
    assert redacted["patient_id"] == "***REDACTED***"


def test_structured_event_is_sorted_compact_and_redacted(caplog) -> None:
    with caplog.at_level("INFO", logger="vault.audit"):
        serialized = log_structured_event(
            "progress.report.built",
            student_id="stu-1",
            patient_name="A. Patient",
        )

    assert serialized == (
        '{"event_type":"progress.report.built","patient_name":"***REDACTED***",'
        '"student_id":"stu-1"}'
    )
    assert serialized in caplog.text
