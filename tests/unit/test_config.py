"""Configuration loading tests for the errand board service."""

from __future__ import annotations

import pytest

from errand_board_service.config import (
    REDACTION_MARKER,
    Settings,
    _redact,
    clear_settings_cache,
    get_safe_config,
    get_settings,
)

VALID_CONFIG = """\
service:
  name: "errand-board"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "INFO"
  directory: "data/logs"
database:
  backend: "memory"
  path: "data/errand-board.db"
store:
  max_transaction_attempts: 5
  change_log_retention: 1000
identity:
  base_url: "http://localhost:8001"
  verify_path: "/tokens/verify"
  timeout_seconds: 10
request:
  max_body_size: 1048576
limits:
  max_title_length: 200
  max_description_length: 5000
  max_address_length: 500
  max_comment_length: 1000
  max_fee: 100000
  max_duration_hours: 168
stream:
  poll_interval_seconds: 0.5
  keepalive_interval_seconds: 15
"""


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Write a config file and point CONFIG_PATH at it."""

    def _write(content: str):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(content)
        monkeypatch.setenv("CONFIG_PATH", str(config_path))
        clear_settings_cache()
        return config_path

    return _write


@pytest.mark.unit
def test_config_loads_from_yaml(config_file):
    """Valid config loads without error."""
    config_file(VALID_CONFIG)
    settings = get_settings()

    assert isinstance(settings, Settings)
    assert settings.service.name == "errand-board"
    assert settings.server.port == 8010
    assert settings.database.backend == "memory"
    assert settings.store.max_transaction_attempts == 5
    assert settings.store.change_log_retention == 1000
    assert settings.identity.verify_path == "/tokens/verify"
    assert settings.limits.max_fee == 100000
    assert settings.stream.poll_interval_seconds == 0.5


@pytest.mark.unit
def test_settings_are_cached(config_file):
    config_file(VALID_CONFIG)
    assert get_settings() is get_settings()


@pytest.mark.unit
def test_config_rejects_extra_fields(config_file):
    """Extra keys raise ValidationError (extra='forbid')."""
    config_file(VALID_CONFIG.replace('  version: "0.1.0"\n', '  version: "0.1.0"\n  debug: true\n'))
    with pytest.raises(Exception):  # noqa: B017
        get_settings()


@pytest.mark.unit
def test_config_rejects_unknown_backend(config_file):
    config_file(VALID_CONFIG.replace('backend: "memory"', 'backend: "firestore"'))
    with pytest.raises(Exception):  # noqa: B017
        get_settings()


@pytest.mark.unit
def test_config_missing_required_section(config_file):
    """Missing required sections raise ValidationError."""
    config_file('service:\n  name: "errand-board"\n  version: "0.1.0"\n')
    with pytest.raises(Exception):  # noqa: B017
        get_settings()


@pytest.mark.unit
def test_config_must_be_a_mapping(config_file):
    config_file("- just\n- a list\n")
    with pytest.raises(ValueError):
        get_settings()


@pytest.mark.unit
def test_safe_config_round_trips_settings(config_file):
    config_file(VALID_CONFIG)
    safe = get_safe_config()
    assert safe["identity"]["base_url"] == "http://localhost:8001"
    assert safe["database"]["path"] == "data/errand-board.db"


@pytest.mark.unit
def test_redact_masks_sensitive_keys():
    redacted = _redact({"identity": {"api_key": "abc", "client_secret": "s", "base_url": "u"}})
    assert redacted == {
        "identity": {"api_key": REDACTION_MARKER, "client_secret": REDACTION_MARKER, "base_url": "u"}
    }
