"""Unit tests for settings, startup validation and JSON logging."""

import json
import logging
from uuid import UUID

import pytest

from shared.config import Settings
from shared.logging_config import JSONFormatter
from shared.startup_validator import StartupValidationError, validate_startup_config


def _settings(**overrides) -> Settings:
    fields = {"DATABASE_URL": "postgresql+asyncpg://u:p@localhost:5432/db"}
    fields.update(overrides)
    return Settings(**fields)


class TestValidateStartupConfig:
    def test_defaults_pass(self):
        results = validate_startup_config(_settings())
        assert results["modification_token_ttl"] is True
        assert results["action_token_entropy"] is True
        assert results["database_url_format"] is True

    def test_non_positive_token_ttl_blocks_startup(self):
        with pytest.raises(StartupValidationError, match="MODIFICATION_TOKEN_TTL_HOURS"):
            validate_startup_config(_settings(MODIFICATION_TOKEN_TTL_HOURS=0))

    def test_low_token_entropy_blocks_startup(self):
        with pytest.raises(StartupValidationError, match="ACTION_TOKEN_BYTES"):
            validate_startup_config(_settings(ACTION_TOKEN_BYTES=8))

    def test_multiple_failures_reported_together(self):
        with pytest.raises(StartupValidationError, match="2 errors"):
            validate_startup_config(
                _settings(MODIFICATION_TOKEN_TTL_HOURS=-1, DEFAULT_MAX_BOOKINGS_PER_SLOT=0)
            )

    def test_sync_driver_only_warns(self, caplog):
        results = validate_startup_config(_settings(DATABASE_URL="postgresql://u:p@localhost/db"))
        assert results["database_url_format"] is False
        assert "asyncpg" in caplog.text

    def test_read_replica_is_optional(self):
        results = validate_startup_config(
            _settings(READ_DATABASE_URL="postgresql+asyncpg://u:p@replica:5432/db")
        )
        assert results["read_replica_configured"] is True


class TestJSONFormatter:
    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord(
            "scheduling.test", logging.INFO, __file__, 1, "Booking %s", ("created",), None
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_base_fields(self):
        payload = json.loads(JSONFormatter().format(self._record()))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "scheduling.test"
        assert payload["message"] == "Booking created"

    def test_context_fields_are_stringified(self):
        booking_id = UUID("550e8400-e29b-41d4-a716-446655440000")
        payload = json.loads(
            JSONFormatter().format(self._record(booking_id=booking_id, event="confirm", secret="x"))
        )
        assert payload["booking_id"] == str(booking_id)
        assert payload["event"] == "confirm"
        assert "secret" not in payload
