"""Unit Tests for logging configuration."""

import json

import structlog

from agentloop.logging_config import REDACTED, configure_logging, redact_secrets


class TestRedactSecrets:
    def test_masks_credential_keys(self):
        event = redact_secrets(None, "info", {"event": "x", "api_key": "sk-1", "Authorization": "Bearer t"})

        assert event["api_key"] == REDACTED
        assert event["Authorization"] == REDACTED
        assert event["event"] == "x"

    def test_keeps_counters(self):
        event = redact_secrets(None, "info", {"event": "x", "total_tokens": 42, "max_tokens": None})

        assert event["total_tokens"] == 42
        assert event["max_tokens"] is None


class TestConfigureLogging:
    def test_json_output_is_redacted(self, capsys):
        configure_logging("INFO", json_output=True)

        structlog.get_logger().info("provider_call", api_key="sk-live-secret", model="gpt-4.1")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        data = json.loads(line)
        assert data["event"] == "provider_call"
        assert data["api_key"] == REDACTED
        assert data["level"] == "info"
        assert "sk-live-secret" not in line

    def test_level_filters_lower_events(self, capsys):
        configure_logging("WARNING", json_output=True)

        structlog.get_logger().info("hidden_event")
        structlog.get_logger().warning("shown_event")

        out = capsys.readouterr().out
        assert "hidden_event" not in out
        assert "shown_event" in out
