"""Tests for environment configuration loading and validation."""

from __future__ import annotations

import pytest

from calendar_agent.config import (
    AgentConfig,
    AppConfig,
    ConfigError,
    GoogleConfig,
    ServerConfig,
    load_config,
    parse_bool,
    parse_duration,
)

pytestmark = pytest.mark.unit

DEMO = {"APP_DEMO_MODE": "true"}


# ---------------------------------------------------------------------------
# Defaults and parsing
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_defaults(self):
        config = load_config(DEMO)
        assert config.google.calendar_id == "primary"
        assert config.google.read_only is False
        assert config.google.timezone == "UTC"
        assert config.server.host == "0.0.0.0"
        assert config.server.port == 8080
        assert config.logging.level == "info"
        assert config.logging.format == "json"
        assert config.app.environment == "dev"
        assert config.app.request_timeout_s == 30.0
        assert config.llm.enabled is True
        assert config.llm.provider == "groq"
        assert config.llm.model == "deepseek-r1-distill-llama-70b"
        assert config.llm.gateway_url == "http://localhost:8080/v1"

    def test_reads_every_section(self):
        config = load_config(
            {
                "GOOGLE_CALENDAR_ID": "team@example.com",
                "GOOGLE_APPLICATION_CREDENTIALS": "/secrets/sa.json",
                "GOOGLE_CALENDAR_READ_ONLY": "yes",
                "GOOGLE_CALENDAR_TIMEZONE": "Europe/Berlin",
                "SERVER_HOST": "calendar.internal",
                "SERVER_PORT": "9090",
                "LOG_LEVEL": "DEBUG",
                "LOG_FORMAT": "text",
                "APP_ENVIRONMENT": "prod",
                "APP_REQUEST_TIMEOUT": "1m30s",
                "LLM_PROVIDER": "OpenAI",
                "LLM_MODEL": "gpt-4o",
                "LLM_TIMEOUT": "500ms",
                "LLM_MAX_TOKENS": "512",
                "LLM_TEMPERATURE": "0.2",
            }
        )
        assert config.google.calendar_id == "team@example.com"
        assert config.google.credentials_path == "/secrets/sa.json"
        assert config.google.read_only is True
        assert config.google.timezone == "Europe/Berlin"
        assert config.server_address == "calendar.internal:9090"
        assert config.logging.level == "debug"
        assert config.logging.format == "text"
        assert config.is_production is True
        assert config.app.request_timeout_s == 90.0
        assert config.llm.provider == "openai"
        assert config.llm.timeout_s == 0.5
        assert config.llm.max_tokens == 512
        assert config.llm.temperature == 0.2

    def test_blank_values_fall_back_to_defaults(self):
        config = load_config({**DEMO, "GOOGLE_CALENDAR_ID": "  ", "SERVER_PORT": ""})
        assert config.google.calendar_id == "primary"
        assert config.server.port == 8080

    def test_unparseable_port(self):
        with pytest.raises(ConfigError, match="SERVER_PORT must be an integer"):
            load_config({**DEMO, "SERVER_PORT": "eighty"})

    def test_unparseable_bool(self):
        with pytest.raises(ConfigError, match="APP_DEMO_MODE must be a boolean"):
            load_config({"APP_DEMO_MODE": "maybe"})

    def test_skip_validation(self):
        config = load_config({}, validate=False)
        assert config.google_credentials_source() is None


class TestParseBool:
    @pytest.mark.parametrize("raw", ["1", "true", "TRUE", "yes", " on "])
    def test_truthy(self, raw):
        assert parse_bool(raw, name="X") is True

    @pytest.mark.parametrize("raw", ["0", "false", "no", "off", ""])
    def test_falsy(self, raw):
        assert parse_bool(raw, name="X", default=True) is False

    def test_missing_uses_default(self):
        assert parse_bool(None, name="X", default=True) is True


class TestParseDuration:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("30s", 30.0),
            ("2m", 120.0),
            ("1m30s", 90.0),
            ("500ms", 0.5),
            ("1h", 3600.0),
            ("45", 45.0),
            ("2.5", 2.5),
        ],
    )
    def test_formats(self, raw, expected):
        assert parse_duration(raw, name="X", default=1.0) == expected

    def test_missing_uses_default(self):
        assert parse_duration(None, name="X", default=7.0) == 7.0
        assert parse_duration(" ", name="X", default=7.0) == 7.0

    def test_rejects_garbage(self):
        with pytest.raises(ConfigError, match="X must be a duration"):
            parse_duration("soon", name="X", default=1.0)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidate:
    def test_credentials_required_outside_demo_mode(self):
        with pytest.raises(ConfigError) as exc_info:
            load_config({})
        assert "either GOOGLE_CALENDAR_SA_JSON or GOOGLE_APPLICATION_CREDENTIALS" in str(
            exc_info.value
        )

    def test_demo_mode_needs_no_credentials(self):
        assert load_config(DEMO).use_demo_backend is True

    def test_problems_are_aggregated(self):
        with pytest.raises(ConfigError) as exc_info:
            load_config(
                {
                    **DEMO,
                    "LOG_LEVEL": "verbose",
                    "LOG_FORMAT": "xml",
                    "SERVER_PORT": "70000",
                    "LLM_PROVIDER": "acme",
                    "LLM_TEMPERATURE": "3",
                }
            )
        message = str(exc_info.value)
        assert message.startswith("configuration validation failed:\n  - ")
        assert "invalid log level 'verbose'" in message
        assert "invalid log format 'xml'" in message
        assert "SERVER_PORT must be between 1 and 65535, got 70000" in message
        assert "invalid LLM provider 'acme'" in message
        assert "LLM_TEMPERATURE must be between 0.0 and 2.0, got 3.0" in message

    def test_llm_rules_skipped_when_disabled(self):
        config = load_config({**DEMO, "LLM_ENABLED": "false", "LLM_PROVIDER": "acme"})
        assert config.llm.enabled is False

    def test_non_positive_request_timeout(self):
        with pytest.raises(ConfigError, match="APP_REQUEST_TIMEOUT must be positive"):
            load_config({**DEMO, "APP_REQUEST_TIMEOUT": "0"})


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------


class TestDerivedValues:
    def test_inline_json_wins_over_file(self):
        config = AgentConfig(
            google=GoogleConfig(service_account_json='{"type": "x"}', credentials_path="/sa.json")
        )
        assert config.google_credentials_source() == ("json", '{"type": "x"}')

    def test_file_source(self):
        config = AgentConfig(google=GoogleConfig(credentials_path="/sa.json"))
        assert config.google_credentials_source() == ("file", "/sa.json")

    @pytest.mark.parametrize(
        ("host", "port", "expected"),
        [
            ("0.0.0.0", 8080, "http://0.0.0.0:8080"),
            ("localhost", 80, "http://localhost:80"),
            ("calendar.example.com", 80, "http://calendar.example.com"),
            ("calendar.example.com", 8443, "http://calendar.example.com:8443"),
        ],
    )
    def test_base_url(self, host, port, expected):
        assert AgentConfig(server=ServerConfig(host=host, port=port)).base_url == expected

    def test_environment_flags(self):
        assert AgentConfig().is_development is True
        assert AgentConfig(app=AppConfig(environment="production")).is_production is True
