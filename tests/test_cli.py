"""Tests for the CLI commands."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from calendar_agent.cli import cli

pytestmark = pytest.mark.unit

DEMO_ENV = {
    "APP_DEMO_MODE": "true",
    "LLM_ENABLED": "false",
    "GOOGLE_CALENDAR_SA_JSON": "",
    "GOOGLE_APPLICATION_CREDENTIALS": "",
}


@pytest.fixture
def runner():
    return CliRunner()


class TestVersion:
    def test_version_flag(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestCheckConfig:
    def test_valid_demo_configuration(self, runner):
        result = runner.invoke(cli, ["check-config"], env=DEMO_ENV)
        assert result.exit_code == 0
        assert f"{'Demo mode':<20} True" in result.output
        assert f"{'Credentials':<20} (none)" in result.output
        assert f"{'LLM':<20} disabled" in result.output
        assert "Configuration OK" in result.output

    def test_missing_credentials_fails(self, runner):
        env = {**DEMO_ENV, "APP_DEMO_MODE": "false"}
        result = runner.invoke(cli, ["check-config"], env=env)
        assert result.exit_code == 1
        assert f"{'Calendar ID':<20} primary" in result.output
        assert "GOOGLE_APPLICATION_CREDENTIALS must be provided" in result.output
        assert "Configuration OK" not in result.output

    def test_unparseable_value_fails_before_summary(self, runner):
        result = runner.invoke(cli, ["check-config"], env={**DEMO_ENV, "SERVER_PORT": "x"})
        assert result.exit_code == 1
        assert "SERVER_PORT must be an integer" in result.output
        assert "Environment" not in result.output


class TestServe:
    def test_flags_override_environment(self, runner):
        with (
            patch("calendar_agent.cli.uvicorn.run") as run,
            patch("calendar_agent.cli.configure_logging"),
        ):
            result = runner.invoke(
                cli, ["serve", "--demo", "--host", "127.0.0.1", "--port", "9001"], env=DEMO_ENV
            )

        assert result.exit_code == 0, result.output
        run.assert_called_once()
        assert run.call_args.kwargs["host"] == "127.0.0.1"
        assert run.call_args.kwargs["port"] == 9001
        app = run.call_args.args[0]
        assert app.state.config.use_demo_backend is True
        assert app.state.agent_card.url == "http://127.0.0.1:9001"

    def test_invalid_configuration_exits(self, runner):
        env = {**DEMO_ENV, "APP_DEMO_MODE": "false"}
        with patch("calendar_agent.cli.uvicorn.run") as run:
            result = runner.invoke(cli, ["serve"], env=env)
        assert result.exit_code == 1
        run.assert_not_called()
