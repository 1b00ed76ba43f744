"""CLI for the calendar agent: run the server, check configuration."""

from __future__ import annotations

import logging
import os
import sys

import click
import uvicorn

from calendar_agent.config import AgentConfig, ConfigError, load_config
from calendar_agent.core.logging import configure_logging

logger = logging.getLogger(__name__)


def _load(overrides: dict[str, str], *, validate: bool = True) -> AgentConfig:
    environ = {**os.environ, **overrides}
    try:
        return load_config(environ, validate=validate)
    except ConfigError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """Google Calendar agent speaking the A2A JSON-RPC protocol."""


@cli.command()
@click.option("--host", default=None, help="Interface to bind (overrides SERVER_HOST)")
@click.option("--port", type=int, default=None, help="Port to listen on (overrides SERVER_PORT)")
@click.option("--demo", is_flag=True, help="Use the in-memory demo calendar (APP_DEMO_MODE)")
def serve(host: str | None, port: int | None, demo: bool) -> None:
    """Start the agent's HTTP server."""
    overrides: dict[str, str] = {}
    if host is not None:
        overrides["SERVER_HOST"] = host
    if port is not None:
        overrides["SERVER_PORT"] = str(port)
    if demo:
        overrides["APP_DEMO_MODE"] = "true"

    config = _load(overrides)
    configure_logging(level=config.logging.level, fmt=config.logging.format)

    from calendar_agent.api.app import create_app

    try:
        app = create_app(config)
    except Exception as exc:
        logger.error("Failed to initialise the calendar agent: %s", exc)
        sys.exit(1)

    uvicorn.run(app, host=config.server.host, port=config.server.port, log_config=None)


@cli.command("check-config")
def check_config() -> None:
    """Validate environment configuration and print a summary."""
    config = _load({}, validate=False)
    source = config.google_credentials_source()

    click.echo(f"{'Environment':<20} {config.app.environment}")
    click.echo(f"{'Server':<20} {config.server_address}")
    click.echo(f"{'Demo mode':<20} {config.app.demo_mode}")
    click.echo(f"{'Calendar ID':<20} {config.google.calendar_id}")
    click.echo(f"{'Credentials':<20} {source[0] if source else '(none)'}")
    click.echo(f"{'Read only':<20} {config.google.read_only}")
    click.echo(f"{'Time zone':<20} {config.google.timezone}")
    llm = f"{config.llm.provider}/{config.llm.model}" if config.llm.enabled else "disabled"
    click.echo(f"{'LLM':<20} {llm}")
    click.echo(f"{'Log level':<20} {config.logging.level} ({config.logging.format})")

    try:
        config.validate()
    except ConfigError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)
    click.echo("Configuration OK")
