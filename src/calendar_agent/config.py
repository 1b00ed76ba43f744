"""Environment-driven configuration for the calendar agent.

Configuration is read once at startup from environment variables and frozen
into dataclass sections.  Components receive the section they need through
their constructors; nothing reads ``os.environ`` after :func:`load_config`.

Recognised variables (defaults in parentheses)::

    GOOGLE_CALENDAR_ID (primary)          GOOGLE_CALENDAR_SA_JSON
    GOOGLE_APPLICATION_CREDENTIALS        GOOGLE_CALENDAR_READ_ONLY (false)
    GOOGLE_CALENDAR_TIMEZONE (UTC)
    LLM_ENABLED (true)                    LLM_GATEWAY_URL (http://localhost:8080/v1)
    LLM_PROVIDER (groq)                   LLM_MODEL (deepseek-r1-distill-llama-70b)
    LLM_TIMEOUT (30s)                     LLM_TEMPERATURE (0.7)
    LLM_MAX_TOKENS (2048)
    APP_DEMO_MODE (false)                 APP_ENVIRONMENT (dev)
    APP_REQUEST_TIMEOUT (30s)
    SERVER_HOST (0.0.0.0)                 SERVER_PORT (8080)
    LOG_LEVEL (info)                      LOG_FORMAT (json)
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

SUPPORTED_LLM_PROVIDERS = (
    "openai",
    "anthropic",
    "groq",
    "ollama",
    "deepseek",
    "cohere",
    "cloudflare",
)
VALID_LOG_LEVELS = ("debug", "info", "warn", "error")
VALID_LOG_FORMATS = ("json", "text")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})

# Go-style durations: "30s", "500ms", "1m30s", "2h".
_DURATION_PATTERN = re.compile(r"(?:\d+(?:\.\d+)?(?:ms|s|m|h))+")
_DURATION_PART_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0"})


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""


@dataclass(frozen=True)
class GoogleConfig:
    """Google Calendar access settings."""

    calendar_id: str = "primary"
    service_account_json: str | None = None
    credentials_path: str | None = None
    read_only: bool = False
    timezone: str = "UTC"


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration.

    ``level`` is one of debug/info/warn/error; ``format`` is ``json`` for
    machine-parseable lines or ``text`` for the colored console renderer.
    """

    level: str = "info"
    format: str = "json"


@dataclass(frozen=True)
class AppConfig:
    environment: str = "dev"
    demo_mode: bool = False
    request_timeout_s: float = 30.0


@dataclass(frozen=True)
class LLMConfig:
    """Inference gateway settings used by the tool-calling intent strategy."""

    enabled: bool = True
    gateway_url: str = "http://localhost:8080/v1"
    provider: str = "groq"
    model: str = "deepseek-r1-distill-llama-70b"
    timeout_s: float = 30.0
    max_tokens: int = 2048
    temperature: float = 0.7


@dataclass(frozen=True)
class AgentConfig:
    """Parsed configuration for the whole agent process."""

    google: GoogleConfig = field(default_factory=GoogleConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    app: AppConfig = field(default_factory=AppConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)

    def validate(self) -> None:
        """Check cross-field rules and raise a single aggregated error.

        Raises
        ------
        ConfigError
            Listing every rule that failed, one per line.
        """
        problems: list[str] = []

        if not self.app.demo_mode and self.google_credentials_source() is None:
            problems.append(
                "either GOOGLE_CALENDAR_SA_JSON or GOOGLE_APPLICATION_CREDENTIALS "
                "must be provided when not in demo mode"
            )

        if self.logging.level not in VALID_LOG_LEVELS:
            problems.append(
                f"invalid log level {self.logging.level!r}, "
                f"must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )
        if self.logging.format not in VALID_LOG_FORMATS:
            problems.append(
                f"invalid log format {self.logging.format!r}, "
                f"must be one of: {', '.join(VALID_LOG_FORMATS)}"
            )

        if not 0 < self.server.port < 65536:
            problems.append(f"SERVER_PORT must be between 1 and 65535, got {self.server.port}")

        if self.app.request_timeout_s <= 0:
            problems.append("APP_REQUEST_TIMEOUT must be positive")

        if self.llm.enabled:
            if not self.llm.gateway_url:
                problems.append("LLM_GATEWAY_URL is required when LLM is enabled")
            if not self.llm.provider:
                problems.append("LLM_PROVIDER is required when LLM is enabled")
            elif self.llm.provider not in SUPPORTED_LLM_PROVIDERS:
                problems.append(
                    f"invalid LLM provider {self.llm.provider!r}, "
                    f"must be one of: {', '.join(SUPPORTED_LLM_PROVIDERS)}"
                )
            if not self.llm.model:
                problems.append("LLM_MODEL is required when LLM is enabled")
            if not 0.0 <= self.llm.temperature <= 2.0:
                problems.append(
                    f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {self.llm.temperature}"
                )
            if self.llm.max_tokens <= 0:
                problems.append(f"LLM_MAX_TOKENS must be greater than 0, got {self.llm.max_tokens}")
            if self.llm.timeout_s <= 0:
                problems.append("LLM_TIMEOUT must be positive")

        if problems:
            lines = "\n".join(f"  - {problem}" for problem in problems)
            raise ConfigError(f"configuration validation failed:\n{lines}")

    def google_credentials_source(self) -> tuple[str, str] | None:
        """Return ``("json", payload)``, ``("file", path)`` or ``None``.

        Inline JSON wins over a credentials file when both are set.
        """
        if self.google.service_account_json:
            return ("json", self.google.service_account_json)
        if self.google.credentials_path:
            return ("file", self.google.credentials_path)
        return None

    @property
    def use_demo_backend(self) -> bool:
        return self.app.demo_mode

    @property
    def is_production(self) -> bool:
        return self.app.environment in ("prod", "production")

    @property
    def is_development(self) -> bool:
        return self.app.environment in ("dev", "development")

    @property
    def server_address(self) -> str:
        return f"{self.server.host}:{self.server.port}"

    @property
    def base_url(self) -> str:
        """Public base URL advertised in the agent card."""
        host, port = self.server.host, self.server.port
        if host not in _LOCAL_HOSTS and port == 80:
            return f"http://{host}"
        return f"http://{host}:{port}"


def parse_bool(raw: str | None, *, name: str, default: bool = False) -> bool:
    """Parse a boolean environment value (``1/true/yes/on`` and their negatives)."""
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def parse_duration(raw: str | None, *, name: str, default: float) -> float:
    """Parse a duration into seconds.

    Accepts Go-style strings (``"30s"``, ``"1m30s"``, ``"500ms"``) and bare
    numbers, which are interpreted as seconds.
    """
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    try:
        return float(value)
    except ValueError:
        pass
    if not _DURATION_PATTERN.fullmatch(value):
        raise ConfigError(f"{name} must be a duration such as '30s' or '2m', got {raw!r}")
    return sum(
        float(amount) * _DURATION_UNITS[unit]
        for amount, unit in _DURATION_PART_PATTERN.findall(value)
    )


def _parse_int(raw: str | None, *, name: str, default: int) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _parse_float(raw: str | None, *, name: str, default: float) -> float:
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _optional(raw: str | None) -> str | None:
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def load_config(
    environ: Mapping[str, str] | None = None,
    *,
    validate: bool = True,
) -> AgentConfig:
    """Build an :class:`AgentConfig` from environment variables.

    Parameters
    ----------
    environ:
        Mapping to read from.  Defaults to ``os.environ``; tests pass a
        plain dict instead of patching the process environment.
    validate:
        Run :meth:`AgentConfig.validate` before returning.

    Raises
    ------
    ConfigError
        If a value cannot be parsed or validation fails.
    """
    env = os.environ if environ is None else environ

    google = GoogleConfig(
        calendar_id=_optional(env.get("GOOGLE_CALENDAR_ID")) or "primary",
        service_account_json=_optional(env.get("GOOGLE_CALENDAR_SA_JSON")),
        credentials_path=_optional(env.get("GOOGLE_APPLICATION_CREDENTIALS")),
        read_only=parse_bool(
            env.get("GOOGLE_CALENDAR_READ_ONLY"), name="GOOGLE_CALENDAR_READ_ONLY"
        ),
        timezone=_optional(env.get("GOOGLE_CALENDAR_TIMEZONE")) or "UTC",
    )
    server = ServerConfig(
        host=_optional(env.get("SERVER_HOST")) or "0.0.0.0",
        port=_parse_int(env.get("SERVER_PORT"), name="SERVER_PORT", default=8080),
    )
    logging_config = LoggingConfig(
        level=(_optional(env.get("LOG_LEVEL")) or "info").lower(),
        format=(_optional(env.get("LOG_FORMAT")) or "json").lower(),
    )
    app = AppConfig(
        environment=_optional(env.get("APP_ENVIRONMENT")) or "dev",
        demo_mode=parse_bool(env.get("APP_DEMO_MODE"), name="APP_DEMO_MODE"),
        request_timeout_s=parse_duration(
            env.get("APP_REQUEST_TIMEOUT"), name="APP_REQUEST_TIMEOUT", default=30.0
        ),
    )
    llm = LLMConfig(
        enabled=parse_bool(env.get("LLM_ENABLED"), name="LLM_ENABLED", default=True),
        gateway_url=(env.get("LLM_GATEWAY_URL", "http://localhost:8080/v1")).strip(),
        provider=(env.get("LLM_PROVIDER", "groq")).strip().lower(),
        model=(env.get("LLM_MODEL", "deepseek-r1-distill-llama-70b")).strip(),
        timeout_s=parse_duration(env.get("LLM_TIMEOUT"), name="LLM_TIMEOUT", default=30.0),
        max_tokens=_parse_int(env.get("LLM_MAX_TOKENS"), name="LLM_MAX_TOKENS", default=2048),
        temperature=_parse_float(env.get("LLM_TEMPERATURE"), name="LLM_TEMPERATURE", default=0.7),
    )

    config = AgentConfig(google=google, server=server, logging=logging_config, app=app, llm=llm)
    if validate:
        config.validate()
    return config
