"""Calendar agent API: FastAPI application factory.

The app factory creates a FastAPI instance with:
- ``POST /a2a``: the JSON-RPC 2.0 endpoint
- ``GET /health``
- ``GET /.well-known/agent.json``: the agent card
- JSON 404/405 bodies and a catch-all 500 handler
- Lifespan handler that shuts down the calendar backend and LLM client
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI

from calendar_agent import timeparse
from calendar_agent.api.agent_card import AGENT_VERSION, build_agent_card
from calendar_agent.api.middleware import register_error_handlers
from calendar_agent.api.routers.a2a import router as a2a_router
from calendar_agent.api.routers.discovery import router as discovery_router
from calendar_agent.api.service import A2AService
from calendar_agent.calendar.base import CalendarBackend
from calendar_agent.calendar.demo import DemoCalendarBackend
from calendar_agent.calendar.google import GoogleCalendarBackend
from calendar_agent.config import AgentConfig, ConfigError, load_config
from calendar_agent.executor import CalendarExecutor
from calendar_agent.intents.llm import InferenceGatewayClient, LanguageModel, LLMStrategy
from calendar_agent.intents.patterns import PatternStrategy
from calendar_agent.intents.resolver import IntentResolver, llm_budget

logger = logging.getLogger(__name__)


def build_backend(config: AgentConfig) -> CalendarBackend:
    """Demo store in demo mode, Google Calendar otherwise.

    Raises
    ------
    ConfigError
        If no Google credentials are configured outside demo mode.
    """
    if config.use_demo_backend:
        logger.info("Demo mode enabled, using in-memory calendar backend")
        return DemoCalendarBackend(timezone=config.google.timezone)

    source = config.google_credentials_source()
    if source is None:
        raise ConfigError("Google credentials are required when not in demo mode")
    logger.info(
        "Using Google Calendar backend (calendar=%s, read_only=%s, credentials=%s)",
        config.google.calendar_id,
        config.google.read_only,
        source[0],
    )
    return GoogleCalendarBackend.from_credentials(
        source,
        read_only=config.google.read_only,
        timezone=config.google.timezone,
    )


def build_language_model(config: AgentConfig) -> LanguageModel | None:
    if not config.llm.enabled:
        logger.info("LLM disabled, intents resolved by pattern matching only")
        return None
    logger.info(
        "LLM enabled (provider=%s, model=%s, gateway=%s)",
        config.llm.provider,
        config.llm.model,
        config.llm.gateway_url,
    )
    return InferenceGatewayClient(config.llm)


def build_service(
    config: AgentConfig,
    backend: CalendarBackend,
    language_model: LanguageModel | None,
    *,
    clock: Callable[[], datetime] | None = None,
) -> A2AService:
    """Wire resolver and executor around *backend* and *language_model*."""
    zone = timeparse.resolve_zone(config.google.timezone)
    patterns = PatternStrategy(zone, clock=clock)
    llm = None
    if language_model is not None:
        llm = LLMStrategy(
            language_model,
            config.llm,
            zone=zone,
            zone_name=config.google.timezone,
            clock=clock,
        )
    executor = CalendarExecutor(
        backend,
        calendar_id=config.google.calendar_id,
        zone=zone,
        read_only=config.google.read_only,
        clock=clock,
    )
    resolver = IntentResolver(
        patterns,
        llm,
        llm_timeout_s=llm_budget(config.app.request_timeout_s, config.llm.timeout_s),
    )
    return A2AService(
        resolver=resolver,
        executor=executor,
        request_timeout_s=config.app.request_timeout_s,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup; on shutdown release the backend and LLM client the app owns."""
    config: AgentConfig = app.state.config
    logger.info(
        "Calendar agent listening on %s (environment=%s)",
        config.server_address,
        config.app.environment,
    )

    yield

    for resource in app.state.owned_resources:
        try:
            await resource.shutdown()
        except Exception:
            logger.warning("Failed to shut down %s cleanly", type(resource).__name__, exc_info=True)


def create_app(
    config: AgentConfig | None = None,
    *,
    backend: CalendarBackend | None = None,
    language_model: LanguageModel | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    config:
        Parsed configuration.  Defaults to :func:`load_config` on the
        process environment.
    backend:
        Calendar backend to use instead of the one *config* selects.
        Injected backends are not shut down with the app.
    language_model:
        LLM client to use instead of the inference gateway client.
        Injected clients are not shut down with the app.
    clock:
        Source of "now" for relative-time parsing; tests pin it.
    """
    config = config or load_config()

    owned_resources: list[CalendarBackend | LanguageModel] = []
    if backend is None:
        backend = build_backend(config)
        owned_resources.append(backend)
    if language_model is None:
        language_model = build_language_model(config)
        if language_model is not None:
            owned_resources.append(language_model)

    app = FastAPI(
        title="Google Calendar Agent",
        version=AGENT_VERSION,
        lifespan=lifespan,
    )
    app.router.redirect_slashes = False

    app.state.config = config
    app.state.owned_resources = owned_resources
    app.state.agent_card = build_agent_card(config)
    app.state.a2a_service = build_service(config, backend, language_model, clock=clock)

    register_error_handlers(app)

    app.include_router(discovery_router)
    app.include_router(a2a_router)

    return app
