"""Shared test fixtures for the calendar agent test suite."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from calendar_agent.calendar.demo import DemoCalendarBackend
from calendar_agent.config import AgentConfig, load_config

# Monday, 2 March 2026, 10:00 UTC.
FIXED_NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def demo_config() -> AgentConfig:
    return load_config({"APP_DEMO_MODE": "true", "LLM_ENABLED": "false"})


@pytest.fixture
def demo_backend() -> DemoCalendarBackend:
    """Demo store seeded relative to :data:`FIXED_NOW`.

    Seeded events: Team Standup 09:30-10:00 and Lunch with Client
    12:30-13:30 on 2 March, Project Review 14:00-15:00 on 3 March.
    """
    return DemoCalendarBackend(clock=fixed_clock)
