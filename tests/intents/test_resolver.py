from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from calendar_agent import timeparse
from calendar_agent.intents.llm import LanguageModelError, LLMStrategy
from calendar_agent.intents.models import Intent, IntentKind, IntentSource
from calendar_agent.intents.patterns import HELP_TEXT, PatternStrategy
from calendar_agent.intents.resolver import IntentResolver, llm_budget

pytestmark = pytest.mark.unit


@pytest.fixture
def patterns(clock) -> PatternStrategy:
    return PatternStrategy(timeparse.UTC_ZONE, clock=clock)


def _llm(*, result=None, side_effect=None, timeout_s: float = 1.0) -> MagicMock:
    llm = MagicMock(spec=LLMStrategy)
    llm.enabled = True
    llm.timeout_s = timeout_s
    llm.resolve = AsyncMock(return_value=result, side_effect=side_effect)
    return llm


def _llm_intent(kind: IntentKind, confidence: float, narration: str | None = None) -> Intent:
    return Intent(kind=kind, confidence=confidence, narration=narration, source=IntentSource.LLM)


class TestIntentResolver:
    async def test_without_llm_uses_patterns(self, patterns):
        intent = await IntentResolver(patterns).resolve("show my events today")
        assert intent.kind is IntentKind.LIST_EVENTS
        assert intent.source is IntentSource.PATTERN

    async def test_disabled_llm_is_not_called(self, patterns):
        llm = _llm()
        llm.enabled = False
        intent = await IntentResolver(patterns, llm).resolve("show my events today")
        assert intent.source is IntentSource.PATTERN
        llm.resolve.assert_not_awaited()

    async def test_confident_llm_intent_wins(self, patterns):
        llm_intent = Intent(
            kind=IntentKind.SEARCH_EVENTS,
            confidence=0.95,
            parameters={"query": "dentist"},
            source=IntentSource.LLM,
        )
        resolver = IntentResolver(patterns, _llm(result=llm_intent))
        assert await resolver.resolve("when is my dentist appointment") is llm_intent

    async def test_llm_failure_falls_back(self, patterns):
        resolver = IntentResolver(patterns, _llm(side_effect=LanguageModelError("down")))
        intent = await resolver.resolve("cancel my dentist appointment")
        assert intent.kind is IntentKind.DELETE_EVENT
        assert intent.source is IntentSource.PATTERN

    async def test_llm_timeout_falls_back(self, patterns):
        async def slow(_utterance):
            await asyncio.sleep(5)

        llm = _llm(timeout_s=0.01)
        llm.resolve = AsyncMock(side_effect=slow)
        intent = await IntentResolver(patterns, llm).resolve("list my calendars")
        assert intent.kind is IntentKind.LIST_CALENDARS
        assert intent.source is IntentSource.PATTERN

    async def test_low_confidence_without_narration_falls_back(self, patterns):
        llm = _llm(result=_llm_intent(IntentKind.LIST_EVENTS, 0.3))
        intent = await IntentResolver(patterns, llm).resolve("move my 3pm meeting")
        assert intent.kind is IntentKind.UPDATE_EVENT
        assert intent.source is IntentSource.PATTERN

    async def test_low_confidence_with_narration_is_kept(self, patterns):
        llm_intent = _llm_intent(IntentKind.CLARIFY, 0.2, "Which meeting do you mean?")
        resolver = IntentResolver(patterns, _llm(result=llm_intent))
        assert await resolver.resolve("move my meeting") is llm_intent

    async def test_help_without_narration_falls_back(self, patterns):
        llm = _llm(result=_llm_intent(IntentKind.HELP, 0.8, "   "))
        intent = await IntentResolver(patterns, llm).resolve("show my events today")
        assert intent.kind is IntentKind.LIST_EVENTS

    async def test_pattern_failure_answers_with_help(self):
        patterns = MagicMock(spec=PatternStrategy)
        patterns.resolve.side_effect = RuntimeError("boom")
        intent = await IntentResolver(patterns).resolve("anything")
        assert intent.kind is IntentKind.HELP
        assert intent.narration == HELP_TEXT
        assert intent.confidence == 0.0

    async def test_llm_wait_is_capped_below_model_timeout(self, patterns):
        async def slow(_utterance):
            await asyncio.sleep(5)

        llm = _llm(timeout_s=30.0)
        llm.resolve = AsyncMock(side_effect=slow)
        resolver = IntentResolver(patterns, llm, llm_timeout_s=0.01)

        assert resolver.llm_timeout_s == 0.01
        intent = await resolver.resolve("list my calendars")
        assert intent.source is IntentSource.PATTERN


class TestLLMBudget:
    @pytest.mark.parametrize(
        ("request_timeout", "llm_timeout", "expected"),
        [
            (30.0, 30.0, 20.0),
            (30.0, 5.0, 5.0),
            (60.0, 45.0, 45.0),
            (0.4, 0.4, 0.2),
        ],
    )
    def test_budget_leaves_room_inside_request_deadline(
        self, request_timeout, llm_timeout, expected
    ):
        budget = llm_budget(request_timeout, llm_timeout)
        assert budget == pytest.approx(expected)
        assert budget < request_timeout
