"""Compose the LLM and pattern strategies into a resolver that never fails."""

from __future__ import annotations

import asyncio
import logging

from calendar_agent.intents.llm import LLMStrategy
from calendar_agent.intents.models import NARRATION_ONLY_KINDS, Intent, IntentKind
from calendar_agent.intents.patterns import HELP_TEXT, PatternStrategy

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_THRESHOLD = 0.3

# Seconds of the request deadline kept back for the fallback and execution.
EXECUTION_RESERVE_S = 10.0


def llm_budget(request_timeout_s: float, llm_timeout_s: float) -> float:
    """Longest the resolver may wait on the LLM inside one request.

    At most ``EXECUTION_RESERVE_S`` (and never more than half the request
    deadline) is held back so that a hung model still leaves time for the
    pattern fallback and the calendar call.
    """
    reserve = min(EXECUTION_RESERVE_S, request_timeout_s / 2)
    return min(llm_timeout_s, request_timeout_s - reserve)


class IntentResolver:
    """Try the LLM first, fall back to patterns, and finally to help.

    The LLM result is discarded in favour of the pattern strategy when the
    LLM is disabled, times out, raises, or answers with confidence at or
    below 0.3 and no narration.  An LLM answer of help/clarify with no text
    at all is treated the same way.

    ``llm_timeout_s`` caps the LLM wait below the model's own timeout; the
    service passes :func:`llm_budget` so the cap sits inside the request
    deadline.
    """

    def __init__(
        self,
        patterns: PatternStrategy,
        llm: LLMStrategy | None = None,
        *,
        llm_timeout_s: float | None = None,
    ) -> None:
        self._patterns = patterns
        self._llm = llm
        self._llm_timeout_s = llm_timeout_s

    @property
    def llm_timeout_s(self) -> float | None:
        if self._llm is None:
            return None
        if self._llm_timeout_s is None:
            return self._llm.timeout_s
        return min(self._llm.timeout_s, self._llm_timeout_s)

    async def resolve(self, utterance: str) -> Intent:
        intent = await self._try_llm(utterance)
        if intent is not None:
            return intent

        try:
            return self._patterns.resolve(utterance)
        except Exception:
            logger.exception("Pattern strategy failed; answering with help")
            return Intent(
                kind=IntentKind.HELP,
                confidence=0.0,
                narration=HELP_TEXT,
                utterance=utterance.strip(),
            )

    async def _try_llm(self, utterance: str) -> Intent | None:
        if self._llm is None or not self._llm.enabled:
            logger.debug("LLM strategy not available, using pattern matching")
            return None

        try:
            async with asyncio.timeout(self.llm_timeout_s):
                intent = await self._llm.resolve(utterance)
        except TimeoutError:
            logger.warning("LLM strategy timed out; falling back to pattern matching")
            return None
        except Exception as exc:
            logger.warning("LLM strategy failed (%s); falling back to pattern matching", exc)
            return None

        if _is_unusable(intent):
            logger.info(
                "LLM intent %s too uncertain (confidence %.2f); falling back to pattern matching",
                intent.kind.value,
                intent.confidence,
            )
            return None
        return intent


def _is_unusable(intent: Intent) -> bool:
    has_narration = bool(intent.narration and intent.narration.strip())
    if intent.confidence <= LOW_CONFIDENCE_THRESHOLD and not has_narration:
        return True
    return intent.kind in NARRATION_ONLY_KINDS and not has_narration
