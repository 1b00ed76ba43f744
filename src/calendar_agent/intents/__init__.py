"""Intent resolution: free text → structured calendar operation."""

from calendar_agent.intents.llm import (
    CALENDAR_TOOLS,
    InferenceGatewayClient,
    LanguageModel,
    LanguageModelError,
    LLMStrategy,
)
from calendar_agent.intents.models import Intent, IntentKind, IntentSource
from calendar_agent.intents.patterns import PatternStrategy
from calendar_agent.intents.resolver import IntentResolver

__all__ = [
    "CALENDAR_TOOLS",
    "InferenceGatewayClient",
    "Intent",
    "IntentKind",
    "IntentResolver",
    "IntentSource",
    "LLMStrategy",
    "LanguageModel",
    "LanguageModelError",
    "PatternStrategy",
]
