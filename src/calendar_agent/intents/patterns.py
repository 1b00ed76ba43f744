"""Deterministic keyword + regex intent classification.

Used when the language model is disabled, slow or unsure.  The decision
ladder is fixed and ordered (earlier rungs win) and depends only on the
lowercased, trimmed utterance:

1. list calendars
2. list events (list phrases, or a bare temporal phrase without a create verb)
3. update event
4. delete event
5. create event (unless an update keyword is also present)
6. help
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta, tzinfo

from calendar_agent import timeparse
from calendar_agent.intents.models import Intent, IntentKind, IntentSource

logger = logging.getLogger(__name__)

KEYWORD_CONFIDENCE = 0.7
HELP_CONFIDENCE = 0.5
DEFAULT_EVENT_DURATION = timedelta(hours=1)

LIST_CALENDARS_KEYWORDS = (
    "list calendar",
    "show calendar",
    "what calendar",
    "which calendar",
    "available calendar",
    "calendar id",
    "calendars",
    "discover calendar",
)
LIST_EVENTS_KEYWORDS = (
    "show my",
    "list my",
    "what's on",
    "whats on",
    "view my",
    "see my",
    "my events",
    "my meetings",
    "my calendar",
    "my appointments",
    "show me",
    "tell me about",
    "what do i have",
)
TEMPORAL_PHRASES = ("today", "tomorrow", "this week", "next week")
CREATE_VERBS = ("schedule", "create", "book", "add", "meeting with", "appointment with")
UPDATE_KEYWORDS = ("move", "change", "update", "reschedule", "modify", "edit")
DELETE_KEYWORDS = ("cancel", "delete", "remove")
CREATE_KEYWORDS = (
    "schedule a",
    "schedule an",
    "schedule meeting",
    "schedule appointment",
    "create",
    "book",
    "add",
    "new meeting",
    "new appointment",
    "meeting with",
    "appointment with",
    "lunch with",
    "dinner with",
)

HELP_TEXT = (
    "I can help you with calendar management! I can:\n"
    "• List your available calendars (e.g., 'show my calendars', 'what calendars do I have?')\n"
    "• List your events (e.g., 'show my events today')\n"
    "• Create new events (e.g., 'schedule a meeting with John at 2pm tomorrow')\n"
    "• Update existing events (e.g., 'move my 3pm meeting to 4pm')\n"
    "• Delete events (e.g., 'cancel my dentist appointment')\n\n"
    "💡 **Tip:** If you're having trouble accessing your calendar, try asking me to "
    "'list my calendars' to find your calendar ID.\n\n"
    "What would you like me to help you with?"
)

_QUOTED_TITLE = re.compile(
    r"(?:event|meeting|appointment)(?:\s+(?:for|called|titled|named))?\s+[\"“]([^\"”]+)[\"”]",
    re.IGNORECASE,
)
_WITH_NAME = re.compile(
    r"\b(meeting|appointment|lunch|dinner|coffee|call)\s+"
    r"(?:(?:today|tomorrow)\s+)?(?:at\s+\d{1,2}(?::\d{2})?\s*(?:am|pm)?\s+)?"
    r"with\s+(.+)",
    re.IGNORECASE,
)
_NAME_STOP_WORDS = frozenset(
    {
        "at",
        "on",
        "for",
        "from",
        "to",
        "in",
        "about",
        "by",
        "until",
        "today",
        "tomorrow",
        "tonight",
        "next",
        "this",
        *timeparse.WEEKDAYS,
    }
)
_NAME_TRAILING_PUNCTUATION = ",.;:!?"


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def classify(normalized: str) -> IntentKind:
    """Map a lowercased, trimmed utterance onto an intent kind."""
    if _contains_any(normalized, LIST_CALENDARS_KEYWORDS):
        return IntentKind.LIST_CALENDARS
    if _contains_any(normalized, LIST_EVENTS_KEYWORDS):
        return IntentKind.LIST_EVENTS
    if _contains_any(normalized, TEMPORAL_PHRASES) and not _contains_any(
        normalized, CREATE_VERBS
    ):
        return IntentKind.LIST_EVENTS
    if _contains_any(normalized, UPDATE_KEYWORDS):
        return IntentKind.UPDATE_EVENT
    if _contains_any(normalized, DELETE_KEYWORDS):
        return IntentKind.DELETE_EVENT
    if _contains_any(normalized, CREATE_KEYWORDS) and not _contains_any(
        normalized, UPDATE_KEYWORDS
    ):
        return IntentKind.CREATE_EVENT
    return IntentKind.HELP


def _person_name(raw: str) -> str | None:
    words: list[str] = []
    for token in raw.split():
        word = token.rstrip(_NAME_TRAILING_PUNCTUATION)
        if not word or word.lower() in _NAME_STOP_WORDS or any(ch.isdigit() for ch in word):
            break
        words.append(word[:1].upper() + word[1:])
        if word != token:
            break
    return " ".join(words) or None


def extract_title(text: str) -> str:
    """Pick an event title out of a create request.

    Quoted titles win, then ``<Meeting> with <Name>``, then a generic title
    chosen by keyword.
    """
    if match := _QUOTED_TITLE.search(text):
        title = match.group(1).strip()
        if title:
            return title

    if match := _WITH_NAME.search(text):
        name = _person_name(match.group(2))
        if name:
            keyword = match.group(1).lower()
            label = "Meeting" if keyword in ("meeting", "appointment") else keyword.capitalize()
            return f"{label} with {name}"

    lowered = text.lower()
    if "meeting" in lowered:
        return "Meeting"
    if "appointment" in lowered:
        return "Appointment"
    return "Event"


class PatternStrategy:
    """Keyword ladder plus regex extraction of create-event details."""

    def __init__(
        self,
        zone: tzinfo,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._zone = zone
        self._clock = clock or (lambda: datetime.now(UTC))

    def resolve(self, utterance: str) -> Intent:
        text = utterance.strip()
        kind = classify(text.lower())
        logger.debug("Pattern strategy classified %r as %s", text, kind.value)

        if kind is IntentKind.HELP:
            return Intent(
                kind=kind,
                confidence=HELP_CONFIDENCE,
                narration=HELP_TEXT,
                utterance=text,
                source=IntentSource.PATTERN,
            )

        parameters = self.create_parameters(text) if kind is IntentKind.CREATE_EVENT else {}
        return Intent(
            kind=kind,
            confidence=KEYWORD_CONFIDENCE,
            parameters=parameters,
            utterance=text,
            source=IntentSource.PATTERN,
        )

    def create_parameters(self, text: str) -> dict[str, str]:
        """Extract title, start and end for a create request.

        Times come back as ISO 8601 strings in the configured zone, the same
        vocabulary the ``create_event`` tool uses.
        """
        now = timeparse.localize(self._clock(), self._zone)

        start: datetime | None = None
        if time_text := timeparse.extract_time(text):
            try:
                start = timeparse.parse_time(time_text, now, self._zone)
            except timeparse.Unparseable:
                logger.warning("Could not parse time %r; using default start", time_text)

        if date_text := timeparse.extract_date(text):
            try:
                day = timeparse.parse_date(date_text, now, self._zone)
            except timeparse.Unparseable:
                logger.warning("Could not parse date %r; keeping today", date_text)
            else:
                start = timeparse.combine(day, start or timeparse.next_full_hour(now, self._zone))

        if start is None:
            start = timeparse.next_full_hour(now, self._zone)

        duration = timeparse.extract_duration(text) or DEFAULT_EVENT_DURATION
        return {
            "title": extract_title(text),
            "start_time": start.isoformat(),
            "end_time": (start + duration).isoformat(),
        }
