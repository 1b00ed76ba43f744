"""The agent card served at ``/.well-known/agent.json``."""

from __future__ import annotations

from calendar_agent.a2a.models import AgentCapabilities, AgentCard, AgentSkill
from calendar_agent.config import AgentConfig

AGENT_NAME = "google-calendar-agent"
AGENT_VERSION = "0.1.0"
AGENT_DESCRIPTION = (
    "A Google Calendar agent that can list, create, update, and delete calendar events "
    "using the A2A protocol"
)

INPUT_MODES = ["text/plain"]
OUTPUT_MODES = ["text/plain", "application/json"]


def _skill(skill_id: str, name: str, description: str, examples: list[str]) -> AgentSkill:
    return AgentSkill(
        id=skill_id,
        name=name,
        description=description,
        input_modes=list(INPUT_MODES),
        output_modes=list(OUTPUT_MODES),
        examples=examples,
    )


SKILLS = (
    _skill(
        "list-calendars",
        "List Available Calendars",
        "Discover and list all available Google Calendars with their IDs",
        [
            "List my calendars",
            "Show available calendars",
            "What calendars do I have?",
            "Find my calendar ID",
        ],
    ),
    _skill(
        "list-events",
        "List Calendar Events",
        "List upcoming events from your Google Calendar",
        [
            "Show me my events today",
            "What's on my calendar this week?",
            "List my meetings tomorrow",
        ],
    ),
    _skill(
        "create-event",
        "Create Calendar Event",
        "Create a new event in your Google Calendar",
        [
            "Schedule a meeting with John at 2pm tomorrow",
            "Create a dentist appointment on Friday at 10am",
            "Book lunch with Sarah next Tuesday at 12:30pm",
        ],
    ),
    _skill(
        "update-event",
        "Update Calendar Event",
        "Modify existing events in your Google Calendar",
        [
            "Move my 2pm meeting to 3pm",
            "Change the title of my appointment",
            "Update my meeting location",
        ],
    ),
    _skill(
        "delete-event",
        "Delete Calendar Event",
        "Remove events from your Google Calendar",
        [
            "Cancel my 2pm meeting",
            "Delete my dentist appointment",
            "Remove the lunch with Sarah",
        ],
    ),
)


def build_agent_card(config: AgentConfig) -> AgentCard:
    return AgentCard(
        name=AGENT_NAME,
        description=AGENT_DESCRIPTION,
        url=config.base_url,
        version=AGENT_VERSION,
        capabilities=AgentCapabilities(),
        default_input_modes=list(INPUT_MODES),
        default_output_modes=list(OUTPUT_MODES),
        skills=[skill.model_copy(deep=True) for skill in SKILLS],
    )
