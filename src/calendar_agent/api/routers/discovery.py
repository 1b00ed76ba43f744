"""Health check and agent card discovery."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from calendar_agent.a2a.models import dump

router = APIRouter(tags=["discovery"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/.well-known/agent.json")
async def agent_card(request: Request) -> dict[str, Any]:
    return dump(request.app.state.agent_card)
