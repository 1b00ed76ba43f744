"""The JSON-RPC endpoint: ``POST /a2a``."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from calendar_agent.api.service import A2AService

router = APIRouter(tags=["a2a"])


def get_a2a_service(request: Request) -> A2AService:
    return request.app.state.a2a_service


@router.post("/a2a")
async def a2a_endpoint(
    request: Request,
    service: A2AService = Depends(get_a2a_service),
) -> JSONResponse:
    """Handle one JSON-RPC request; the HTTP status is always 200."""
    body = await request.body()
    return JSONResponse(status_code=200, content=await service.handle(body))
