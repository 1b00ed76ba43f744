"""HTTP-level error handling for routes outside the JSON-RPC envelope.

JSON-RPC failures are always reported inside a 200 response by
:class:`~calendar_agent.api.service.A2AService`.  These handlers cover the
transport layer only:

- unknown route -> 404 listing the available endpoints
- wrong method -> 405 naming the allowed methods
- any unhandled exception -> 500
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

AVAILABLE_ENDPOINTS = ["GET /health", "POST /a2a", "GET /.well-known/agent.json"]


def _allowed_methods(exc: StarletteHTTPException) -> list[str]:
    allow = (exc.headers or {}).get("Allow", "")
    return [method.strip() for method in allow.split(",") if method.strip()]


async def _handle_http_exception(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Render 404 and 405 as descriptive JSON bodies."""
    if exc.status_code == 404:
        logger.info("No route for %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not Found",
                "message": "The requested endpoint does not exist",
                "path": request.url.path,
                "method": request.method,
                "available_endpoints": AVAILABLE_ENDPOINTS,
            },
        )

    if exc.status_code == 405:
        allowed = _allowed_methods(exc)
        logger.info("Method %s not allowed on %s", request.method, request.url.path)
        return JSONResponse(
            status_code=405,
            headers={"Allow": ", ".join(allowed)},
            content={
                "error": "Method Not Allowed",
                "message": f"Only {', '.join(allowed)} requests are supported on this endpoint",
                "allowed_methods": allowed,
                "endpoint": request.url.path,
            },
        )

    return JSONResponse(
        status_code=exc.status_code,
        headers=exc.headers,
        content={"error": str(exc.detail), "path": request.url.path},
    )


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that catches any unhandled exception and returns a 500.

    This sits above the Starlette exception handler layer, ensuring that
    even exceptions not caught by ``add_exception_handler`` are converted
    to a JSON body rather than bubbling up as raw 500s.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error", "message": "Internal server error"},
            )


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application.

    Call this from ``create_app()`` after constructing the ``FastAPI`` instance.
    """
    app.add_exception_handler(
        StarletteHTTPException, _handle_http_exception  # type: ignore[arg-type]
    )
    app.add_middleware(CatchAllErrorMiddleware)
