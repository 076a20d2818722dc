"""Health endpoint."""

from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request, status

from ..schemas import HealthResponse
from ..version import APP_VERSION

router = APIRouter(prefix="", tags=["Health"])

ALLOWED_METHODS = ("GET", "HEAD")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health",
    description="Return service health, environment and uptime.",
    operation_id="getHealth",
    responses={
        200: {
            "description": "Health payload.",
            "content": {
                "application/json; charset=utf-8": {
                    "example": {
                        "status": "OK",
                        "message": "Server is running",
                        "version": APP_VERSION,
                        "environment": "development",
                        "timestamp": "2025-01-01T00:00:00Z",
                        "uptimeSeconds": 1.23,
                    }
                }
            },
        }
    },
)
async def get_health(request: Request) -> HealthResponse:
    """Report API health information."""

    start_time: float = getattr(request.app.state, "start_time", time.monotonic())
    return HealthResponse(
        status="OK",
        message="Server is running",
        version=APP_VERSION,
        environment=request.app.state.settings.environment,
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=max(time.monotonic() - start_time, 0.0),
    )


@router.api_route("/health", methods=["TRACE"], include_in_schema=False)
async def health_trace() -> None:
    """Return a 405 response with an Allow header for unsupported TRACE requests."""

    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
        headers={"Allow": ", ".join(ALLOWED_METHODS)},
    )
