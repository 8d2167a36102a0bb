"""Health check and monitoring endpoints.

This module provides:
- GET /health - Basic health check
- GET /healthz - Liveness check
- GET /readyz - Relay readiness (active use case, provider, key cache state)
- GET /metrics - Prometheus metrics
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from tierstream import __version__
from tierstream.app.dependencies import AppState, get_app_state

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str = __version__


class StatusResponse(BaseModel):
    """Simple status response model."""

    status: str


class ReadinessResponse(BaseModel):
    """Relay readiness.

    status is "ready" once verification keys are cached, "pending" before the
    first key fetch and "degraded" while the key source is failing.
    """

    status: str
    use_case: str
    provider: str
    keys_cached: int


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint for load balancers and monitoring."""
    return HealthResponse(status="ok")


@router.get("/healthz", response_model=StatusResponse)
async def healthz() -> StatusResponse:
    """Kubernetes-style liveness check."""
    return StatusResponse(status="healthy")


@router.get("/readyz", response_model=ReadinessResponse)
async def readyz(state: AppState = Depends(get_app_state)) -> ReadinessResponse:
    """Readiness check. Keys are fetched on first use, so "pending" still serves traffic."""
    key_ids = state.key_cache.key_ids
    if state.key_cache.last_error is not None:
        status = "degraded"
        logger.warning(f"Readiness degraded: {state.key_cache.last_error}")
    elif key_ids:
        status = "ready"
    else:
        status = "pending"

    return ReadinessResponse(
        status=status,
        use_case=state.config.use_case.value,
        provider=state.stream_adapter.provider,
        keys_cached=len(key_ids),
    )


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
