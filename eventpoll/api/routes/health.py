"""Health routes - Adapter liveness checks."""

from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, Response

from eventpoll.api.deps import get_running_adapters
from eventpoll.ingestion.adapter import PollingAdapter
from eventpoll.schemas.api import AdapterHealth, HealthResponse

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
def health(response: Response, adapters: List[PollingAdapter] = Depends(get_running_adapters)):
    """
    Health check endpoint for load balancer and Docker health checks.

    healthy  - every adapter is polling
    degraded - at least one adapter stopped
    down     - no adapter is polling (503)
    """
    entries = [
        AdapterHealth(
            name=adapter.name,
            running=adapter.running,
            cycles=adapter.scheduler.cycles,
            stop_reason=str(adapter.stop_reason) if adapter.stop_reason else None,
        )
        for adapter in adapters
    ]
    running = sum(1 for entry in entries if entry.running)

    if entries and running == len(entries):
        status = "healthy"
    elif running:
        status = "degraded"
    else:
        status = "down"
        response.status_code = 503

    return HealthResponse(status=status, adapters=entries)


@router.get("/ready")
def readiness(response: Response, adapters: List[PollingAdapter] = Depends(get_running_adapters)):
    """Readiness probe - 200 once at least one adapter is polling."""
    if any(adapter.running for adapter in adapters):
        return {"status": "ready", "timestamp": datetime.now(timezone.utc).isoformat()}
    response.status_code = 503
    return {"status": "not_ready", "timestamp": datetime.now(timezone.utc).isoformat()}
