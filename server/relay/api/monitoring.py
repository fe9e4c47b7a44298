"""Health check and monitoring endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from relay.deps import Services, get_services

router = APIRouter()


@router.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    """Liveness check."""
    return "OK"


@router.get("/stats")
async def stats(services: Services = Depends(get_services)) -> dict:
    """Detailed server statistics.

    Besides the ingestion counters this reports how many devices the relay
    knows about, how many observers are connected right now, and which
    endpoint is currently advertised.
    """
    snapshot = services.stats.snapshot()
    snapshot["devices_known"] = len(services.ingestor.store)
    snapshot["observers"]["subscribed"] = services.hub.observer_count()
    snapshot["server"] = services.publisher.current_url
    return snapshot
