"""Token-gated admin endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from relay.core.ingestion import LocationIngestor
from relay.core.publisher import URL_PATTERN, DiscoveryPublisher
from relay.deps import get_ingestor, get_publisher, require_admin

router = APIRouter(prefix="/admin/api", dependencies=[Depends(require_admin)])


@router.get("/devices")
async def list_devices(ingestor: LocationIngestor = Depends(get_ingestor)) -> dict:
    """Last known position of every device seen since startup."""
    return {"ok": True, "devices": ingestor.devices()}


@router.post("/server-url")
async def set_server_url(
    request: Request,
    publisher: DiscoveryPublisher = Depends(get_publisher),
) -> dict:
    """Set the advertised public endpoint.

    Body: {"server": "https://<endpoint>"}
    Called by whatever runs the tunnel when the public address changes.
    """
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid JSON")

    url = body.get("server") if isinstance(body, dict) else None
    if not isinstance(url, str) or not URL_PATTERN.match(url):
        raise HTTPException(status_code=422, detail="server must be an http(s) URL")

    changed = await publisher.publish(url)
    return {"ok": True, "changed": changed, "server": publisher.current_url}
