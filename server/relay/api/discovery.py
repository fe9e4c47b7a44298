"""Discovery read endpoints: where is this relay reachable from outside?"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from relay.core.publisher import DiscoveryPublisher
from relay.deps import get_publisher

router = APIRouter()


@router.get("/current-tunnel")
async def current_tunnel(publisher: DiscoveryPublisher = Depends(get_publisher)) -> dict:
    """LAN discovery: ``{"server": url | null}``."""
    return publisher.record.to_dict()


@router.get("/server-url.json")
async def server_url(publisher: DiscoveryPublisher = Depends(get_publisher)) -> dict:
    return publisher.record.to_dict()
