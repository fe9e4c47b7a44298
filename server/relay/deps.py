"""Component registry and FastAPI dependency getters.

main.py builds the components at startup and installs them here; request
handlers receive them through ``Depends`` instead of importing globals.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

if TYPE_CHECKING:
    from relay.config import AppConfig
    from relay.core.hub import PresenceHub
    from relay.core.ingestion import LocationIngestor
    from relay.core.publisher import DiscoveryPublisher
    from relay.core.stats import ServerStats


@dataclass
class Services:
    config: AppConfig
    stats: ServerStats
    hub: PresenceHub
    ingestor: LocationIngestor
    publisher: DiscoveryPublisher


_services: Services | None = None


def install(services: Services | None) -> None:
    global _services
    _services = services


def get_services() -> Services:
    assert _services is not None, "Server not initialized"
    return _services


def get_config() -> AppConfig:
    return get_services().config


def get_stats() -> ServerStats:
    return get_services().stats


def get_hub() -> PresenceHub:
    return get_services().hub


def get_ingestor() -> LocationIngestor:
    return get_services().ingestor


def get_publisher() -> DiscoveryPublisher:
    return get_services().publisher


def token_matches(supplied: str | None) -> bool:
    """Constant-time check against the admin token. An unset token matches nothing."""
    expected = get_config().admin.token
    if not expected or not supplied:
        return False
    return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def require_admin(request: Request) -> None:
    """Dependency: 401 unless the x-admin-token header or ?token= matches."""
    supplied = request.headers.get("x-admin-token") or request.query_params.get("token")
    if not token_matches(supplied):
        raise HTTPException(status_code=401, detail="Unauthorized")
