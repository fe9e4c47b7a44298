"""Discovery publisher: holds and advertises the relay's current public URL.

The tunnel/network layer reports address changes; the publisher keeps the
latest one in memory for ``GET /current-tunnel`` and pushes it to every
configured discovery document.
"""

from __future__ import annotations

import re
import time
from typing import TYPE_CHECKING

import structlog

from relay.core.models import DiscoveryRecord

if TYPE_CHECKING:
    from relay.publish.base import DiscoveryDocument

log = structlog.get_logger()

URL_PATTERN = re.compile(r"^https?://.+", re.IGNORECASE)

# Public hostname as printed by the LocalXpose tunnel client.
_TUNNEL_HOST = re.compile(r"(?:https?://)?([a-z0-9][a-z0-9-]*\.loclx\.io)", re.IGNORECASE)


def normalize_url(url: str) -> str:
    return url.strip().rstrip("/")


def extract_tunnel_url(text: str) -> str | None:
    """Pull a public tunnel URL out of tunnel-client output, or None.

    The client usually prints the bare hostname; http:// is assumed then.
    """
    m = _TUNNEL_HOST.search(text)
    if not m:
        return None
    full = m.group(0)
    if full.lower().startswith("http"):
        return full
    return f"http://{m.group(1)}"


class DiscoveryPublisher:
    """Process-wide holder of the advertised endpoint."""

    def __init__(self, documents: list[DiscoveryDocument] | None = None) -> None:
        self._documents = list(documents or [])
        self._record = DiscoveryRecord()

    @property
    def record(self) -> DiscoveryRecord:
        return self._record

    @property
    def documents(self) -> list[DiscoveryDocument]:
        return list(self._documents)

    @property
    def current_url(self) -> str | None:
        return self._record.endpoint_url

    async def publish(self, url: str) -> bool:
        """Advertise a new endpoint. Returns False when it was already current."""
        if not URL_PATTERN.match(url or ""):
            raise ValueError(f"not an http(s) URL: {url!r}")

        url = normalize_url(url)
        if url == self._record.endpoint_url:
            return False

        previous = self._record.endpoint_url
        self._record = DiscoveryRecord(
            endpoint_url=url,
            resolved_at_ms=int(time.time() * 1000),
            source="publisher",
        )
        log.info("endpoint_advertised", server=url, previous=previous)

        for doc in self._documents:
            ok = await doc.push(url)
            if not ok:
                log.warning("discovery_document_push_failed", document=doc.name, server=url)
        return True
