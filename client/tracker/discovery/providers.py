"""Discovery providers: places that may know the relay's current URL.

A provider is a plain descriptor (where to ask, how to read the answer).
``first_success`` walks an ordered list of them and stops at the first one
that answers with something that looks like an http(s) URL.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Callable

import httpx
import structlog

log = structlog.get_logger()

URL_PATTERN = re.compile(r"^https?://.+", re.IGNORECASE)

NO_CACHE_HEADERS = {
    "User-Agent": "pepi-tracker/1.0",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


def is_url(value: object) -> bool:
    return isinstance(value, str) and URL_PATTERN.match(value) is not None


def normalize_url(url: str) -> str:
    return url.rstrip("/")


def server_field(response: httpx.Response) -> str | None:
    """Read ``{"server": url}``; anything else yields None."""
    body = response.json()
    if not isinstance(body, dict):
        return None
    value = body.get("server")
    return value if isinstance(value, str) else None


@dataclass
class DiscoveryProvider:
    name: str
    url: str | Callable[[], str]
    parse: Callable[[httpx.Response], str | None] = server_field
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = 5.0

    def request_url(self) -> str:
        return self.url() if callable(self.url) else self.url


def gist_provider(user: str, gist_id: str, filename: str = "current-tunnel.json",
                  timeout: float = 5.0) -> DiscoveryProvider:
    """The raw shared document, fetched with a cache-busting query string."""
    base = f"https://gist.githubusercontent.com/{user}/{gist_id}/raw/{filename}"
    return DiscoveryProvider(
        name="gist.githubusercontent.com",
        url=lambda: f"{base}?t={int(time.time() * 1000)}",
        headers=dict(NO_CACHE_HEADERS),
        timeout=timeout,
    )


def relay_provider(base_url: str, timeout: float = 5.0) -> DiscoveryProvider:
    """Ask a relay reachable on the LAN which public URL it advertises."""
    base = normalize_url(base_url)
    return DiscoveryProvider(
        name=base,
        url=f"{base}/current-tunnel",
        headers=dict(NO_CACHE_HEADERS),
        timeout=timeout,
    )


async def first_success(
    client: httpx.AsyncClient, providers: list[DiscoveryProvider]
) -> tuple[str, str] | None:
    """Query providers in order; return ``(provider_name, url)`` of the first hit.

    Timeouts, network errors, non-2xx answers and unreadable bodies are
    logged and skipped. Returns None when every provider failed.
    """
    for provider in providers:
        try:
            resp = await client.get(
                provider.request_url(), headers=provider.headers, timeout=provider.timeout
            )
        except httpx.TimeoutException:
            log.warning("discovery_provider_timeout", provider=provider.name, timeout=provider.timeout)
            continue
        except httpx.HTTPError as exc:
            log.warning("discovery_provider_failed", provider=provider.name, error=str(exc))
            continue

        if not resp.is_success:
            log.warning("discovery_provider_failed", provider=provider.name, status=resp.status_code)
            continue

        try:
            value = provider.parse(resp)
        except ValueError:
            log.warning("discovery_provider_unparseable", provider=provider.name)
            continue

        if is_url(value):
            log.info("discovery_provider_ok", provider=provider.name, url=value)
            return provider.name, value
        log.warning("discovery_provider_no_url", provider=provider.name)

    return None
