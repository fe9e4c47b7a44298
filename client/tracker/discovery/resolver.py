"""Endpoint resolution with retry and a persistent last-known-good cache."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

import httpx
import structlog

from tracker.config import DiscoveryConfig
from tracker.discovery.providers import (
    DiscoveryProvider,
    first_success,
    gist_provider,
    is_url,
    normalize_url,
    relay_provider,
)
from tracker.models import DiscoveryRecord
from tracker.store import SERVER_URL_KEY, LocalStore

log = structlog.get_logger()


class NoEndpointError(RuntimeError):
    """No provider answered and nothing usable is cached."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def providers_from_config(config: DiscoveryConfig) -> list[DiscoveryProvider]:
    providers: list[DiscoveryProvider] = []
    if config.gist_user and config.gist_id:
        providers.append(
            gist_provider(config.gist_user, config.gist_id, config.gist_filename, config.timeout_seconds)
        )
    for base in config.relay_urls:
        providers.append(relay_provider(base, config.timeout_seconds))
    return providers


class DiscoveryResolver:

    def __init__(
        self,
        client: httpx.AsyncClient,
        providers: list[DiscoveryProvider],
        store: LocalStore,
        config: DiscoveryConfig | None = None,
        clock: Callable[[], int] = _now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._providers = list(providers)
        self._store = store
        self._config = config or DiscoveryConfig()
        self._clock = clock
        self._sleep = sleep
        self.record = DiscoveryRecord(endpoint_url=None, resolved_at_ms=0, source="none")

    @property
    def providers(self) -> list[DiscoveryProvider]:
        return list(self._providers)

    def cached(self) -> str | None:
        value = self._store.get(SERVER_URL_KEY)
        return value if is_url(value) else None

    def _remember(self, url: str, provider: str) -> bool:
        """Cache a freshly discovered URL. Returns True if it differs from the cache."""
        url = normalize_url(url)
        cached = self._store.get(SERVER_URL_KEY)
        changed = not isinstance(cached, str) or normalize_url(cached) != url
        if changed:
            log.info("endpoint_cache_updated", previous=cached, url=url)
            self._store.set(SERVER_URL_KEY, url)
        self.record = DiscoveryRecord(url, self._clock(), "provider", provider)
        return changed

    async def resolve(self) -> str:
        """Find the relay URL, retrying, then falling back to the cache.

        Raises NoEndpointError when neither the providers nor the cache
        produce a URL.
        """
        attempts = max(1, self._config.attempts) if self._providers else 0
        if not self._providers:
            log.warning("discovery_no_providers")
        for attempt in range(1, attempts + 1):
            found = await first_success(self._client, self._providers)
            if found is not None:
                name, url = found
                self._remember(url, name)
                return self.record.endpoint_url
            if attempt < attempts:
                log.info("discovery_retry", attempt=attempt, delay=self._config.retry_delay_seconds)
                await self._sleep(self._config.retry_delay_seconds)

        cached = self.cached()
        if cached is not None:
            log.warning("discovery_using_cache", url=cached)
            self.record = DiscoveryRecord(normalize_url(cached), self._clock(), "cache")
            return self.record.endpoint_url

        log.error("discovery_failed", providers=[p.name for p in self._providers])
        raise NoEndpointError("could not discover the relay URL and no cached value exists")

    async def poll(self) -> str | None:
        """One round of providers. Returns the URL only if it changed."""
        found = await first_success(self._client, self._providers)
        if found is None:
            return None
        name, url = found
        previous = self.record.endpoint_url
        self._remember(url, name)
        current = self.record.endpoint_url
        if previous is not None and normalize_url(previous) == current:
            return None
        return current
